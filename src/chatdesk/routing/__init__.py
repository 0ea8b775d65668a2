"""Conversation routing and handoff."""

from chatdesk.routing.handoff import compile_handoff_pattern, detect_handoff_request
from chatdesk.routing.lanes import SessionLanes
from chatdesk.routing.router import ConversationRouter

__all__ = [
    "ConversationRouter",
    "SessionLanes",
    "compile_handoff_pattern",
    "detect_handoff_request",
]
