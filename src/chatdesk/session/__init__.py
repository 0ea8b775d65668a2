"""Session persistence for chat conversations."""

from chatdesk.session.models import HandoffReason, Message, SenderKind, Session
from chatdesk.session.store import SessionStore

__all__ = ["HandoffReason", "Message", "SenderKind", "Session", "SessionStore"]
