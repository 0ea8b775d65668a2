"""Live-channel event names and payload models.

Frames are JSON objects ``{"event": <name>, "data": {...}}`` in both
directions. Inbound payloads are validated with the models below; outbound
payloads are built by the ``*_payload`` helpers.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import Field

from chatdesk.api.schemas import MAX_CONTENT_LENGTH, MessageView, SessionId, WireModel
from chatdesk.session.models import Message


class EventName(str, Enum):
    """Event names used on the live channel."""

    # Visitor -> server
    USER_CONNECTED = "user-connected"
    USER_MESSAGE = "user-message"
    USER_TYPING = "user-typing"
    REQUEST_HUMAN = "request-human"

    # Operator -> server
    ADMIN_JOIN = "admin-join"
    ADMIN_LEAVE = "admin-leave"
    ADMIN_REPLY = "admin-reply"
    ADMIN_TYPING = "admin-typing"

    # Server -> clients
    AI_REPLY = "ai-reply"
    AI_THINKING = "ai-thinking"
    HANDOFF_REQUESTED = "handoff-requested"
    CHAT_LIST_UPDATE = "chat-list-update"
    ERROR = "error"


class Frame(WireModel):
    """A single live-channel frame."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)


class SessionEvent(WireModel):
    """Payload carrying only a session identifier."""

    session_id: SessionId


class ConnectEvent(SessionEvent):
    """Payload of ``user-connected``."""

    ip_address: Annotated[str | None, Field(default=None, max_length=100)]


class ChatMessageEvent(SessionEvent):
    """Payload of ``user-message`` and ``admin-reply``."""

    message: Annotated[str, Field(max_length=MAX_CONTENT_LENGTH)]
    timestamp: datetime | None = None


class TypingEvent(SessionEvent):
    """Payload of ``user-typing`` and ``admin-typing``."""

    is_typing: bool


def message_payload(message: Message) -> dict[str, Any]:
    """Serialize a persisted message for broadcast."""
    return MessageView.from_message(message).to_wire()


def typing_payload(session_id: str, is_typing: bool) -> dict[str, Any]:
    return {"sessionId": session_id, "isTyping": is_typing}


def thinking_payload(session_id: str, is_thinking: bool) -> dict[str, Any]:
    return {"sessionId": session_id, "isThinking": is_thinking}


def handoff_payload(session_id: str, reason: str) -> dict[str, Any]:
    return {"sessionId": session_id, "reason": reason}


def error_payload(detail: str, event: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"detail": detail}
    if event:
        payload["event"] = event
    return payload
