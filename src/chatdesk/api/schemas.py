"""Request and response models for the REST and live-channel surfaces.

All wire models use camelCase aliases and accept snake_case on input.
"""

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chatdesk.session.models import Message, SenderKind, Session

# Maximum message content length to prevent DoS
MAX_CONTENT_LENGTH = 10000

SessionId = Annotated[str, Field(min_length=1, max_length=200)]


class WireModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Dump to a JSON-ready dict using wire field names."""
        return self.model_dump(mode="json", by_alias=True)


class MessageView(WireModel):
    """A persisted message as seen by clients."""

    id: str
    session_id: str
    message: str
    sender_type: SenderKind
    timestamp: datetime
    is_read: bool = False

    @classmethod
    def from_message(cls, message: Message) -> "MessageView":
        return cls(
            id=message.id,
            session_id=message.session_id,
            message=message.body,
            sender_type=message.sender,
            timestamp=message.timestamp,
            is_read=message.is_read,
        )


class SessionView(WireModel):
    """A session with its history as seen by operators."""

    id: str
    session_id: str
    ip_address: str | None = None
    created_at: datetime
    last_active: datetime
    handed_off: bool
    unread_count: int
    messages: list[MessageView] = Field(default_factory=list)

    @classmethod
    def from_session(cls, session: Session) -> "SessionView":
        return cls(
            id=session.session_id,
            session_id=session.session_id,
            ip_address=session.ip_address,
            created_at=session.created_at,
            last_active=session.last_active,
            handed_off=session.handed_off,
            unread_count=session.unread_count,
            messages=[MessageView.from_message(m) for m in session.messages],
        )


class CreateSessionRequest(WireModel):
    """Body of ``POST /api/chats``."""

    session_id: SessionId
    ip_address: Annotated[str | None, Field(default=None, max_length=100)]


class MarkReadResponse(WireModel):
    """Body returned by ``POST /api/messages/{sessionId}/read``."""

    session_id: str
    marked: int


class AssistantConfigUpdate(WireModel):
    """Partial update of the assistant configuration."""

    provider: Annotated[str | None, Field(default=None, min_length=1, max_length=100)]
    model: Annotated[str | None, Field(default=None, min_length=1, max_length=200)]
    system_prompt: Annotated[str | None, Field(default=None, max_length=4000)]
    temperature: float | None = Field(default=None, ge=0.0, le=1.0)
    max_tokens: int | None = Field(default=None, ge=50, le=2000)


class ToggleRequest(WireModel):
    """Body of ``POST /api/ai/toggle``; an empty body flips the flag."""

    is_enabled: bool | None = None
