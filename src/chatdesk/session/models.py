"""Session and message dataclasses."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class SenderKind(str, Enum):
    """Who authored a message. Values are the wire ``senderType`` names."""

    VISITOR = "user"
    OPERATOR = "admin"
    ASSISTANT = "ai"


class HandoffReason(str, Enum):
    """Why a session moved to human-only handling."""

    VISITOR_REQUEST = "visitor-request"
    ASSISTANT_DISABLED = "assistant-disabled"
    OPERATOR_REPLY = "operator-reply"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class Message:
    """A single persisted chat message.

    Frozen: the sender kind and session attribution never change once the
    message has been appended.
    """

    id: str
    session_id: str
    body: str
    sender: SenderKind
    timestamp: datetime
    seq: int
    is_read: bool = False


@dataclass
class Session:
    """A visitor's support conversation.

    ``messages`` is append-only and ordered by arrival. ``handed_off`` only
    ever moves from False to True.
    """

    session_id: str
    ip_address: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    last_active: datetime = field(default_factory=utcnow)
    messages: list[Message] = field(default_factory=list)
    handed_off: bool = False
    handoff_reason: HandoffReason | None = None

    def touch(self, when: datetime | None = None) -> None:
        """Advance last activity, never moving it backwards."""
        when = when or utcnow()
        if when > self.last_active:
            self.last_active = when

    @property
    def unread_count(self) -> int:
        """Number of visitor messages no operator has marked read."""
        return sum(
            1 for m in self.messages if m.sender is SenderKind.VISITOR and not m.is_read
        )
