"""Data models for audit logging."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class AuditEventType(str, Enum):
    """Types of audit events logged by the chat service."""

    SESSION_CREATED = "session_created"
    MESSAGE_PERSISTED = "message_persisted"
    ROUTING_DECISION = "routing_decision"
    HANDOFF = "handoff"
    ASSISTANT_REQUESTED = "assistant_requested"
    ASSISTANT_REPLY = "assistant_reply"
    ASSISTANT_FAILED = "assistant_failed"
    CONNECTION_OPENED = "connection_opened"
    CONNECTION_CLOSED = "connection_closed"
    CONFIG_UPDATED = "config_updated"


@dataclass
class AuditEvent:
    """A structured audit event for logging.

    Provides a consistent format for audit trail entries that can
    be serialized to JSON for structured logging.
    """

    event_type: AuditEventType
    """The type of audit event."""

    timestamp: datetime
    """When the event occurred."""

    session_id: str | None
    """The chat session the event belongs to, if any."""

    metadata: dict[str, Any] = field(default_factory=dict)
    """Event-specific metadata."""

    def to_dict(self) -> dict[str, Any]:
        """Convert the audit event to a dictionary for JSON serialization."""
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "session_id": self.session_id,
            **self.metadata,
        }
