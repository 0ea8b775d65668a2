"""Structured audit logging for the chat service.

This module provides the AuditLogger class that emits structured JSON
audit events for routing, handoff and assistant activity.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from chatdesk.observability.models import AuditEvent, AuditEventType

# Dedicated audit logger - separate from application logs
audit_logger = logging.getLogger("chatdesk.audit")


class AuditLogger:
    """Structured audit logger scoped to one chat session.

    Emits one JSON object per event to the ``chatdesk.audit`` logger. Every
    event carries ``event_type``, ``timestamp`` and ``session_id`` plus
    event-specific metadata. Message bodies are never logged, only lengths.

    Usage:
        audit = AuditLogger(session_id="session-123")
        audit.log_message_persisted(message_id="m-1", sender="user", length=5)
        audit.log_routing_decision(decision="assistant")
    """

    def __init__(self, session_id: str | None = None, enabled: bool = True) -> None:
        self._session_id = session_id
        self._enabled = enabled

    def _emit(self, event_type: AuditEventType, **metadata: Any) -> None:
        if not self._enabled:
            return

        event = AuditEvent(
            event_type=event_type,
            timestamp=datetime.now(UTC),
            session_id=self._session_id,
            metadata=metadata,
        )
        try:
            audit_logger.info(json.dumps(event.to_dict(), default=str))
        except Exception as e:
            # Don't let audit logging failures affect event processing
            logging.getLogger(__name__).warning("Failed to emit audit event: %s", e)

    def log_session_created(self, ip_address: str | None) -> None:
        """Log that a session was created."""
        self._emit(AuditEventType.SESSION_CREATED, ip_address=ip_address)

    def log_message_persisted(self, message_id: str, sender: str, length: int) -> None:
        """Log that a message was appended to the session."""
        self._emit(
            AuditEventType.MESSAGE_PERSISTED,
            message_id=message_id,
            sender=sender,
            length=length,
        )

    def log_routing_decision(self, decision: str, reason: str | None = None) -> None:
        """Log how a visitor message was routed.

        Args:
            decision: One of ``assistant``, ``human`` or ``handoff``.
            reason: Why that route was taken.
        """
        metadata: dict[str, Any] = {"decision": decision}
        if reason:
            metadata["reason"] = reason
        self._emit(AuditEventType.ROUTING_DECISION, **metadata)

    def log_handoff(self, reason: str) -> None:
        """Log that the session moved to human-only handling."""
        self._emit(AuditEventType.HANDOFF, reason=reason)

    def log_assistant_requested(self, provider: str, model: str, history_length: int) -> None:
        """Log that a reply was requested from the responder."""
        self._emit(
            AuditEventType.ASSISTANT_REQUESTED,
            provider=provider,
            model=model,
            history_length=history_length,
        )

    def log_assistant_reply(self, message_id: str, duration_ms: float) -> None:
        """Log a persisted assistant reply."""
        self._emit(
            AuditEventType.ASSISTANT_REPLY,
            message_id=message_id,
            duration_ms=round(duration_ms, 2),
        )

    def log_assistant_failed(self, error_kind: str, error_message: str) -> None:
        """Log a responder failure.

        Args:
            error_kind: The exception class name.
            error_message: The error text, truncated to 200 characters.
        """
        self._emit(
            AuditEventType.ASSISTANT_FAILED,
            error_kind=error_kind,
            error_message=error_message[:200] if error_message else "Unknown error",
        )

    def log_connection(self, action: str, role: str, connection_id: str) -> None:
        """Log a live connection lifecycle event.

        Args:
            action: ``opened`` or ``closed``.
            role: ``visitor`` or ``operator``.
            connection_id: The connection identifier.
        """
        if action == "opened":
            event_type = AuditEventType.CONNECTION_OPENED
        else:
            event_type = AuditEventType.CONNECTION_CLOSED
        self._emit(event_type, role=role, connection_id=connection_id)

    def log_config_updated(self, fields: list[str], is_enabled: bool) -> None:
        """Log an operator change to the assistant configuration."""
        self._emit(AuditEventType.CONFIG_UPDATED, fields=fields, is_enabled=is_enabled)


def configure_audit_logging(level: str = "INFO") -> None:
    """Configure the audit logger with its own handler.

    Args:
        level: The logging level for audit events.
    """
    audit_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Only add handler if not already configured
    if not audit_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(getattr(logging, level.upper(), logging.INFO))

        # Simple format - the message is already JSON
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)

        audit_logger.addHandler(handler)

    # Prevent propagation to root logger to avoid duplicate output
    audit_logger.propagate = False
