"""Observability module for the chat service.

This module provides:
- AuditLogger: Structured JSON audit logging for routing and handoff events
"""

from chatdesk.observability.audit import AuditLogger, configure_audit_logging
from chatdesk.observability.models import AuditEvent, AuditEventType

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "AuditLogger",
    "configure_audit_logging",
]
