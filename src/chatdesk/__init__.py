"""Support-chat routing service with live assistant/operator handoff."""

__version__ = "0.1.0"
