"""Live-channel subscriptions and event models."""

from chatdesk.realtime.channels import ChannelManager, Connection, WebSocketConnection
from chatdesk.realtime.models import EventName

__all__ = ["ChannelManager", "Connection", "EventName", "WebSocketConnection"]
