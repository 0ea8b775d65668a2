"""Ephemeral presence tracking (typing and thinking)."""

from chatdesk.presence.tracker import Party, PresenceState, PresenceTracker

__all__ = ["Party", "PresenceState", "PresenceTracker"]
