"""Agent presence tracking."""

from omnidesk.services.presence.tracker import PresenceTracker

__all__ = ["PresenceTracker"]
