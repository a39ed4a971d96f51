"""Realtime transport - events pushed to agent clients."""

from omnidesk.services.realtime.notifier import (
    RealtimeEvent,
    RealtimeNotifier,
    SocketIONotifier,
    company_room,
    conversation_room,
    department_room,
    user_room,
)

__all__ = [
    "RealtimeEvent",
    "RealtimeNotifier",
    "SocketIONotifier",
    "company_room",
    "conversation_room",
    "department_room",
    "user_room",
]
