"""Realtime notifications to connected agents."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import socketio
import structlog

logger = structlog.get_logger()


class RealtimeEvent(str, Enum):
    """Events pushed to agent clients."""

    MESSAGE_NEW = "message:new"
    CONVERSATION_ASSIGNED = "conversation:assigned"
    CONVERSATION_PENDING = "conversation:pending"
    CONVERSATION_CLOSED = "conversation:closed"
    CONVERSATION_REOPENED = "conversation:reopened"
    CONVERSATIONS_LIST = "conversations:list"
    CONVERSATION_MESSAGES = "conversation:messages"
    CAMPAIGN_STARTED = "campaign:started"
    CAMPAIGN_PROGRESS = "campaign:progress"
    CAMPAIGN_COMPLETED = "campaign:completed"
    CAMPAIGN_FAILED = "campaign:failed"
    CAMPAIGN_CANCELLED = "campaign:cancelled"
    USER_ONLINE = "user:online"
    USER_OFFLINE = "user:offline"
    TYPING_START = "typing:start"
    TYPING_STOP = "typing:stop"
    ERROR = "error"


def company_room(company_id: str) -> str:
    return f"company_{company_id}"


def department_room(department_id: str) -> str:
    return f"department_{department_id}"


def conversation_room(conversation_id: str) -> str:
    return f"conversation_{conversation_id}"


def user_room(user_id: str) -> str:
    return f"user_{user_id}"


class RealtimeNotifier(ABC):
    """Publishes events to an audience (room).

    Implementations must not raise: a notification that cannot be delivered
    is logged and dropped so routing and campaigns keep going.
    """

    @abstractmethod
    async def emit(self, event: RealtimeEvent, data: dict[str, Any], room: str) -> None:
        """Emit ``event`` to every connection in ``room``."""
        ...

    async def to_company(self, company_id: str, event: RealtimeEvent, data: dict[str, Any]) -> None:
        await self.emit(event, data, company_room(company_id))

    async def to_department(
        self,
        department_id: str,
        event: RealtimeEvent,
        data: dict[str, Any],
    ) -> None:
        await self.emit(event, data, department_room(department_id))

    async def to_conversation(
        self,
        conversation_id: str,
        event: RealtimeEvent,
        data: dict[str, Any],
    ) -> None:
        await self.emit(event, data, conversation_room(conversation_id))

    async def to_user(self, user_id: str, event: RealtimeEvent, data: dict[str, Any]) -> None:
        await self.emit(event, data, user_room(user_id))


class SocketIONotifier(RealtimeNotifier):
    """Notifier backed by a python-socketio server."""

    def __init__(self, sio: socketio.AsyncServer, namespace: str = "/") -> None:
        self.sio = sio
        self.namespace = namespace

    async def emit(self, event: RealtimeEvent, data: dict[str, Any], room: str) -> None:
        try:
            await self.sio.emit(event.value, data, room=room, namespace=self.namespace)
        except Exception as e:
            logger.warning("Realtime emit failed", event=event.value, room=room, error=str(e))
