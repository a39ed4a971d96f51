"""
Agent namespace for Socket.IO.

Events:
- connect: Agent authenticates with a signed agent token
- conversation:join / conversation:leave: Follow one conversation
- message:send: Agent replies to the contact
- conversation:take: Agent picks an unassigned conversation
- conversation:close: Agent closes a conversation
- typing:start / typing:stop: Relayed to the conversation room
- disconnect: Presence cleanup
"""

from typing import Any

import socketio
import structlog

from omnidesk.core.exceptions import AppException, ValidationError
from omnidesk.core.security import verify_agent_token
from omnidesk.models.common import utcnow
from omnidesk.services.conversation import conversation_payload
from omnidesk.services.messaging.outbound import message_payload
from omnidesk.services.platform import Platform
from omnidesk.services.realtime.notifier import (
    RealtimeEvent,
    company_room,
    conversation_room,
    department_room,
    user_room,
)

logger = structlog.get_logger()

JOIN_HISTORY_LIMIT = 50


def _error(exc: AppException) -> dict[str, Any]:
    return {"success": False, "error": exc.code, "message": exc.message}


def _rating(value: Any) -> int | None:
    """Socket payloads are untyped; accept ``5`` or ``"5"``."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("Rating must be an integer", details={"rating": value})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("Rating must be an integer", details={"rating": value}) from None


class AgentNamespace(socketio.AsyncNamespace):
    """Socket.IO namespace agents use to work conversations in real time."""

    def __init__(self, platform: Platform, namespace: str = "/") -> None:
        super().__init__(namespace)
        self.platform = platform

        # Map colon-separated event names to handler methods
        self._event_handlers: dict[str, str] = {
            "conversation:join": "on_conversation_join",
            "conversation:leave": "on_conversation_leave",
            "conversation:take": "on_conversation_take",
            "conversation:close": "on_conversation_close",
            "message:send": "on_message_send",
            "typing:start": "on_typing_start",
            "typing:stop": "on_typing_stop",
        }

    async def trigger_event(self, event: str, sid: str, *args):
        """Route colon-separated event names to their handlers."""
        handler_name = self._event_handlers.get(event)
        if handler_name:
            return await getattr(self, handler_name)(sid, *args)
        return await super().trigger_event(event, sid, *args)

    async def on_connect(self, sid: str, environ: dict, auth: dict | None = None):
        """
        Authenticate the agent and bring it online.

        Raises:
            ConnectionRefusedError: If the token is missing or invalid, or the
                user is not an active member of the token's company
        """
        token = auth.get("token") if isinstance(auth, dict) else None
        if not token:
            logger.warning("Agent connection without token", sid=sid)
            raise ConnectionRefusedError("Missing authentication token")

        claims = verify_agent_token(token)
        if claims is None:
            logger.warning("Agent connection with invalid token", sid=sid)
            raise ConnectionRefusedError("Invalid or expired token")

        storage = self.platform.storage
        user = await storage.get_user(claims.user_id)
        if user is None or user.company_id != claims.company_id or not user.is_active:
            raise ConnectionRefusedError("User is not active in this company")

        await self.save_session(
            sid,
            {
                "user_id": user.id,
                "company_id": user.company_id,
                "department_id": user.department_id,
            },
        )
        await self.enter_room(sid, company_room(user.company_id))
        await self.enter_room(sid, user_room(user.id))
        if user.department_id:
            await self.enter_room(sid, department_room(user.department_id))

        user.last_seen_at = utcnow()
        await storage.save_user(user)
        conversations = await self.platform.lifecycle.list_active(user.company_id)

        # A refused connect never reaches on_disconnect, so undo presence here
        came_online = self.platform.presence.connect(
            user.id, sid, company_id=user.company_id, department_id=user.department_id
        )
        try:
            await self.emit(
                RealtimeEvent.CONVERSATIONS_LIST.value,
                {"conversations": [c.model_dump(mode="json") for c in conversations]},
                to=sid,
            )
            if came_online:
                await self.platform.notifier.to_company(
                    user.company_id, RealtimeEvent.USER_ONLINE, {"user_id": user.id}
                )
        except BaseException:
            self.platform.presence.disconnect(sid)
            raise
        logger.info("Agent connected", sid=sid, user_id=user.id, company_id=user.company_id)

    async def on_disconnect(self, sid: str):
        agent_id = self.platform.presence.disconnect(sid)
        if agent_id is None:
            return

        session = await self.get_session(sid)
        company_id = session.get("company_id")
        logger.info("Agent disconnected", sid=sid, user_id=agent_id)
        if company_id and not self.platform.presence.is_online(agent_id):
            await self.platform.notifier.to_company(
                company_id, RealtimeEvent.USER_OFFLINE, {"user_id": agent_id}
            )

    # ============================================================
    # Conversation Events
    # ============================================================

    async def on_conversation_join(self, sid: str, data: dict) -> dict:
        session = await self.get_session(sid)
        conversation_id = data.get("conversation_id")
        try:
            await self.platform.lifecycle.get(conversation_id, session["company_id"])
        except AppException as e:
            return _error(e)

        await self.enter_room(sid, conversation_room(conversation_id))
        messages = await self.platform.storage.get_recent_messages(
            conversation_id, limit=JOIN_HISTORY_LIMIT
        )
        await self.emit(
            RealtimeEvent.CONVERSATION_MESSAGES.value,
            {
                "conversation_id": conversation_id,
                "messages": [m.model_dump(mode="json") for m in messages],
            },
            to=sid,
        )
        return {"success": True}

    async def on_conversation_leave(self, sid: str, data: dict) -> dict:
        conversation_id = data.get("conversation_id")
        if conversation_id:
            await self.leave_room(sid, conversation_room(conversation_id))
        return {"success": True}

    async def on_conversation_take(self, sid: str, data: dict) -> dict:
        """Assign the conversation to the caller unless another agent has it."""
        session = await self.get_session(sid)
        try:
            assignment = await self.platform.lifecycle.assign(
                data.get("conversation_id"),
                session["user_id"],
                reassign=False,
                company_id=session["company_id"],
            )
        except AppException as e:
            return _error(e)
        return {"success": True, "assignment": assignment.model_dump(mode="json")}

    async def on_conversation_close(self, sid: str, data: dict) -> dict:
        session = await self.get_session(sid)
        try:
            conversation = await self.platform.lifecycle.close(
                data.get("conversation_id"),
                rating=_rating(data.get("rating")),
                closed_by=session["user_id"],
                company_id=session["company_id"],
            )
        except AppException as e:
            return _error(e)
        return {"success": True, **conversation_payload(conversation)}

    async def on_message_send(self, sid: str, data: dict) -> dict:
        session = await self.get_session(sid)
        try:
            message = await self.platform.messenger.send_agent_message(
                data.get("conversation_id"),
                session["user_id"],
                data.get("content") or "",
                company_id=session["company_id"],
                media_url=data.get("media_url"),
            )
        except AppException as e:
            return _error(e)
        return {"success": True, "message": message_payload(message)}

    async def on_typing_start(self, sid: str, data: dict) -> None:
        await self._relay_typing(sid, data, RealtimeEvent.TYPING_START)

    async def on_typing_stop(self, sid: str, data: dict) -> None:
        await self._relay_typing(sid, data, RealtimeEvent.TYPING_STOP)

    async def _relay_typing(self, sid: str, data: dict, event: RealtimeEvent) -> None:
        conversation_id = data.get("conversation_id")
        if not conversation_id:
            return
        session = await self.get_session(sid)
        await self.emit(
            event.value,
            {"conversation_id": conversation_id, "user_id": session["user_id"]},
            room=conversation_room(conversation_id),
            skip_sid=sid,
        )


def register_agent_namespace(sio: socketio.AsyncServer, platform: Platform) -> AgentNamespace:
    """Register the agent namespace with the Socket.IO server."""
    namespace = AgentNamespace(platform)
    sio.register_namespace(namespace)
    logger.info("Agent namespace registered", namespace=namespace.namespace)
    return namespace
