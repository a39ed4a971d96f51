"""Routing decision engine - bot or human for each inbound message."""

from typing import TYPE_CHECKING

import structlog

from omnidesk.core.config import settings
from omnidesk.core.locks import KeyedLock, LockTimeoutError
from omnidesk.models import CAPACITY_ROLES, BusinessHours, ChatbotConfig, Conversation, Message, UserStatus
from omnidesk.services.conversation.lifecycle import ConversationLifecycleManager
from omnidesk.services.presence import PresenceTracker
from omnidesk.services.routing.assigner import AgentAssigner
from omnidesk.services.routing.business_hours import is_business_hours
from omnidesk.services.routing.outcome import RoutingOutcome
from omnidesk.services.scheduling.scheduler import Clock, SystemClock
from omnidesk.storage.base import StorageBackend

if TYPE_CHECKING:
    from omnidesk.services.chatbot.pipeline import ChatbotPipeline

logger = structlog.get_logger()


class RoutingEngine:
    """Decides who answers an inbound message.

    The bot answers when the company has an active chatbot and either nobody
    is online, it is outside business hours, or the conversation has no
    agent yet. Otherwise the message goes to the current agent, or the
    conversation is assigned to the least-loaded online agent, or it waits
    in the queue.

    Decisions for one conversation are serialized; different conversations
    are routed concurrently.
    """

    def __init__(
        self,
        storage: StorageBackend,
        presence: PresenceTracker,
        lifecycle: ConversationLifecycleManager,
        assigner: AgentAssigner,
        chatbot: "ChatbotPipeline",
        locks: KeyedLock | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.storage = storage
        self.presence = presence
        self.lifecycle = lifecycle
        self.assigner = assigner
        self.chatbot = chatbot
        self.clock = clock or SystemClock()
        if locks is None:
            locks = KeyedLock("routing", timeout=settings.routing_lock_timeout_seconds)
        self._locks = locks

    async def online_agent_count(self, company_id: str) -> int:
        """ACTIVE agents, managers and admins of the company that are online."""
        online = self.presence.online_agents(company_id)
        if not online:
            return 0
        users = await self.storage.list_users(
            company_id,
            roles=CAPACITY_ROLES,
            status=UserStatus.ACTIVE,
            user_ids=online,
        )
        return len(users)

    async def route(self, message: Message, conversation: Conversation) -> RoutingOutcome:
        """Route one inbound message.

        Never raises for collaborator failures: anything that prevents a
        decision leaves the conversation waiting for an agent.
        """
        try:
            async with self._locks.acquire(conversation.id):
                return await self._route(message, conversation)
        except LockTimeoutError:
            logger.warning(
                "Routing lock timed out, queueing conversation",
                conversation_id=conversation.id,
                message_id=message.id,
            )
            return await self._fail_closed(conversation, reason="routing_busy")

    async def _route(self, message: Message, conversation: Conversation) -> RoutingOutcome:
        company_id = conversation.company_id
        try:
            # Re-read under the lock; an earlier message may have changed it
            conversation = await self.storage.get_conversation(conversation.id) or conversation
            chatbots = await self.storage.list_chatbot_configs(company_id, active_only=True)
            company = await self.storage.get_company(company_id)
            online = await self.online_agent_count(company_id)
            current = await self.storage.get_active_assignment(conversation.id)
        except Exception as e:
            logger.error(
                "Routing lookup failed",
                conversation_id=conversation.id,
                error=str(e),
                exc_info=True,
            )
            return await self._fail_closed(conversation)

        hours = company.business_hours if company else BusinessHours()
        in_hours = is_business_hours(hours, self.clock.now())
        use_bot = bool(chatbots) and (online == 0 or not in_hours or current is None)

        logger.info(
            "Routing decision",
            conversation_id=conversation.id,
            company_id=company_id,
            use_bot=use_bot,
            online_agents=online,
            business_hours=in_hours,
            assigned_agent_id=current.agent_id if current else None,
        )

        try:
            if use_bot:
                return await self.chatbot.handle(message, conversation, self._pick_chatbot(chatbots))
            if current is not None:
                return RoutingOutcome.agent(current.agent_id)
            return await self.assigner.assign_available(conversation)
        except Exception as e:
            logger.error(
                "Routing failed",
                conversation_id=conversation.id,
                error=str(e),
                exc_info=True,
            )
            return await self._fail_closed(conversation)

    @staticmethod
    def _pick_chatbot(chatbots: list[ChatbotConfig]) -> ChatbotConfig:
        # Oldest active configuration wins
        return chatbots[0]

    async def _fail_closed(self, conversation: Conversation, reason: str = "routing_error") -> RoutingOutcome:
        try:
            await self.lifecycle.queue(conversation, reason=reason)
        except Exception as e:
            logger.error(
                "Could not queue conversation after routing failure",
                conversation_id=conversation.id,
                error=str(e),
            )
        return RoutingOutcome.queued()
