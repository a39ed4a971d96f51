"""Inbound message processing - from a normalized channel event to a routing decision."""

from dataclasses import dataclass

import structlog

from omnidesk.core.exceptions import NotFoundError
from omnidesk.core.locks import KeyedLock
from omnidesk.models import Contact, Conversation, InboundEvent, Message, MessageDirection
from omnidesk.services.contacts import ContactHints, ContactResolver
from omnidesk.services.conversation.lifecycle import ConversationLifecycleManager
from omnidesk.services.messaging.outbound import message_payload
from omnidesk.services.realtime.notifier import RealtimeEvent, RealtimeNotifier
from omnidesk.services.routing import RoutingEngine, RoutingOutcome
from omnidesk.storage.base import StorageBackend

logger = structlog.get_logger()


@dataclass
class InboundResult:
    """What happened to one inbound event."""

    message: Message
    conversation: Conversation
    contact: Contact | None = None
    outcome: RoutingOutcome | None = None
    duplicate: bool = False


class InboundMessageProcessor:
    """Resolves the sender, files the message and routes it.

    Messages of one conversation are stored and announced in arrival order;
    routing runs after the message is visible to agents.
    """

    def __init__(
        self,
        storage: StorageBackend,
        resolver: ContactResolver,
        lifecycle: ConversationLifecycleManager,
        router: RoutingEngine,
        notifier: RealtimeNotifier,
        locks: KeyedLock | None = None,
        dedupe_locks: KeyedLock | None = None,
    ) -> None:
        self.storage = storage
        self.resolver = resolver
        self.lifecycle = lifecycle
        self.router = router
        self.notifier = notifier
        self._locks = locks if locks is not None else KeyedLock("conversation-ingest")
        self._dedupe_locks = dedupe_locks if dedupe_locks is not None else KeyedLock("inbound-dedupe")

    async def process(self, company_id: str, event: InboundEvent) -> InboundResult:
        """Handle one inbound event for a company.

        Redeliveries of a provider message id are filed once; concurrent
        copies wait for the first and come back as duplicates.

        Raises:
            NotFoundError: If the company doesn't exist
            InvalidIdentityError: If the sender id is unusable
        """
        company = await self.storage.get_company(company_id)
        if company is None:
            raise NotFoundError("Company", company_id)

        if event.external_message_id:
            async with self._dedupe_locks.acquire(event.external_message_id):
                result = await self._file(company_id, event)
        else:
            result = await self._file(company_id, event)

        if result.duplicate:
            return result

        message, conversation, contact = result.message, result.conversation, result.contact
        outcome = await self.router.route(message, conversation)
        logger.info(
            "Inbound message routed",
            message_id=message.id,
            conversation_id=conversation.id,
            decision=outcome.kind.value,
            agent_id=outcome.agent_id,
        )
        return InboundResult(message=message, conversation=conversation, contact=contact, outcome=outcome)

    async def _file(self, company_id: str, event: InboundEvent) -> InboundResult:
        if event.external_message_id:
            existing = await self.storage.find_message_by_external_id(event.external_message_id)
            if existing is not None:
                logger.info(
                    "Duplicate inbound message ignored",
                    external_message_id=event.external_message_id,
                    message_id=existing.id,
                )
                conversation = await self.lifecycle.get(existing.conversation_id)
                return InboundResult(message=existing, conversation=conversation, duplicate=True)

        contact = await self.resolver.resolve(
            event.channel,
            event.external_id,
            ContactHints(name=event.sender_name, avatar_url=event.sender_avatar_url),
        )
        conversation = await self.lifecycle.find_or_create_active(contact.id, company_id, event.channel)

        async with self._locks.acquire(conversation.id):
            conversation = await self.lifecycle.get(conversation.id)
            conversation.touch(event.channel)
            conversation = await self.storage.save_conversation(conversation)

            message = await self.storage.save_message(
                Message(
                    conversation_id=conversation.id,
                    company_id=company_id,
                    content=event.content,
                    message_type=event.message_type,
                    direction=MessageDirection.INBOUND,
                    media_url=event.media_url,
                    channel=event.channel,
                    external_message_id=event.external_message_id,
                    created_at=event.timestamp,
                )
            )

            payload = {
                **message_payload(message),
                "contact": contact.model_dump(mode="json"),
                "conversation": conversation.model_dump(mode="json"),
            }
            await self.notifier.to_company(company_id, RealtimeEvent.MESSAGE_NEW, payload)
            await self.notifier.to_conversation(conversation.id, RealtimeEvent.MESSAGE_NEW, payload)

        logger.info(
            "Inbound message stored",
            message_id=message.id,
            conversation_id=conversation.id,
            contact_id=contact.id,
            channel=event.channel.value,
        )
        return InboundResult(message=message, conversation=conversation, contact=contact)
