"""Outbound messages - persist, send through the channel, settle status."""

import structlog

from omnidesk.core.exceptions import (
    ChannelError,
    ChannelNotConnectedError,
    ConfigurationError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitExceededError,
    ValidationError,
)
from omnidesk.models import (
    ChannelAccount,
    ChannelAccountStatus,
    ChannelType,
    Conversation,
    DeliveryStatus,
    Message,
    MessageDirection,
    MessageType,
)
from omnidesk.services.channels.registry import ChannelRegistry
from omnidesk.services.realtime.notifier import RealtimeEvent, RealtimeNotifier
from omnidesk.storage.base import StorageBackend

logger = structlog.get_logger()

# Failures that settle a message as FAILED instead of aborting the caller
DELIVERY_ERRORS = (
    ChannelError,
    ChannelNotConnectedError,
    ConfigurationError,
    RateLimitExceededError,
    ValidationError,
)


def message_payload(message: Message) -> dict:
    return {"message": message.model_dump(mode="json"), "conversation_id": message.conversation_id}


class OutboundMessenger:
    """Sends messages to contacts on the conversation's latest channel.

    Every outbound message is stored as SENT before the transport is called,
    then settled: DELIVERED when the transport accepted it (or left SENT for
    transports that post receipts later), FAILED when it refused.
    """

    def __init__(
        self,
        storage: StorageBackend,
        channels: ChannelRegistry,
        notifier: RealtimeNotifier,
    ) -> None:
        self.storage = storage
        self.channels = channels
        self.notifier = notifier

    async def channel_account(self, company_id: str, channel: ChannelType) -> ChannelAccount:
        """The company's connected account on ``channel``.

        Raises:
            ChannelNotConnectedError: If there is none
        """
        accounts = await self.storage.list_channel_accounts(
            company_id, channel=channel, status=ChannelAccountStatus.CONNECTED
        )
        if not accounts:
            raise ChannelNotConnectedError(company_id, channel.value)
        return accounts[0]

    async def recipient_for(self, conversation: Conversation, channel: ChannelType) -> str:
        contact = await self.storage.get_contact(conversation.contact_id)
        if contact is None:
            raise NotFoundError("Contact", conversation.contact_id)
        address = contact.address_for(channel)
        if not address:
            raise ValidationError(
                f"Contact has no address on {channel.value}",
                details={"contact_id": contact.id, "channel": channel.value},
            )
        return address

    async def deliver(
        self,
        conversation: Conversation,
        content: str,
        *,
        sending_user_id: str | None = None,
        is_from_bot: bool = False,
        campaign_id: str | None = None,
        media_url: str | None = None,
        message_type: MessageType = MessageType.TEXT,
        channel: ChannelType | None = None,
        raise_errors: bool = False,
    ) -> Message:
        """Store and send one outbound message.

        Args:
            conversation: Conversation the message belongs to
            content: Text to send
            sending_user_id: Agent who wrote it; None for bot and campaign sends
            is_from_bot: Whether the chatbot produced it
            campaign_id: Campaign that produced it
            media_url: Optional attachment
            message_type: Content type
            channel: Override the conversation's latest channel
            raise_errors: Re-raise transport errors after marking the message FAILED

        Returns:
            The stored message with its settled status
        """
        channel = channel or conversation.last_channel or conversation.created_via
        if channel is None:
            raise ValidationError(
                "Conversation has no channel to reply on",
                details={"conversation_id": conversation.id},
            )

        message = Message(
            conversation_id=conversation.id,
            company_id=conversation.company_id,
            content=content,
            message_type=message_type,
            direction=MessageDirection.OUTBOUND,
            media_url=media_url,
            channel=channel,
            sending_user_id=sending_user_id,
            is_from_bot=is_from_bot,
            campaign_id=campaign_id,
        )
        message = await self.storage.save_message(message)

        try:
            account = await self.channel_account(conversation.company_id, channel)
            recipient_id = await self.recipient_for(conversation, channel)
            result = await self.channels.send(
                account, recipient_id, content, media_url=media_url, message_type=message_type
            )
        except DELIVERY_ERRORS as e:
            logger.warning(
                "Outbound message failed",
                message_id=message.id,
                conversation_id=conversation.id,
                channel=channel.value,
                error=str(e),
            )
            message = await self.storage.update_message_status(
                message.id, DeliveryStatus.FAILED, failure_reason=str(e)
            )
            await self._notify(message)
            if raise_errors:
                raise
            return message

        if not result.success:
            message = await self.storage.update_message_status(
                message.id,
                DeliveryStatus.FAILED,
                external_message_id=result.external_message_id,
                failure_reason=result.error or "Transport refused the message",
            )
        elif result.status == DeliveryStatus.SENT and self.channels.get(channel).reports_delivery:
            message.external_message_id = result.external_message_id
            message = await self.storage.save_message(message)
        else:
            message = await self.storage.update_message_status(
                message.id,
                DeliveryStatus.DELIVERED if result.status == DeliveryStatus.SENT else result.status,
                external_message_id=result.external_message_id,
            )

        logger.info(
            "Outbound message sent",
            message_id=message.id,
            conversation_id=conversation.id,
            channel=channel.value,
            status=message.status.value,
        )
        await self._notify(message)
        return message

    async def send_agent_message(
        self,
        conversation_id: str,
        agent_id: str,
        content: str,
        company_id: str | None = None,
        media_url: str | None = None,
        message_type: MessageType = MessageType.TEXT,
    ) -> Message:
        """Send a message written by an agent.

        Raises:
            NotFoundError: Unknown conversation or agent outside the company
            InvalidTransitionError: The conversation is closed
        """
        conversation = await self.storage.get_conversation(conversation_id)
        if conversation is None or (company_id is not None and conversation.company_id != company_id):
            raise NotFoundError("Conversation", conversation_id)
        agent = await self.storage.get_user(agent_id)
        if agent is None or agent.company_id != conversation.company_id:
            raise NotFoundError("Agent", agent_id)
        if not conversation.is_active:
            raise InvalidTransitionError(
                "conversation", conversation_id, conversation.status.value, "message"
            )
        if not content.strip() and not media_url:
            raise ValidationError("Message content is required")

        return await self.deliver(
            conversation,
            content,
            sending_user_id=agent_id,
            media_url=media_url,
            message_type=message_type,
        )

    async def update_delivery_status(
        self,
        external_message_id: str,
        status: DeliveryStatus,
        failure_reason: str | None = None,
    ) -> Message | None:
        """Apply a delivery receipt from a channel.

        Unknown ids and receipts for already settled messages are ignored.
        """
        message = await self.storage.find_message_by_external_id(external_message_id)
        if message is None:
            logger.debug("Delivery receipt for unknown message", external_message_id=external_message_id)
            return None

        try:
            message = await self.storage.update_message_status(
                message.id, status, failure_reason=failure_reason
            )
        except InvalidTransitionError:
            logger.debug(
                "Delivery receipt ignored, status already settled",
                message_id=message.id,
                status=status.value,
            )
            return None

        await self._notify(message)
        return message

    async def _notify(self, message: Message) -> None:
        payload = message_payload(message)
        await self.notifier.to_company(message.company_id, RealtimeEvent.MESSAGE_NEW, payload)
        await self.notifier.to_conversation(message.conversation_id, RealtimeEvent.MESSAGE_NEW, payload)
