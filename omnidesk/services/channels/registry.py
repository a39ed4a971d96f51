"""Channel registry - one adapter per channel behind a uniform send call."""

import structlog

from omnidesk.core.exceptions import ConfigurationError
from omnidesk.models import ChannelAccount, ChannelType, MessageType, OutgoingMessage, SendResult
from omnidesk.services.channels.base import ChannelAdapter

logger = structlog.get_logger()


class ChannelRegistry:
    """Looks up the adapter for a channel and sends through it."""

    def __init__(self, adapters: list[ChannelAdapter] | None = None) -> None:
        self._adapters: dict[ChannelType, ChannelAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: ChannelAdapter) -> None:
        self._adapters[adapter.channel] = adapter

    def get(self, channel: ChannelType) -> ChannelAdapter:
        adapter = self._adapters.get(channel)
        if adapter is None:
            raise ConfigurationError(
                f"No adapter registered for channel {channel.value}",
                details={"channel": channel.value},
            )
        return adapter

    def __contains__(self, channel: ChannelType) -> bool:
        return channel in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)

    def channels(self) -> list[ChannelType]:
        return list(self._adapters)

    async def send(
        self,
        account: ChannelAccount,
        recipient_id: str,
        content: str,
        media_url: str | None = None,
        message_type: MessageType = MessageType.TEXT,
        subject: str | None = None,
    ) -> SendResult:
        """Send through the adapter of ``account.channel``.

        Raises:
            ChannelError: If the transport fails
            RateLimitExceededError: If the transport throttles the send
        """
        adapter = self.get(account.channel)
        message = OutgoingMessage(
            content=content,
            recipient_id=recipient_id,
            message_type=message_type,
            media_url=media_url,
            subject=subject,
        )
        return await adapter.send_message(account, message)

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            try:
                await adapter.aclose()
            except Exception as e:
                logger.warning("Failed to close channel adapter", channel=adapter.channel.value, error=str(e))
