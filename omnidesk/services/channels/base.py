"""Abstract base class for channel adapters."""

from abc import ABC, abstractmethod
from typing import Any

from omnidesk.models import (
    ChannelAccount,
    ChannelType,
    DeliveryStatus,
    InboundEvent,
    OutgoingMessage,
    SendResult,
)


class ChannelAdapter(ABC):
    """Abstract base class for communication channel adapters.

    Each channel (WhatsApp, Telegram, Email, etc.) implements this interface.
    Sends raise ``ChannelError`` when the transport fails and
    ``RateLimitExceededError`` when it throttles us.
    """

    # Transports that post delivery receipts later keep accepted sends SENT
    reports_delivery: bool = False

    @property
    @abstractmethod
    def channel(self) -> ChannelType:
        """Get the channel this adapter serves."""
        ...

    @abstractmethod
    async def parse_webhook(self, payload: dict[str, Any]) -> InboundEvent | None:
        """Parse incoming webhook payload into a normalized event.

        Args:
            payload: Raw webhook payload from the channel

        Returns:
            InboundEvent or None if not a message event
        """
        ...

    @abstractmethod
    async def send_message(self, account: ChannelAccount, message: OutgoingMessage) -> SendResult:
        """Send a message through the channel.

        Args:
            account: Company account to send from
            message: OutgoingMessage to send

        Returns:
            SendResult with the channel's message id
        """
        ...

    @abstractmethod
    def validate_webhook(
        self,
        account: ChannelAccount | None,
        request_data: bytes,
        signature: str | None,
        url: str | None = None,
    ) -> bool:
        """Validate webhook signature for security.

        Args:
            account: Account the webhook was addressed to, if known
            request_data: Raw request body
            signature: Signature header value
            url: Full request URL (needed by some providers)

        Returns:
            True if valid, False otherwise
        """
        ...

    def parse_status_callback(self, payload: dict[str, Any]) -> tuple[str, DeliveryStatus] | None:
        """Extract (external message id, delivery status) from a status callback."""
        return None

    async def send_text(self, account: ChannelAccount, recipient_id: str, text: str) -> SendResult:
        """Convenience method to send a simple text message."""
        message = OutgoingMessage(
            content=text,
            recipient_id=recipient_id,
        )
        return await self.send_message(account, message)

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""
        return None
