"""Meta Graph API adapters (Facebook Messenger and Instagram Direct)."""

import hashlib
import hmac
from typing import Any

import httpx
import structlog

from omnidesk.core.config import settings
from omnidesk.core.exceptions import ChannelError, RateLimitExceededError
from omnidesk.models import (
    ChannelAccount,
    ChannelType,
    InboundEvent,
    MessageType,
    OutgoingMessage,
    SendResult,
)
from omnidesk.services.channels.base import ChannelAdapter

logger = structlog.get_logger()

# Graph API error codes that mean "slow down".
_RATE_LIMIT_CODES = {4, 17, 32, 613}

_ATTACHMENT_TYPES = {
    "image": MessageType.IMAGE,
    "audio": MessageType.AUDIO,
    "video": MessageType.VIDEO,
    "file": MessageType.DOCUMENT,
}


class MetaMessengerAdapter(ChannelAdapter):
    """Send API for a page; the account's ``page_access_token`` authorizes it.

    The contact's external id is the page-scoped (or Instagram-scoped) user id.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=settings.meta_graph_api_base,
            timeout=settings.channel_request_timeout_seconds,
        )

    @property
    def channel(self) -> ChannelType:
        return ChannelType.FACEBOOK

    async def parse_webhook(self, payload: dict[str, Any]) -> InboundEvent | None:
        """Parse the first messaging event of a page/instagram webhook."""
        for entry in payload.get("entry", []):
            for event in entry.get("messaging", []):
                message = event.get("message")
                if not message or message.get("is_echo"):
                    continue

                message_type = MessageType.TEXT
                media_url = None
                attachments = message.get("attachments") or []
                if attachments:
                    first = attachments[0]
                    message_type = _ATTACHMENT_TYPES.get(first.get("type"), MessageType.DOCUMENT)
                    media_url = first.get("payload", {}).get("url")

                return InboundEvent(
                    channel=self.channel,
                    external_id=str(event.get("sender", {}).get("id", "")),
                    content=message.get("text", ""),
                    message_type=message_type,
                    media_url=media_url,
                    external_message_id=message.get("mid"),
                )

        logger.debug("Meta webhook without message events", channel=self.channel.value)
        return None

    async def send_message(self, account: ChannelAccount, message: OutgoingMessage) -> SendResult:
        token = account.credentials.get("page_access_token")
        if not token:
            raise ChannelError(
                "Page access token not configured",
                channel=self.channel.value,
                details={"reason": "missing_credentials", "account_id": account.id},
            )

        if message.media_url and message.message_type != MessageType.TEXT:
            attachment_type = {
                MessageType.IMAGE: "image",
                MessageType.AUDIO: "audio",
                MessageType.VIDEO: "video",
            }.get(message.message_type, "file")
            body: dict[str, Any] = {
                "attachment": {"type": attachment_type, "payload": {"url": message.media_url}}
            }
        else:
            body = {"text": message.content}

        data = {
            "recipient": {"id": message.recipient_id},
            "message": body,
            "messaging_type": "RESPONSE",
        }

        try:
            response = await self._client.post(
                "/me/messages", params={"access_token": token}, json=data
            )
        except httpx.HTTPError as e:
            logger.error("Graph API request failed", channel=self.channel.value, error=str(e))
            raise ChannelError(f"Graph API request failed: {e}", channel=self.channel.value) from e

        result = response.json() if response.content else {}
        error = result.get("error")
        if response.status_code == 429 or (error and error.get("code") in _RATE_LIMIT_CODES):
            raise RateLimitExceededError(self.channel.value)
        if response.status_code >= 400 or error:
            logger.error(
                "Graph API error",
                channel=self.channel.value,
                status_code=response.status_code,
                error=error,
            )
            raise ChannelError(
                f"Graph API error: {(error or {}).get('message', response.status_code)}",
                channel=self.channel.value,
                details={"error_code": (error or {}).get("code")},
            )

        logger.info(
            "Sent Graph API message",
            channel=self.channel.value,
            recipient=message.recipient_id,
            message_id=result.get("message_id"),
        )
        return SendResult(success=True, external_message_id=result.get("message_id"))

    def validate_webhook(
        self,
        account: ChannelAccount | None,
        request_data: bytes,
        signature: str | None,
        url: str | None = None,
    ) -> bool:
        """Check X-Hub-Signature-256 (``sha256=<hex>``) against the app secret."""
        secret = account.credentials.get("app_secret") if account else None
        if not secret:
            return settings.is_development
        if not signature or not signature.startswith("sha256="):
            return False
        expected = hmac.new(secret.encode("utf-8"), request_data, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature.removeprefix("sha256="))

    async def aclose(self) -> None:
        await self._client.aclose()


class InstagramAdapter(MetaMessengerAdapter):
    """Instagram Direct uses the same Send API through the linked page."""

    @property
    def channel(self) -> ChannelType:
        return ChannelType.INSTAGRAM
