"""Telegram Bot API channel adapter."""

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

# Bot API method and payload field per outgoing media type.
_MEDIA_METHODS = {
    MessageType.IMAGE: ("sendPhoto", "photo"),
    MessageType.AUDIO: ("sendAudio", "audio"),
    MessageType.VIDEO: ("sendVideo", "video"),
    MessageType.DOCUMENT: ("sendDocument", "document"),
}


class TelegramAdapter(ChannelAdapter):
    """Telegram bots; the account's ``bot_token`` credential selects the bot.

    The contact's external id is the chat id.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=settings.telegram_api_base,
            timeout=settings.channel_request_timeout_seconds,
        )

    @property
    def channel(self) -> ChannelType:
        return ChannelType.TELEGRAM

    async def parse_webhook(self, payload: dict[str, Any]) -> InboundEvent | None:
        message = payload.get("message") or payload.get("edited_message")
        if not message:
            logger.debug("Telegram update without message", update_keys=list(payload.keys()))
            return None

        chat = message.get("chat", {})
        sender = message.get("from", {})
        if "id" not in chat:
            return None

        content = message.get("text") or message.get("caption") or ""
        message_type = MessageType.TEXT
        if message.get("photo"):
            message_type = MessageType.IMAGE
        elif message.get("voice") or message.get("audio"):
            message_type = MessageType.AUDIO
        elif message.get("video"):
            message_type = MessageType.VIDEO
        elif message.get("document"):
            message_type = MessageType.DOCUMENT

        username = sender.get("username")
        full_name = " ".join(
            part for part in (sender.get("first_name"), sender.get("last_name")) if part
        )

        return InboundEvent(
            channel=ChannelType.TELEGRAM,
            external_id=str(chat["id"]),
            content=content,
            message_type=message_type,
            sender_name=full_name or (f"@{username}" if username else None),
            external_message_id=str(message.get("message_id", "")) or None,
        )

    async def send_message(self, account: ChannelAccount, message: OutgoingMessage) -> SendResult:
        token = account.credentials.get("bot_token")
        if not token:
            raise ChannelError(
                "Telegram bot token not configured",
                channel="telegram",
                details={"reason": "missing_credentials", "account_id": account.id},
            )

        method, data = "sendMessage", {"chat_id": message.recipient_id, "text": message.content}
        if message.media_url and message.message_type in _MEDIA_METHODS:
            method, field = _MEDIA_METHODS[message.message_type]
            data = {"chat_id": message.recipient_id, field: message.media_url}
            if message.content:
                data["caption"] = message.content

        try:
            response = await self._client.post(f"/bot{token}/{method}", json=data)
        except httpx.HTTPError as e:
            logger.error("Telegram request failed", error=str(e), chat_id=message.recipient_id)
            raise ChannelError(f"Telegram request failed: {e}", channel="telegram") from e

        body = response.json() if response.content else {}
        if response.status_code == 429:
            retry_after = body.get("parameters", {}).get("retry_after")
            raise RateLimitExceededError("telegram", retry_after=retry_after)
        if not body.get("ok"):
            logger.error(
                "Telegram API error",
                status_code=response.status_code,
                description=body.get("description"),
            )
            raise ChannelError(
                f"Telegram API error: {body.get('description', response.status_code)}",
                channel="telegram",
                details={"error_code": body.get("error_code")},
            )

        message_id = body.get("result", {}).get("message_id")
        logger.info("Sent Telegram message", chat_id=message.recipient_id, message_id=message_id)
        return SendResult(success=True, external_message_id=str(message_id) if message_id else None)

    def validate_webhook(
        self,
        account: ChannelAccount | None,
        request_data: bytes,
        signature: str | None,
        url: str | None = None,
    ) -> bool:
        """Compare X-Telegram-Bot-Api-Secret-Token with the account's webhook secret."""
        secret = account.credentials.get("webhook_secret") if account else None
        if not secret:
            return settings.is_development
        return bool(signature) and hmac.compare_digest(secret, signature)

    async def aclose(self) -> None:
        await self._client.aclose()
