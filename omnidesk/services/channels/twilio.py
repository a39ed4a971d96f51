"""Twilio channel adapters (WhatsApp and SMS)."""

import asyncio
from typing import Any

import structlog
from twilio.base.exceptions import TwilioRestException
from twilio.request_validator import RequestValidator
from twilio.rest import Client as TwilioClient

from omnidesk.core.config import settings
from omnidesk.core.exceptions import ChannelError, RateLimitExceededError
from omnidesk.models import (
    ChannelAccount,
    ChannelType,
    DeliveryStatus,
    InboundEvent,
    MessageType,
    OutgoingMessage,
    SendResult,
)
from omnidesk.services.channels.base import ChannelAdapter

logger = structlog.get_logger()

_STATUS_MAP = {
    "delivered": DeliveryStatus.DELIVERED,
    "read": DeliveryStatus.DELIVERED,
    "failed": DeliveryStatus.FAILED,
    "undelivered": DeliveryStatus.FAILED,
}


class TwilioAdapter(ChannelAdapter):
    """Shared Twilio plumbing.

    Handles:
    - Webhook parsing for incoming messages
    - Sending messages via the Twilio REST API
    - Webhook signature validation
    - Delivery status callbacks

    Credentials come from the channel account when present, falling back to
    the global settings.
    """

    reports_delivery = True
    address_prefix = ""

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        default_from: str | None = None,
    ) -> None:
        self.account_sid = account_sid or settings.twilio_account_sid
        self.auth_token = auth_token or settings.twilio_auth_token
        self.default_from = default_from or ""
        self._clients: dict[str, TwilioClient] = {}

        if not (self.account_sid and self.auth_token):
            logger.warning("Twilio credentials not configured", channel=self.channel.value)

    def _credentials(self, account: ChannelAccount | None) -> tuple[str, str]:
        creds = account.credentials if account else {}
        return (
            creds.get("account_sid", self.account_sid),
            creds.get("auth_token", self.auth_token),
        )

    def _get_client(self, account: ChannelAccount) -> TwilioClient:
        """Get Twilio client, raising error if not configured."""
        sid, token = self._credentials(account)
        if not (sid and token):
            raise ChannelError(
                "Twilio client not configured",
                channel=self.channel.value,
                details={"reason": "missing_credentials"},
            )
        if sid not in self._clients:
            self._clients[sid] = TwilioClient(sid, token)
        return self._clients[sid]

    def _address(self, number: str) -> str:
        if self.address_prefix and not number.startswith(self.address_prefix):
            return f"{self.address_prefix}{number}"
        return number

    def _strip(self, number: str) -> str:
        return number.removeprefix(self.address_prefix) if self.address_prefix else number

    async def parse_webhook(self, payload: dict[str, Any]) -> InboundEvent | None:
        """Parse Twilio webhook payload.

        Twilio sends form-urlencoded data with fields like:
        - From: whatsapp:+1234567890 (or a bare number for SMS)
        - Body: Message text
        - MessageSid: Unique message ID
        - NumMedia / MediaUrl0 / MediaContentType0
        - ProfileName (WhatsApp only)
        """
        message_sid = payload.get("MessageSid")
        if not message_sid or payload.get("MessageStatus"):
            logger.debug("Webhook is not a message event", payload_keys=list(payload.keys()))
            return None

        from_number = payload.get("From", "")
        if self.address_prefix and not from_number.startswith(self.address_prefix):
            logger.warning("Invalid sender format", channel=self.channel.value, from_number=from_number)
            return None

        external_id = self._strip(from_number)
        num_media = int(payload.get("NumMedia", 0) or 0)
        message_type = MessageType.TEXT
        media_url = None

        if num_media > 0:
            media_url = payload.get("MediaUrl0")
            message_type = MessageType.from_content_type(payload.get("MediaContentType0"))

        event = InboundEvent(
            channel=self.channel,
            external_id=external_id,
            content=payload.get("Body", "").strip(),
            message_type=message_type,
            media_url=media_url,
            sender_name=payload.get("ProfileName"),
            external_message_id=message_sid,
        )

        logger.info(
            "Parsed Twilio message",
            channel=self.channel.value,
            external_id=external_id,
            message_type=message_type.value,
            has_media=num_media > 0,
        )
        return event

    async def send_message(self, account: ChannelAccount, message: OutgoingMessage) -> SendResult:
        client = self._get_client(account)
        to_number = self._address(message.recipient_id)
        from_number = self._address(account.address or self.default_from)

        params: dict[str, Any] = {"from_": from_number, "to": to_number, "body": message.content}
        if message.media_url:
            params["media_url"] = [message.media_url]

        try:
            twilio_message = await asyncio.to_thread(client.messages.create, **params)
        except TwilioRestException as e:
            logger.error(
                "Failed to send Twilio message",
                channel=self.channel.value,
                error=str(e),
                error_code=e.code,
                to=to_number,
            )
            if e.status == 429:
                raise RateLimitExceededError(self.channel.value) from e
            raise ChannelError(
                f"Failed to send {self.channel.value} message: {e.msg}",
                channel=self.channel.value,
                details={"error_code": e.code, "recipient": to_number},
            ) from e

        logger.info(
            "Sent Twilio message",
            channel=self.channel.value,
            message_sid=twilio_message.sid,
            to=to_number,
            status=twilio_message.status,
        )
        return SendResult(success=True, external_message_id=twilio_message.sid)

    def validate_webhook(
        self,
        account: ChannelAccount | None,
        request_data: bytes,
        signature: str | None,
        url: str | None = None,
    ) -> bool:
        """Validate the X-Twilio-Signature header.

        Twilio signs the full request URL plus the sorted POST parameters with
        HMAC-SHA1 keyed by the auth token.
        """
        _, token = self._credentials(account)
        if settings.is_development and not signature:
            logger.warning("Skipping webhook validation in development mode")
            return True
        if not token or not signature or not url:
            logger.warning("Cannot validate Twilio webhook", has_token=bool(token), has_url=bool(url))
            return False

        from urllib.parse import parse_qsl

        params = dict(parse_qsl(request_data.decode("utf-8"), keep_blank_values=True))
        return RequestValidator(token).validate(url, params, signature)

    def parse_status_callback(self, payload: dict[str, Any]) -> tuple[str, DeliveryStatus] | None:
        sid = payload.get("MessageSid")
        status = _STATUS_MAP.get(str(payload.get("MessageStatus", "")).lower())
        if not sid or status is None:
            return None
        return sid, status


class TwilioWhatsAppAdapter(TwilioAdapter):
    """WhatsApp through Twilio; addresses carry a ``whatsapp:`` prefix."""

    address_prefix = "whatsapp:"

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("default_from", settings.twilio_whatsapp_number)
        super().__init__(**kwargs)

    @property
    def channel(self) -> ChannelType:
        return ChannelType.WHATSAPP


class TwilioSMSAdapter(TwilioAdapter):
    """Plain SMS through Twilio."""

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("default_from", settings.twilio_sms_number)
        super().__init__(**kwargs)

    @property
    def channel(self) -> ChannelType:
        return ChannelType.SMS
