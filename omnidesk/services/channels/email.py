"""Email channel adapter (SMTP out, inbound-parse webhook in)."""

import asyncio
import hashlib
import hmac
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid, parseaddr
from typing import Any

import structlog

from omnidesk.core.config import settings
from omnidesk.core.exceptions import ChannelError, RateLimitExceededError
from omnidesk.models import (
    ChannelAccount,
    ChannelType,
    InboundEvent,
    OutgoingMessage,
    SendResult,
)
from omnidesk.services.channels.base import ChannelAdapter

logger = structlog.get_logger()


class EmailAdapter(ChannelAdapter):
    """Email through an SMTP relay.

    Inbound mail arrives as a JSON/form webhook from an inbound-parse
    service with ``from``, ``subject``, ``text`` and optional ``message_id``.
    """

    @property
    def channel(self) -> ChannelType:
        return ChannelType.EMAIL

    async def parse_webhook(self, payload: dict[str, Any]) -> InboundEvent | None:
        name, address = parseaddr(payload.get("from", ""))
        if not address or "@" not in address:
            logger.debug("Email webhook without sender", payload_keys=list(payload.keys()))
            return None

        subject = (payload.get("subject") or "").strip()
        text = (payload.get("text") or "").strip()
        content = f"{subject}\n\n{text}" if subject and text else subject or text

        return InboundEvent(
            channel=ChannelType.EMAIL,
            external_id=address.lower(),
            content=content,
            sender_name=name or None,
            external_message_id=payload.get("message_id"),
        )

    def _deliver(self, account: ChannelAccount, mail: EmailMessage) -> None:
        creds = account.credentials
        host = creds.get("smtp_host", settings.smtp_host)
        port = int(creds.get("smtp_port", settings.smtp_port))

        with smtplib.SMTP(host, port, timeout=settings.channel_request_timeout_seconds) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls()
            if creds.get("username"):
                smtp.login(creds["username"], creds.get("password", ""))
            smtp.send_message(mail)

    async def send_message(self, account: ChannelAccount, message: OutgoingMessage) -> SendResult:
        if not account.address:
            raise ChannelError(
                "Sender mailbox not configured",
                channel="email",
                details={"reason": "missing_address", "account_id": account.id},
            )

        mail = EmailMessage()
        mail["From"] = account.address
        mail["To"] = message.recipient_id
        mail["Subject"] = message.subject or account.name or "Mensagem"
        mail["Message-ID"] = make_msgid()
        body = message.content
        if message.media_url:
            body = f"{body}\n\n{message.media_url}" if body else message.media_url
        mail.set_content(body)

        try:
            await asyncio.to_thread(self._deliver, account, mail)
        except smtplib.SMTPResponseException as e:
            logger.error("SMTP rejected message", code=e.smtp_code, to=message.recipient_id)
            if e.smtp_code in (421, 451, 452):
                raise RateLimitExceededError("email") from e
            raise ChannelError(
                f"SMTP error {e.smtp_code}",
                channel="email",
                details={"error_code": e.smtp_code, "recipient": message.recipient_id},
            ) from e
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery failed", error=str(e), to=message.recipient_id)
            raise ChannelError(f"SMTP delivery failed: {e}", channel="email") from e

        logger.info("Sent email", to=message.recipient_id, message_id=mail["Message-ID"])
        return SendResult(success=True, external_message_id=mail["Message-ID"])

    def validate_webhook(
        self,
        account: ChannelAccount | None,
        request_data: bytes,
        signature: str | None,
        url: str | None = None,
    ) -> bool:
        """HMAC-SHA256 of the body keyed by the account's ``webhook_secret``."""
        secret = account.credentials.get("webhook_secret") if account else None
        if not secret:
            return settings.is_development
        if not signature:
            return False
        expected = hmac.new(secret.encode("utf-8"), request_data, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)
