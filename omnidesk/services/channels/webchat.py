"""Web chat channel - visitors talk to us over the realtime transport."""

from typing import Any

import structlog

from omnidesk.core.config import settings
from omnidesk.models import (
    ChannelAccount,
    ChannelType,
    InboundEvent,
    MessageType,
    OutgoingMessage,
    SendResult,
)
from omnidesk.models.common import new_id, utcnow
from omnidesk.services.channels.base import ChannelAdapter
from omnidesk.services.realtime.notifier import RealtimeEvent, RealtimeNotifier

logger = structlog.get_logger()


def visitor_room(session_id: str) -> str:
    return f"visitor_{session_id}"


class WebChatAdapter(ChannelAdapter):
    """The widget posts visitor messages to the webhook and listens on its
    own visitor room for replies."""

    def __init__(self, notifier: RealtimeNotifier) -> None:
        self.notifier = notifier

    @property
    def channel(self) -> ChannelType:
        return ChannelType.WEBCHAT

    async def parse_webhook(self, payload: dict[str, Any]) -> InboundEvent | None:
        session_id = str(payload.get("session_id") or "").strip()
        if not session_id:
            return None

        media_url = payload.get("media_url")
        return InboundEvent(
            channel=ChannelType.WEBCHAT,
            external_id=session_id,
            content=payload.get("text", ""),
            message_type=MessageType.from_content_type(payload.get("media_type"))
            if media_url
            else MessageType.TEXT,
            media_url=media_url,
            sender_name=payload.get("name"),
            external_message_id=payload.get("client_message_id"),
        )

    async def send_message(self, account: ChannelAccount, message: OutgoingMessage) -> SendResult:
        external_id = new_id()
        await self.notifier.emit(
            RealtimeEvent.MESSAGE_NEW,
            {
                "id": external_id,
                "content": message.content,
                "type": message.message_type.value,
                "media_url": message.media_url,
                "created_at": utcnow().isoformat(),
            },
            visitor_room(message.recipient_id),
        )
        logger.debug("Sent web chat message", session_id=message.recipient_id)
        return SendResult(success=True, external_message_id=external_id)

    def validate_webhook(
        self,
        account: ChannelAccount | None,
        request_data: bytes,
        signature: str | None,
        url: str | None = None,
    ) -> bool:
        # Widget requests are unsigned; only a connected account accepts them.
        return True if settings.is_development else bool(account and account.is_connected)
