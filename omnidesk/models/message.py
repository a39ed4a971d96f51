"""Message models for all channels."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from omnidesk.models.common import new_id, utcnow


class ChannelType(str, Enum):
    """Supported communication channels."""

    WHATSAPP = "whatsapp"
    INSTAGRAM = "instagram"
    TELEGRAM = "telegram"
    FACEBOOK = "facebook"
    SMS = "sms"
    EMAIL = "email"
    WEBCHAT = "webchat"


# Channels whose external id is a phone number.
PHONE_CHANNELS = frozenset({ChannelType.WHATSAPP, ChannelType.SMS})

# Channels whose external id is a handle or page-scoped id.
SOCIAL_CHANNELS = frozenset({ChannelType.INSTAGRAM, ChannelType.TELEGRAM, ChannelType.FACEBOOK})


class MessageDirection(str, Enum):
    """Direction of the message."""

    INBOUND = "inbound"  # From contact
    OUTBOUND = "outbound"  # To contact


class MessageType(str, Enum):
    """Type of message content."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"

    @classmethod
    def from_content_type(cls, content_type: str | None) -> "MessageType":
        """Map a MIME type to a message type."""
        if not content_type:
            return cls.DOCUMENT
        if content_type.startswith("image/"):
            return cls.IMAGE
        if content_type.startswith("audio/"):
            return cls.AUDIO
        if content_type.startswith("video/"):
            return cls.VIDEO
        return cls.DOCUMENT


class DeliveryStatus(str, Enum):
    """Delivery status; only SENT may change afterwards."""

    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"

    def can_become(self, target: "DeliveryStatus") -> bool:
        return self == DeliveryStatus.SENT and target in (
            DeliveryStatus.DELIVERED,
            DeliveryStatus.FAILED,
        )


class Message(BaseModel):
    """Universal message model for all channels."""

    id: str = Field(default_factory=new_id)
    conversation_id: str
    company_id: str

    # Content
    content: str = ""
    message_type: MessageType = MessageType.TEXT
    direction: MessageDirection
    media_url: str | None = None

    # Channel info
    channel: ChannelType
    external_message_id: str | None = None

    # Origin
    sending_user_id: str | None = Field(
        default=None,
        description="Agent who sent the message; None for contacts, bots and campaigns",
    )
    is_from_bot: bool = False
    campaign_id: str | None = None

    # Delivery
    status: DeliveryStatus = DeliveryStatus.SENT
    failure_reason: str | None = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    delivered_at: datetime | None = None

    def to_llm_message(self) -> dict[str, str]:
        """Convert to LLM message format for context."""
        if self.direction == MessageDirection.INBOUND:
            return {"role": "user", "content": self.content}
        return {"role": "assistant", "content": self.content}


class InboundEvent(BaseModel):
    """Normalized inbound message from any channel webhook."""

    channel: ChannelType
    external_id: str
    content: str = ""
    message_type: MessageType = MessageType.TEXT
    media_url: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)

    # Sender hints
    sender_name: str | None = None
    sender_avatar_url: str | None = None

    external_message_id: str | None = None


class OutgoingMessage(BaseModel):
    """Message to be sent to a contact."""

    content: str
    recipient_id: str
    message_type: MessageType = MessageType.TEXT
    media_url: str | None = None
    subject: str | None = None  # Email only


class SendResult(BaseModel):
    """Outcome reported by a channel transport for one send."""

    success: bool
    external_message_id: str | None = None
    status: DeliveryStatus = DeliveryStatus.SENT
    error: str | None = None
