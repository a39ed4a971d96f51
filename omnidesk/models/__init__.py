"""Data models for the application."""

from omnidesk.models.campaign import (
    Campaign,
    CampaignError,
    CampaignRecipient,
    CampaignResults,
    CampaignStatus,
)
from omnidesk.models.company import (
    ASSIGNABLE_ROLES,
    CAPACITY_ROLES,
    BusinessHours,
    ChannelAccount,
    ChannelAccountStatus,
    ChatbotConfig,
    Company,
    CompanyStatus,
    User,
    UserRole,
    UserStatus,
)
from omnidesk.models.contact import Contact
from omnidesk.models.conversation import (
    ACTIVE_STATUSES,
    Conversation,
    ConversationAgent,
    ConversationStatus,
)
from omnidesk.models.message import (
    PHONE_CHANNELS,
    SOCIAL_CHANNELS,
    ChannelType,
    DeliveryStatus,
    InboundEvent,
    Message,
    MessageDirection,
    MessageType,
    OutgoingMessage,
    SendResult,
)

__all__ = [
    # Company
    "ASSIGNABLE_ROLES",
    "CAPACITY_ROLES",
    "BusinessHours",
    "ChannelAccount",
    "ChannelAccountStatus",
    "ChatbotConfig",
    "Company",
    "CompanyStatus",
    "User",
    "UserRole",
    "UserStatus",
    # Contact
    "Contact",
    # Conversation
    "ACTIVE_STATUSES",
    "Conversation",
    "ConversationAgent",
    "ConversationStatus",
    # Message
    "PHONE_CHANNELS",
    "SOCIAL_CHANNELS",
    "ChannelType",
    "DeliveryStatus",
    "InboundEvent",
    "Message",
    "MessageDirection",
    "MessageType",
    "OutgoingMessage",
    "SendResult",
    # Campaign
    "Campaign",
    "CampaignError",
    "CampaignRecipient",
    "CampaignResults",
    "CampaignStatus",
]
