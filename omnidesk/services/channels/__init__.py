"""Channel adapters for different communication platforms."""

from omnidesk.services.channels.base import ChannelAdapter
from omnidesk.services.channels.email import EmailAdapter
from omnidesk.services.channels.meta import InstagramAdapter, MetaMessengerAdapter
from omnidesk.services.channels.registry import ChannelRegistry
from omnidesk.services.channels.telegram import TelegramAdapter
from omnidesk.services.channels.twilio import TwilioSMSAdapter, TwilioWhatsAppAdapter
from omnidesk.services.channels.webchat import WebChatAdapter

__all__ = [
    "ChannelAdapter",
    "ChannelRegistry",
    "EmailAdapter",
    "InstagramAdapter",
    "MetaMessengerAdapter",
    "TelegramAdapter",
    "TwilioSMSAdapter",
    "TwilioWhatsAppAdapter",
    "WebChatAdapter",
]
