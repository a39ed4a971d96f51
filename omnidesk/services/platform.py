"""Wiring of the routing engine and its collaborators."""

from dataclasses import dataclass, field

import structlog

from omnidesk.core.config import settings
from omnidesk.services.campaigns import CampaignDispatcher
from omnidesk.services.channels import (
    ChannelRegistry,
    EmailAdapter,
    InstagramAdapter,
    MetaMessengerAdapter,
    TelegramAdapter,
    TwilioSMSAdapter,
    TwilioWhatsAppAdapter,
    WebChatAdapter,
)
from omnidesk.services.chatbot import ChatbotPipeline, EscalationDetector
from omnidesk.services.contacts import ContactResolver
from omnidesk.services.conversation import ConversationLifecycleManager
from omnidesk.services.llm import LLMProvider
from omnidesk.services.messaging import InboundMessageProcessor, OutboundMessenger
from omnidesk.services.presence import PresenceTracker
from omnidesk.services.realtime import RealtimeNotifier
from omnidesk.services.routing import AgentAssigner, RoutingEngine
from omnidesk.services.scheduling import Clock, Scheduler, SystemClock
from omnidesk.services.sentiment import SentimentAnalyzer
from omnidesk.storage import FirestoreStorage, InMemoryStorage, StorageBackend

logger = structlog.get_logger()


def create_storage() -> StorageBackend:
    """Firestore in production when a project is configured, in-memory otherwise."""
    if settings.is_production and settings.gcp_project_id:
        return FirestoreStorage(project_id=settings.gcp_project_id)
    return InMemoryStorage()


def default_channels(notifier: RealtimeNotifier) -> ChannelRegistry:
    return ChannelRegistry(
        [
            TwilioWhatsAppAdapter(),
            TwilioSMSAdapter(),
            TelegramAdapter(),
            MetaMessengerAdapter(),
            InstagramAdapter(),
            EmailAdapter(),
            WebChatAdapter(notifier),
        ]
    )


@dataclass
class Platform:
    """Every long-lived component, built once per process."""

    storage: StorageBackend
    notifier: RealtimeNotifier
    presence: PresenceTracker
    channels: ChannelRegistry
    resolver: ContactResolver
    lifecycle: ConversationLifecycleManager
    messenger: OutboundMessenger
    assigner: AgentAssigner
    chatbot: ChatbotPipeline
    router: RoutingEngine
    inbound: InboundMessageProcessor
    campaigns: CampaignDispatcher
    scheduler: Scheduler
    clock: Clock
    _started: bool = field(default=False, init=False, repr=False)

    async def start(self) -> None:
        """Start background jobs (the scheduled campaign sweep)."""
        if self._started:
            return
        self.campaigns.register_sweep(self.scheduler)
        await self.scheduler.start()
        self._started = True

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        await self.campaigns.shutdown()
        await self.channels.aclose()
        self.presence.clear()
        self._started = False


def build_platform(
    notifier: RealtimeNotifier,
    storage: StorageBackend | None = None,
    channels: ChannelRegistry | None = None,
    llm: LLMProvider | None = None,
    sentiment: SentimentAnalyzer | None = None,
    clock: Clock | None = None,
    presence: PresenceTracker | None = None,
) -> Platform:
    """Build the platform with explicit dependencies.

    Anything not supplied gets its production default.
    """
    storage = storage if storage is not None else create_storage()
    clock = clock if clock is not None else SystemClock()
    presence = presence if presence is not None else PresenceTracker()
    channels = channels if channels is not None else default_channels(notifier)

    resolver = ContactResolver(storage)
    lifecycle = ConversationLifecycleManager(storage, notifier)
    messenger = OutboundMessenger(storage, channels, notifier)
    assigner = AgentAssigner(storage, presence, lifecycle)
    chatbot = ChatbotPipeline(
        storage,
        llm or LLMProvider(),
        EscalationDetector(sentiment or SentimentAnalyzer()),
        messenger,
        assigner,
    )
    router = RoutingEngine(storage, presence, lifecycle, assigner, chatbot, clock=clock)
    inbound = InboundMessageProcessor(storage, resolver, lifecycle, router, notifier)
    campaigns = CampaignDispatcher(storage, resolver, lifecycle, messenger, notifier, clock=clock)

    logger.info("Platform built", storage=type(storage).__name__, channels=len(channels))
    return Platform(
        storage=storage,
        notifier=notifier,
        presence=presence,
        channels=channels,
        resolver=resolver,
        lifecycle=lifecycle,
        messenger=messenger,
        assigner=assigner,
        chatbot=chatbot,
        router=router,
        inbound=inbound,
        campaigns=campaigns,
        scheduler=Scheduler(clock),
        clock=clock,
    )
