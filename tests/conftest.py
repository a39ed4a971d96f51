"""Pytest configuration and fixtures."""

import asyncio
import os
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

# Use litellm's bundled model cost map instead of fetching it over the network
# at import time; the failed offline fetch intermittently deadlocks its import.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

import pytest
import pytest_asyncio
import socketio
from httpx import AsyncClient, ASGITransport

from omnidesk.api.main import create_app
from omnidesk.core.exceptions import ChannelError, RateLimitExceededError
from omnidesk.models import (
    ChannelAccount,
    ChannelAccountStatus,
    ChannelType,
    ChatbotConfig,
    Company,
    DeliveryStatus,
    InboundEvent,
    OutgoingMessage,
    SendResult,
    User,
    UserRole,
)
from omnidesk.services.channels import ChannelAdapter, ChannelRegistry
from omnidesk.services.llm.provider import LLMResponse
from omnidesk.services.platform import build_platform
from omnidesk.services.realtime.notifier import RealtimeEvent, RealtimeNotifier
from omnidesk.services.sentiment import SentimentAnalyzer
from omnidesk.storage.memory import InMemoryStorage

# Monday 12:00 in Sao Paulo, inside the default business window
BUSINESS_NOON = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


class VirtualClock:
    """Clock that advances instantly when slept on."""

    def __init__(self, start: datetime = BUSINESS_NOON) -> None:
        self.current = start
        self.sleeps: list[float] = []
        self.on_sleep: Callable[[float], Awaitable[None]] | None = None

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        if self.on_sleep is not None:
            await self.on_sleep(seconds)
        await asyncio.sleep(0)


class RecordingNotifier(RealtimeNotifier):
    """Keeps every emitted event in order."""

    def __init__(self) -> None:
        self.events: list[tuple[RealtimeEvent, dict[str, Any], str]] = []

    async def emit(self, event: RealtimeEvent, data: dict[str, Any], room: str) -> None:
        self.events.append((event, data, room))

    def named(self, event: RealtimeEvent) -> list[tuple[dict[str, Any], str]]:
        return [(data, room) for e, data, room in self.events if e == event]


class FakeChannelAdapter(ChannelAdapter):
    """In-process transport.

    Webhook payloads look like ``{"from": ..., "text": ..., "id": ...}``.
    Recipients in ``fail_for`` raise ChannelError, those in
    ``rate_limit_for`` raise RateLimitExceededError.
    """

    def __init__(self, channel: ChannelType, reports_delivery: bool = False) -> None:
        self._channel = channel
        self.reports_delivery = reports_delivery
        self.sent: list[OutgoingMessage] = []
        self.fail_for: set[str] = set()
        self.rate_limit_for: set[str] = set()
        self.refuse = False
        self._counter = 0

    @property
    def channel(self) -> ChannelType:
        return self._channel

    async def parse_webhook(self, payload: dict[str, Any]) -> InboundEvent | None:
        if not payload.get("from"):
            return None
        return InboundEvent(
            channel=self._channel,
            external_id=payload["from"],
            content=payload.get("text", ""),
            sender_name=payload.get("name"),
            external_message_id=payload.get("id"),
        )

    async def send_message(self, account: ChannelAccount, message: OutgoingMessage) -> SendResult:
        if message.recipient_id in self.rate_limit_for:
            raise RateLimitExceededError(self._channel.value, retry_after=1)
        if message.recipient_id in self.fail_for:
            raise ChannelError("Recipient unreachable", channel=self._channel.value)
        if self.refuse:
            return SendResult(success=False, error="Refused by provider")

        self._counter += 1
        self.sent.append(message)
        return SendResult(success=True, external_message_id=f"{self._channel.value}-{self._counter}")

    def validate_webhook(
        self,
        account: ChannelAccount | None,
        request_data: bytes,
        signature: str | None,
        url: str | None = None,
    ) -> bool:
        return signature != "forged"

    def parse_status_callback(self, payload: dict[str, Any]) -> tuple[str, DeliveryStatus] | None:
        if "status" not in payload or "id" not in payload:
            return None
        return payload["id"], DeliveryStatus(payload["status"])


class StubLLM:
    """Stands in for LLMProvider; answers with ``reply`` or raises ``error``."""

    def __init__(self, reply: str = "Olá! Como posso ajudar?") -> None:
        self.reply = reply
        self.error: Exception | None = None
        self.delay = 0.0
        self.calls: list[tuple[str, str]] = []

    async def complete(self, context_prompt: str, user_message: str, **kwargs: Any) -> LLMResponse:
        self.calls.append((context_prompt, user_message))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.reply, model="stub")


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def storage():
    """Create in-memory storage for tests."""
    return InMemoryStorage()


@pytest.fixture
def adapters():
    return {
        ChannelType.WHATSAPP: FakeChannelAdapter(ChannelType.WHATSAPP),
        ChannelType.SMS: FakeChannelAdapter(ChannelType.SMS, reports_delivery=True),
        ChannelType.TELEGRAM: FakeChannelAdapter(ChannelType.TELEGRAM),
        ChannelType.WEBCHAT: FakeChannelAdapter(ChannelType.WEBCHAT),
    }


@pytest.fixture
def llm():
    return StubLLM()


@pytest.fixture
def platform(storage, notifier, adapters, llm, clock):
    """Fully wired platform with fake transports and a virtual clock."""
    return build_platform(
        notifier,
        storage=storage,
        channels=ChannelRegistry(list(adapters.values())),
        llm=llm,
        sentiment=SentimentAnalyzer(use_comprehend=False),
        clock=clock,
    )


@pytest_asyncio.fixture
async def company(storage):
    """A company connected on WhatsApp, SMS, Telegram and web chat."""
    company = await storage.save_company(Company(id="acme", name="Acme Ltda"))
    for channel in (ChannelType.WHATSAPP, ChannelType.SMS, ChannelType.TELEGRAM, ChannelType.WEBCHAT):
        await storage.save_channel_account(
            ChannelAccount(
                company_id=company.id,
                channel=channel,
                status=ChannelAccountStatus.CONNECTED,
                address="5511900000000",
            )
        )
    return company


@pytest_asyncio.fixture
async def agents(storage, company):
    """Two agents and a manager of the company."""
    users = [
        User(id="agent-a", company_id=company.id, name="Ana", role=UserRole.AGENT),
        User(id="agent-b", company_id=company.id, name="Bruno", role=UserRole.AGENT),
        User(id="manager-m", company_id=company.id, name="Marta", role=UserRole.MANAGER),
    ]
    for user in users:
        await storage.save_user(user)
    return {user.id: user for user in users}


@pytest_asyncio.fixture
async def chatbot(storage, company):
    return await storage.save_chatbot_config(
        ChatbotConfig(company_id=company.id, name="Assistente", config={"horario": "9h às 18h"})
    )


@pytest.fixture
def online(platform):
    """Bring agents online: ``online("agent-a", "agent-b")``."""

    def connect(*agent_ids: str, company_id: str = "acme") -> None:
        for agent_id in agent_ids:
            platform.presence.connect(agent_id, f"sid-{agent_id}", company_id=company_id)

    return connect


@pytest.fixture
def app(platform):
    """Create test application around the test platform."""
    app = create_app(socketio.AsyncServer(async_mode="asgi"), platform=platform)
    # ASGITransport does not run the lifespan
    app.state.platform = platform
    return app


@pytest_asyncio.fixture
async def client(app):
    """Create test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
