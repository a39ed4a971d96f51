"""Tests for channel adapters."""

import hashlib
import hmac
import json

import httpx
import pytest

from omnidesk.core.exceptions import ChannelError, ConfigurationError, RateLimitExceededError
from omnidesk.models import (
    ChannelAccount,
    ChannelAccountStatus,
    ChannelType,
    DeliveryStatus,
    MessageType,
    OutgoingMessage,
)
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
from omnidesk.services.realtime.notifier import RealtimeEvent


def account(channel: ChannelType, **credentials: str) -> ChannelAccount:
    return ChannelAccount(
        company_id="acme",
        channel=channel,
        status=ChannelAccountStatus.CONNECTED,
        address="5511900000000",
        credentials=credentials,
    )


class TestTwilio:
    """Tests for the Twilio WhatsApp and SMS adapters."""

    @pytest.fixture
    def whatsapp(self):
        return TwilioWhatsAppAdapter(account_sid="AC123", auth_token="token")

    @pytest.mark.asyncio
    async def test_parse_whatsapp_message(self, whatsapp):
        event = await whatsapp.parse_webhook(
            {
                "MessageSid": "SM123",
                "From": "whatsapp:+5511987654321",
                "Body": " Olá ",
                "ProfileName": "Joana",
                "NumMedia": "0",
            }
        )

        assert event.channel == ChannelType.WHATSAPP
        assert event.external_id == "+5511987654321"
        assert event.content == "Olá"
        assert event.sender_name == "Joana"
        assert event.external_message_id == "SM123"

    @pytest.mark.asyncio
    async def test_parse_media_message(self, whatsapp):
        event = await whatsapp.parse_webhook(
            {
                "MessageSid": "SM124",
                "From": "whatsapp:+5511987654321",
                "NumMedia": "1",
                "MediaUrl0": "https://media.example/1.jpg",
                "MediaContentType0": "image/jpeg",
            }
        )

        assert event.message_type == MessageType.IMAGE
        assert event.media_url == "https://media.example/1.jpg"

    @pytest.mark.asyncio
    async def test_ignores_status_and_foreign_senders(self, whatsapp):
        assert await whatsapp.parse_webhook({"MessageSid": "SM1", "MessageStatus": "sent"}) is None
        assert await whatsapp.parse_webhook({"MessageSid": "SM1", "From": "+5511987654321"}) is None
        assert await whatsapp.parse_webhook({"Body": "no sid"}) is None

    @pytest.mark.asyncio
    async def test_sms_accepts_bare_numbers(self):
        sms = TwilioSMSAdapter(account_sid="AC123", auth_token="token")
        event = await sms.parse_webhook({"MessageSid": "SM9", "From": "+5511987654321", "Body": "Oi"})

        assert event.channel == ChannelType.SMS
        assert event.external_id == "+5511987654321"
        assert sms.reports_delivery

    def test_status_callback(self, whatsapp):
        assert whatsapp.parse_status_callback({"MessageSid": "SM1", "MessageStatus": "delivered"}) == (
            "SM1",
            DeliveryStatus.DELIVERED,
        )
        assert whatsapp.parse_status_callback({"MessageSid": "SM1", "MessageStatus": "undelivered"}) == (
            "SM1",
            DeliveryStatus.FAILED,
        )
        assert whatsapp.parse_status_callback({"MessageSid": "SM1", "MessageStatus": "queued"}) is None

    def test_unsigned_webhook_allowed_in_development(self, whatsapp):
        assert whatsapp.validate_webhook(None, b"Body=Oi", None)
        assert not whatsapp.validate_webhook(None, b"Body=Oi", "bad-signature", url=None)

    @pytest.mark.asyncio
    async def test_send_without_credentials_fails(self):
        adapter = TwilioWhatsAppAdapter()
        adapter.account_sid = ""
        adapter.auth_token = ""

        with pytest.raises(ChannelError):
            await adapter.send_text(account(ChannelType.WHATSAPP), "5511987654321", "Oi")


class TestTelegram:
    """Tests for the Telegram adapter."""

    @staticmethod
    def adapter(handler) -> TelegramAdapter:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://telegram.test")
        return TelegramAdapter(client=client)

    @pytest.mark.asyncio
    async def test_send_text(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 42}})

        adapter = self.adapter(handler)
        result = await adapter.send_text(account(ChannelType.TELEGRAM, bot_token="123-abc"), "778899", "Oi")

        assert result.success
        assert result.external_message_id == "42"
        assert requests[0].url.path == "/bot123-abc/sendMessage"
        assert json.loads(requests[0].content) == {"chat_id": "778899", "text": "Oi"}
        await adapter.aclose()

    @pytest.mark.asyncio
    async def test_send_photo(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 7}})

        adapter = self.adapter(handler)
        message = OutgoingMessage(
            content="Veja",
            recipient_id="778899",
            message_type=MessageType.IMAGE,
            media_url="https://media.example/1.jpg",
        )
        await adapter.send_message(account(ChannelType.TELEGRAM, bot_token="t"), message)

        assert requests[0].url.path == "/bott/sendPhoto"
        assert json.loads(requests[0].content)["caption"] == "Veja"

    @pytest.mark.asyncio
    async def test_rate_limit_and_errors(self):
        def throttled(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                429, json={"ok": False, "error_code": 429, "parameters": {"retry_after": 5}}
            )

        with pytest.raises(RateLimitExceededError) as exc_info:
            await self.adapter(throttled).send_text(account(ChannelType.TELEGRAM, bot_token="t"), "1", "Oi")
        assert exc_info.value.retry_after == 5

        def blocked(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"ok": False, "error_code": 403, "description": "blocked"})

        with pytest.raises(ChannelError):
            await self.adapter(blocked).send_text(account(ChannelType.TELEGRAM, bot_token="t"), "1", "Oi")

        with pytest.raises(ChannelError):
            await self.adapter(blocked).send_text(account(ChannelType.TELEGRAM), "1", "Oi")

    @pytest.mark.asyncio
    async def test_parse_update(self):
        adapter = self.adapter(lambda request: httpx.Response(200))
        event = await adapter.parse_webhook(
            {
                "update_id": 1,
                "message": {
                    "message_id": 10,
                    "chat": {"id": 778899},
                    "from": {"first_name": "Joana", "last_name": "Silva"},
                    "text": "Oi",
                },
            }
        )

        assert event.external_id == "778899"
        assert event.sender_name == "Joana Silva"
        assert event.external_message_id == "10"
        assert await adapter.parse_webhook({"update_id": 2, "callback_query": {}}) is None

    def test_secret_token(self):
        adapter = self.adapter(lambda request: httpx.Response(200))
        acct = account(ChannelType.TELEGRAM, webhook_secret="s3cret")

        assert adapter.validate_webhook(acct, b"{}", "s3cret")
        assert not adapter.validate_webhook(acct, b"{}", "other")
        assert not adapter.validate_webhook(acct, b"{}", None)


class TestMeta:
    """Tests for the Messenger and Instagram adapters."""

    def test_signature(self):
        adapter = MetaMessengerAdapter(client=httpx.AsyncClient())
        acct = account(ChannelType.FACEBOOK, app_secret="s3cret")
        body = b'{"object": "page"}'
        digest = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()

        assert adapter.validate_webhook(acct, body, f"sha256={digest}")
        assert not adapter.validate_webhook(acct, body, digest)
        assert not adapter.validate_webhook(acct, b"tampered", f"sha256={digest}")

    @pytest.mark.asyncio
    async def test_parse_skips_echoes(self):
        adapter = InstagramAdapter(client=httpx.AsyncClient())
        event = await adapter.parse_webhook(
            {
                "entry": [
                    {
                        "messaging": [
                            {"sender": {"id": "page"}, "message": {"mid": "m0", "is_echo": True}},
                            {
                                "sender": {"id": "igsid-1"},
                                "message": {
                                    "mid": "m1",
                                    "attachments": [{"type": "image", "payload": {"url": "https://x/1.jpg"}}],
                                },
                            },
                        ]
                    }
                ]
            }
        )

        assert event.channel == ChannelType.INSTAGRAM
        assert event.external_id == "igsid-1"
        assert event.message_type == MessageType.IMAGE
        assert event.external_message_id == "m1"

    @pytest.mark.asyncio
    async def test_send_error_codes(self):
        def throttled(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"code": 613, "message": "Calls limit"}})

        adapter = MetaMessengerAdapter(
            client=httpx.AsyncClient(transport=httpx.MockTransport(throttled), base_url="https://graph.test")
        )
        with pytest.raises(RateLimitExceededError):
            await adapter.send_text(account(ChannelType.FACEBOOK, page_access_token="t"), "psid", "Oi")


class TestEmail:
    """Tests for the email adapter."""

    @pytest.mark.asyncio
    async def test_parse_inbound_mail(self):
        event = await EmailAdapter().parse_webhook(
            {
                "from": "Joana Silva <Joana@Example.com>",
                "subject": "Pedido 123",
                "text": "Não recebi meu pedido",
                "message_id": "<abc@example.com>",
            }
        )

        assert event.external_id == "joana@example.com"
        assert event.sender_name == "Joana Silva"
        assert event.content == "Pedido 123\n\nNão recebi meu pedido"
        assert event.external_message_id == "<abc@example.com>"

    @pytest.mark.asyncio
    async def test_parse_without_sender(self):
        assert await EmailAdapter().parse_webhook({"text": "Oi"}) is None

    def test_signature(self):
        acct = account(ChannelType.EMAIL, webhook_secret="s3cret")
        digest = hmac.new(b"s3cret", b"body", hashlib.sha256).hexdigest()

        assert EmailAdapter().validate_webhook(acct, b"body", digest)
        assert not EmailAdapter().validate_webhook(acct, b"body", None)


class TestWebChat:
    """Tests for the web chat adapter."""

    @pytest.mark.asyncio
    async def test_reply_goes_to_visitor_room(self, notifier):
        adapter = WebChatAdapter(notifier)
        result = await adapter.send_text(account(ChannelType.WEBCHAT), "session-1", "Olá!")

        assert result.success
        event, data, room = notifier.events[0]
        assert event == RealtimeEvent.MESSAGE_NEW
        assert room == "visitor_session-1"
        assert data["content"] == "Olá!"
        assert data["id"] == result.external_message_id

    @pytest.mark.asyncio
    async def test_parse_widget_message(self, notifier):
        adapter = WebChatAdapter(notifier)
        event = await adapter.parse_webhook({"session_id": "session-1", "text": "Oi", "name": "Joana"})

        assert event.external_id == "session-1"
        assert event.sender_name == "Joana"
        assert await adapter.parse_webhook({"text": "no session"}) is None


class TestRegistry:
    """Tests for the channel registry."""

    @pytest.mark.asyncio
    async def test_send_through_registered_adapter(self, adapters):
        registry = ChannelRegistry(list(adapters.values()))

        result = await registry.send(account(ChannelType.WHATSAPP), "5511987654321", "Oi")

        assert result.external_message_id == "whatsapp-1"
        assert adapters[ChannelType.WHATSAPP].sent[0].content == "Oi"
        assert ChannelType.WHATSAPP in registry
        assert len(registry) == 4

    def test_unknown_channel(self):
        with pytest.raises(ConfigurationError):
            ChannelRegistry().get(ChannelType.EMAIL)
