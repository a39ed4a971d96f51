"""Tests for the agent Socket.IO namespace."""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from omnidesk.api.ws import AgentNamespace
from omnidesk.core.security import create_agent_token
from omnidesk.models import ChannelType, Company, InboundEvent, User
from omnidesk.services.realtime.notifier import RealtimeEvent


@pytest.fixture
def namespace(platform):
    """Namespace with the Socket.IO server calls replaced by mocks."""
    ns = AgentNamespace(platform)
    sessions: dict[str, dict] = {}

    async def save_session(sid, session, namespace=None):
        sessions[sid] = session

    async def get_session(sid, namespace=None):
        return sessions[sid]

    ns.save_session = save_session
    ns.get_session = get_session
    ns.enter_room = AsyncMock()
    ns.leave_room = AsyncMock()
    ns.emit = AsyncMock()
    return ns


@pytest_asyncio.fixture
async def conversation(platform, agents):
    result = await platform.inbound.process(
        "acme", InboundEvent(channel=ChannelType.WHATSAPP, external_id="5511987654321", content="Oi")
    )
    return result.conversation


def token(user_id: str, company_id: str = "acme") -> dict:
    return {"token": create_agent_token(user_id, company_id)}


def rooms(namespace) -> list[str]:
    return [c.args[1] for c in namespace.enter_room.await_args_list]


@pytest.mark.asyncio
async def test_connect_requires_valid_token(namespace, agents):
    with pytest.raises(ConnectionRefusedError):
        await namespace.on_connect("sid-1", {}, None)
    with pytest.raises(ConnectionRefusedError):
        await namespace.on_connect("sid-1", {}, {"token": "forged.token"})
    with pytest.raises(ConnectionRefusedError):
        await namespace.on_connect("sid-1", {}, token("agent-a", company_id="globex"))


@pytest.mark.asyncio
async def test_connect_brings_agent_online(namespace, platform, notifier, storage, conversation):
    await namespace.on_connect("sid-1", {}, token("agent-a"))

    assert rooms(namespace) == ["company_acme", "user_agent-a"]
    assert platform.presence.is_online("agent-a")
    assert notifier.named(RealtimeEvent.USER_ONLINE) == [({"user_id": "agent-a"}, "company_acme")]
    assert (await storage.get_user("agent-a")).last_seen_at is not None

    event, payload = namespace.emit.await_args.args
    assert event == RealtimeEvent.CONVERSATIONS_LIST.value
    assert [c["id"] for c in payload["conversations"]] == [conversation.id]
    assert namespace.emit.await_args.kwargs["to"] == "sid-1"


@pytest.mark.asyncio
async def test_presence_follows_last_connection(namespace, platform, notifier, agents):
    await namespace.on_connect("sid-1", {}, token("agent-a"))
    await namespace.on_connect("sid-2", {}, token("agent-a"))
    assert len(notifier.named(RealtimeEvent.USER_ONLINE)) == 1

    await namespace.on_disconnect("sid-1")
    assert platform.presence.is_online("agent-a")
    assert notifier.named(RealtimeEvent.USER_OFFLINE) == []

    await namespace.on_disconnect("sid-2")
    assert not platform.presence.is_online("agent-a")
    assert notifier.named(RealtimeEvent.USER_OFFLINE) == [({"user_id": "agent-a"}, "company_acme")]


@pytest.mark.asyncio
async def test_join_sends_history(namespace, conversation):
    await namespace.on_connect("sid-1", {}, token("agent-a"))

    ack = await namespace.trigger_event("conversation:join", "sid-1", {"conversation_id": conversation.id})

    assert ack == {"success": True}
    assert f"conversation_{conversation.id}" in rooms(namespace)
    event, payload = namespace.emit.await_args.args
    assert event == RealtimeEvent.CONVERSATION_MESSAGES.value
    assert [m["content"] for m in payload["messages"]] == ["Oi"]


@pytest.mark.asyncio
async def test_join_other_company_conversation(namespace, storage, conversation):
    await storage.save_company(Company(id="globex", name="Globex"))
    await storage.save_user(User(id="agent-g", company_id="globex", name="Gil"))
    await namespace.on_connect("sid-g", {}, token("agent-g", "globex"))

    ack = await namespace.trigger_event("conversation:join", "sid-g", {"conversation_id": conversation.id})

    assert ack["success"] is False
    assert ack["error"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_take_reply_and_close(namespace, conversation, adapters):
    await namespace.on_connect("sid-a", {}, token("agent-a"))
    await namespace.on_connect("sid-b", {}, token("agent-b"))

    taken = await namespace.trigger_event("conversation:take", "sid-a", {"conversation_id": conversation.id})
    assert taken["success"]
    assert taken["assignment"]["agent_id"] == "agent-a"

    refused = await namespace.trigger_event("conversation:take", "sid-b", {"conversation_id": conversation.id})
    assert refused == {
        "success": False,
        "error": "ALREADY_ASSIGNED",
        "message": f"Conversation {conversation.id} is already assigned to agent-a",
    }

    sent = await namespace.trigger_event(
        "message:send", "sid-a", {"conversation_id": conversation.id, "content": "Olá!"}
    )
    assert sent["success"]
    assert sent["message"]["message"]["status"] == "delivered"
    assert adapters[ChannelType.WHATSAPP].sent[0].content == "Olá!"

    closed = await namespace.trigger_event(
        "conversation:close", "sid-a", {"conversation_id": conversation.id, "rating": 4}
    )
    assert closed["success"]
    assert closed["conversation"]["status"] == "closed"
    assert closed["conversation"]["rating"] == 4


@pytest.mark.asyncio
async def test_typing_relayed_to_others(namespace, conversation):
    await namespace.on_connect("sid-a", {}, token("agent-a"))

    await namespace.trigger_event("typing:start", "sid-a", {"conversation_id": conversation.id})

    namespace.emit.assert_awaited_with(
        RealtimeEvent.TYPING_START.value,
        {"conversation_id": conversation.id, "user_id": "agent-a"},
        room=f"conversation_{conversation.id}",
        skip_sid="sid-a",
    )


@pytest.mark.asyncio
async def test_leave_room(namespace, conversation):
    await namespace.on_connect("sid-a", {}, token("agent-a"))

    ack = await namespace.trigger_event("conversation:leave", "sid-a", {"conversation_id": conversation.id})

    assert ack == {"success": True}
    namespace.leave_room.assert_awaited_once_with("sid-a", f"conversation_{conversation.id}")


@pytest.mark.asyncio
async def test_failed_connect_leaves_agent_offline(
    namespace, platform, notifier, storage, agents, monkeypatch
):
    async def unreachable(user):
        raise ConnectionError("store unreachable")

    monkeypatch.setattr(storage, "save_user", unreachable)

    with pytest.raises(ConnectionError):
        await namespace.on_connect("sid-1", {}, token("agent-a"))

    assert not platform.presence.is_online("agent-a")
    assert notifier.named(RealtimeEvent.USER_ONLINE) == []


@pytest.mark.asyncio
async def test_connect_failing_after_presence_is_undone(namespace, platform, notifier, agents):
    namespace.emit = AsyncMock(side_effect=ConnectionError("socket gone"))

    with pytest.raises(ConnectionError):
        await namespace.on_connect("sid-1", {}, token("agent-a"))

    assert not platform.presence.is_online("agent-a")
    assert platform.presence.online_agents("acme") == set()
    assert notifier.named(RealtimeEvent.USER_ONLINE) == []


@pytest.mark.asyncio
async def test_close_coerces_rating(namespace, conversation):
    await namespace.on_connect("sid-a", {}, token("agent-a"))
    await namespace.trigger_event("conversation:take", "sid-a", {"conversation_id": conversation.id})

    invalid = await namespace.trigger_event(
        "conversation:close", "sid-a", {"conversation_id": conversation.id, "rating": "abc"}
    )
    assert invalid["success"] is False
    assert invalid["error"] == "VALIDATION_ERROR"

    closed = await namespace.trigger_event(
        "conversation:close", "sid-a", {"conversation_id": conversation.id, "rating": "5"}
    )
    assert closed["success"]
    assert closed["conversation"]["rating"] == 5
