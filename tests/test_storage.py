"""Tests for storage backends."""

import pytest

from omnidesk.core.exceptions import (
    AlreadyAssignedError,
    DuplicateActiveConversationError,
    DuplicateIdentityError,
    InvalidTransitionError,
)
from omnidesk.models import (
    Campaign,
    CampaignRecipient,
    CampaignStatus,
    ChannelType,
    Company,
    Contact,
    ConversationStatus,
    DeliveryStatus,
    Message,
    MessageDirection,
)


async def new_conversation(storage, contact_id="contact-1"):
    conversation, _ = await storage.find_or_create_active_conversation(
        contact_id, "acme", ChannelType.WHATSAPP
    )
    return conversation


@pytest.mark.asyncio
async def test_company_crud(storage):
    """Test company operations."""
    saved = await storage.save_company(Company(id="test-1", name="Test Co"))
    assert saved.id == "test-1"

    retrieved = await storage.get_company("test-1")
    assert retrieved is not None
    assert retrieved.name == "Test Co"
    assert await storage.get_company("missing") is None


@pytest.mark.asyncio
async def test_stored_models_are_copies(storage):
    """Test that callers don't share state with the store."""
    company = await storage.save_company(Company(id="test-1", name="Test Co"))
    company.name = "Changed"

    assert (await storage.get_company("test-1")).name == "Test Co"


@pytest.mark.asyncio
async def test_contact_identities_are_unique(storage):
    """Test that a channel identity belongs to one contact."""
    joana = Contact(name="Joana")
    joana.add_identity(ChannelType.TELEGRAM, "778899")
    await storage.save_contact(joana)

    found = await storage.find_contact_by_identity(ChannelType.TELEGRAM, "778899")
    assert found.id == joana.id

    impostor = Contact(name="Other")
    impostor.add_identity(ChannelType.TELEGRAM, "778899")
    with pytest.raises(DuplicateIdentityError) as exc_info:
        await storage.save_contact(impostor)
    assert exc_info.value.contact_id == joana.id


@pytest.mark.asyncio
async def test_one_active_conversation_per_pair(storage):
    """Test find-or-create returns the active conversation until it closes."""
    first, created = await storage.find_or_create_active_conversation(
        "contact-1", "acme", ChannelType.WHATSAPP
    )
    again, created_again = await storage.find_or_create_active_conversation(
        "contact-1", "acme", ChannelType.SMS
    )

    assert created and not created_again
    assert again.id == first.id
    assert again.channels == [ChannelType.WHATSAPP, ChannelType.SMS]

    await storage.release_conversation(first.id, ConversationStatus.CLOSED)
    third, created_third = await storage.find_or_create_active_conversation(
        "contact-1", "acme", ChannelType.WHATSAPP
    )
    assert created_third
    assert third.id != first.id


@pytest.mark.asyncio
async def test_save_conversation_keeps_status(storage):
    """Test that plain saves can't change the lifecycle status."""
    conversation = await new_conversation(storage)
    conversation.status = ConversationStatus.CLOSED
    conversation.department_id = "billing"
    await storage.save_conversation(conversation)

    stored = await storage.get_conversation(conversation.id)
    assert stored.status == ConversationStatus.PENDING
    assert stored.department_id == "billing"


@pytest.mark.asyncio
async def test_assignment_rules(storage):
    """Test assignment, reassignment and load counting."""
    conversation = await new_conversation(storage)

    first = await storage.assign_conversation(conversation.id, "agent-a")
    assert (await storage.get_conversation(conversation.id)).status == ConversationStatus.OPEN

    same = await storage.assign_conversation(conversation.id, "agent-a")
    assert same.id == first.id

    with pytest.raises(AlreadyAssignedError):
        await storage.assign_conversation(conversation.id, "agent-b")

    await storage.assign_conversation(conversation.id, "agent-b", allow_reassign=True)
    history = await storage.list_assignments(conversation.id)
    assert [(a.agent_id, a.is_active) for a in history] == [("agent-a", False), ("agent-b", True)]
    assert await storage.count_active_assignments(["agent-a", "agent-b"]) == {"agent-a": 0, "agent-b": 1}


@pytest.mark.asyncio
async def test_closed_conversations_stop_counting(storage):
    conversation = await new_conversation(storage)
    await storage.assign_conversation(conversation.id, "agent-a")

    closed = await storage.release_conversation(
        conversation.id, ConversationStatus.CLOSED, updates={"rating": 5}
    )

    assert closed.rating == 5
    assert await storage.get_active_assignment(conversation.id) is None
    assert await storage.count_active_assignments(["agent-a"]) == {"agent-a": 0}
    with pytest.raises(InvalidTransitionError):
        await storage.assign_conversation(conversation.id, "agent-a")


@pytest.mark.asyncio
async def test_reopen_rules(storage):
    conversation = await new_conversation(storage)
    with pytest.raises(InvalidTransitionError):
        await storage.reopen_conversation(conversation.id)

    await storage.release_conversation(conversation.id, ConversationStatus.CLOSED)
    replacement = await new_conversation(storage)
    with pytest.raises(DuplicateActiveConversationError):
        await storage.reopen_conversation(conversation.id)

    await storage.release_conversation(replacement.id, ConversationStatus.CLOSED)
    reopened = await storage.reopen_conversation(conversation.id)
    assert reopened.status == ConversationStatus.PENDING
    assert reopened.closed_at is None


@pytest.mark.asyncio
async def test_message_crud(storage):
    """Test message operations."""
    conversation = await new_conversation(storage)
    directions = [MessageDirection.INBOUND, MessageDirection.OUTBOUND, MessageDirection.INBOUND]
    for index, direction in enumerate(directions):
        await storage.save_message(
            Message(
                id=f"msg-{index}",
                conversation_id=conversation.id,
                company_id="acme",
                content=f"Mensagem {index}",
                direction=direction,
                channel=ChannelType.WHATSAPP,
                external_message_id=f"wamid-{index}",
            )
        )

    messages = await storage.get_messages(conversation.id)
    assert [m.id for m in messages] == ["msg-0", "msg-1", "msg-2"]

    recent = await storage.get_recent_messages(conversation.id, limit=1)
    assert [m.id for m in recent] == ["msg-2"]

    earlier = await storage.get_messages(conversation.id, before_id="msg-2")
    assert [m.id for m in earlier] == ["msg-0", "msg-1"]

    assert (await storage.find_message_by_external_id("wamid-1")).id == "msg-1"


@pytest.mark.asyncio
async def test_message_status_settles_once(storage):
    conversation = await new_conversation(storage)
    await storage.save_message(
        Message(
            id="msg-1",
            conversation_id=conversation.id,
            company_id="acme",
            direction=MessageDirection.OUTBOUND,
            channel=ChannelType.SMS,
        )
    )

    delivered = await storage.update_message_status("msg-1", DeliveryStatus.DELIVERED, external_message_id="SM1")
    assert delivered.delivered_at is not None
    assert delivered.external_message_id == "SM1"

    with pytest.raises(InvalidTransitionError):
        await storage.update_message_status("msg-1", DeliveryStatus.FAILED)


@pytest.mark.asyncio
async def test_due_campaigns(storage, clock):
    due = Campaign(
        company_id="acme",
        name="Promo",
        content="Oi",
        recipients=[CampaignRecipient(phone="5511900000001")],
        status=CampaignStatus.SCHEDULED,
        scheduled_at=clock.now(),
    )
    later = due.model_copy(update={"id": "later", "scheduled_at": clock.now().replace(year=2030)})
    draft = due.model_copy(update={"id": "draft", "status": CampaignStatus.DRAFT})
    for campaign in (due, later, draft):
        await storage.save_campaign(campaign)

    assert [c.id for c in await storage.list_due_campaigns(clock.now())] == [due.id]
    assert len(await storage.list_campaigns(company_id="acme")) == 3
    assert len(await storage.list_campaigns(status=CampaignStatus.DRAFT)) == 1
