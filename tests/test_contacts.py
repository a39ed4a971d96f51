"""Tests for contact identity resolution."""

import asyncio

import pytest

from omnidesk.core.exceptions import InvalidIdentityError
from omnidesk.models import ChannelType
from omnidesk.services.contacts import ContactHints, ContactResolver
from omnidesk.services.contacts.phone import (
    format_brazilian_phone,
    is_valid_brazilian_phone,
    national_number,
    normalize_phone,
)


@pytest.fixture
def resolver(storage):
    return ContactResolver(storage)


@pytest.mark.asyncio
async def test_resolve_creates_then_reuses_contact(resolver):
    """The same identity always maps to the same contact."""
    first = await resolver.resolve(ChannelType.TELEGRAM, "778899", ContactHints(name="Joana"))
    second = await resolver.resolve(ChannelType.TELEGRAM, "778899")

    assert first.id == second.id
    assert second.name == "Joana"
    assert second.channel_identities == {ChannelType.TELEGRAM: "778899"}


@pytest.mark.asyncio
async def test_phone_identity_is_shared_between_whatsapp_and_sms(resolver):
    """A WhatsApp sender and an SMS sender with the same number are one person."""
    whatsapp = await resolver.resolve(ChannelType.WHATSAPP, "whatsapp:+55 11 98765-4321")
    sms = await resolver.resolve(ChannelType.SMS, "+5511987654321")

    assert whatsapp.id == sms.id
    assert sms.phone == "5511987654321"
    assert set(sms.channels) == {ChannelType.WHATSAPP, ChannelType.SMS}


@pytest.mark.asyncio
async def test_email_identity_is_case_insensitive(resolver):
    first = await resolver.resolve(ChannelType.EMAIL, "Maria@Example.com")
    second = await resolver.resolve(ChannelType.EMAIL, "maria@example.com")

    assert first.id == second.id
    assert second.email == "maria@example.com"
    assert second.name == "maria"


@pytest.mark.asyncio
async def test_synthesized_names(resolver):
    phone = await resolver.resolve(ChannelType.WHATSAPP, "5511987654321")
    handle = await resolver.resolve(ChannelType.INSTAGRAM, "loja.bella")

    assert phone.name == "Contact 4321"
    assert handle.name == "@loja.bella"


@pytest.mark.asyncio
async def test_hints_do_not_overwrite_existing_name(resolver):
    await resolver.resolve(ChannelType.TELEGRAM, "1001", ContactHints(name="Carlos"))
    again = await resolver.resolve(
        ChannelType.TELEGRAM, "1001", ContactHints(name="Outro Nome", avatar_url="https://img/1.png")
    )

    assert again.name == "Carlos"
    assert again.avatar_url == "https://img/1.png"


@pytest.mark.asyncio
@pytest.mark.parametrize("external_id", ["", "   ", "whatsapp:", "not-an-email"])
async def test_unusable_identity_rejected(resolver, external_id):
    channel = ChannelType.EMAIL if external_id == "not-an-email" else ChannelType.WHATSAPP
    with pytest.raises(InvalidIdentityError):
        await resolver.resolve(channel, external_id)


@pytest.mark.asyncio
async def test_concurrent_resolution_creates_one_contact(resolver, storage):
    contacts = await asyncio.gather(
        *(resolver.resolve(ChannelType.WHATSAPP, "5511912345678") for _ in range(10))
    )

    assert len({c.id for c in contacts}) == 1
    found = await storage.find_contact_by_identity(ChannelType.WHATSAPP, "5511912345678")
    assert found.id == contacts[0].id


def test_normalize_phone():
    assert normalize_phone("whatsapp:+55 (11) 98765-4321") == "5511987654321"
    assert normalize_phone("5511987654321@c.us") == "5511987654321"


def test_national_number():
    assert national_number("+55 11 98765-4321") == "11987654321"
    assert national_number("987654321") == "11987654321"
    assert national_number("1133334444") == "1133334444"


@pytest.mark.parametrize(
    "phone,valid",
    [
        ("11987654321", True),
        ("+55 21 3333-4444", True),
        ("987654321", True),  # Default area code
        ("11887654321", False),  # Mobile without the leading 9
        ("20987654321", False),  # Unknown area code
        ("12345", False),
    ],
)
def test_brazilian_phone_validation(phone, valid):
    assert is_valid_brazilian_phone(phone) is valid


def test_format_brazilian_phone():
    assert format_brazilian_phone("(11) 98765-4321") == "5511987654321"
    assert format_brazilian_phone("5511987654321") == "5511987654321"
