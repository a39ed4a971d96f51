"""Contact identity resolver - one canonical contact per channel identity."""

from dataclasses import dataclass

import structlog

from omnidesk.core.exceptions import DuplicateIdentityError, InvalidIdentityError
from omnidesk.core.locks import KeyedLock
from omnidesk.models import PHONE_CHANNELS, SOCIAL_CHANNELS, ChannelType, Contact
from omnidesk.models.common import utcnow
from omnidesk.services.contacts.phone import normalize_phone
from omnidesk.storage.base import StorageBackend

logger = structlog.get_logger()


@dataclass
class ContactHints:
    """Optional sender details supplied by the channel."""

    name: str | None = None
    avatar_url: str | None = None


def canonical_external_id(channel: ChannelType, external_id: str) -> str:
    """Normalize an external id the way identities are stored.

    Raises:
        InvalidIdentityError: If nothing usable remains
    """
    value = (external_id or "").strip()
    if channel in PHONE_CHANNELS:
        value = normalize_phone(value)
    elif channel == ChannelType.EMAIL:
        value = value.lower()
        if "@" not in value:
            value = ""
    if not value:
        raise InvalidIdentityError(channel.value, external_id)
    return value


def synthesize_name(channel: ChannelType, external_id: str) -> str:
    if channel in PHONE_CHANNELS:
        return f"Contact {external_id[-4:]}"
    if channel == ChannelType.EMAIL:
        return external_id.split("@", 1)[0]
    if channel in SOCIAL_CHANNELS:
        return f"@{external_id.lstrip('@')}"
    return f"Visitor {external_id[:8]}"


class ContactResolver:
    """Maps (channel, external id) to a single Contact, merging identities.

    Calls for the same identity are serialized in-process; the store rejects
    duplicate identities across processes, in which case the winner is
    re-read.
    """

    def __init__(self, storage: StorageBackend, locks: KeyedLock | None = None) -> None:
        self.storage = storage
        self._locks = locks if locks is not None else KeyedLock("contact-identity")

    async def resolve(
        self,
        channel: ChannelType,
        external_id: str,
        hints: ContactHints | None = None,
    ) -> Contact:
        """Find or create the contact behind a channel identity.

        Args:
            channel: Channel the identity belongs to
            external_id: Channel-specific sender id (phone, chat id, address)
            hints: Optional display name and avatar

        Returns:
            The canonical Contact

        Raises:
            InvalidIdentityError: If ``external_id`` is empty or unusable
            PersistenceError: If the store is unreachable
        """
        hints = hints or ContactHints()
        identity = canonical_external_id(channel, external_id)

        async with self._locks.acquire(f"{channel.value}:{identity}"):
            contact = await self._lookup(channel, identity)
            if contact is not None:
                return await self._merge(contact, channel, identity, hints)
            return await self._create(channel, identity, hints)

    async def _lookup(self, channel: ChannelType, identity: str) -> Contact | None:
        contact = await self.storage.find_contact_by_identity(channel, identity)
        if contact is None and channel in PHONE_CHANNELS:
            contact = await self.storage.find_contact_by_phone(identity)
        if contact is None and channel == ChannelType.EMAIL:
            contact = await self.storage.find_contact_by_email(identity)
        return contact

    async def _merge(
        self,
        contact: Contact,
        channel: ChannelType,
        identity: str,
        hints: ContactHints,
    ) -> Contact:
        contact.add_identity(channel, identity)
        if channel in PHONE_CHANNELS and not contact.phone:
            contact.phone = identity
        if channel == ChannelType.EMAIL and not contact.email:
            contact.email = identity
        if hints.avatar_url and not contact.avatar_url:
            contact.avatar_url = hints.avatar_url
        contact.last_contact_at = utcnow()
        return await self._save(contact, channel, identity)

    async def _create(self, channel: ChannelType, identity: str, hints: ContactHints) -> Contact:
        contact = Contact(
            name=(hints.name or "").strip() or synthesize_name(channel, identity),
            phone=identity if channel in PHONE_CHANNELS else None,
            email=identity if channel == ChannelType.EMAIL else None,
            avatar_url=hints.avatar_url,
        )
        contact.add_identity(channel, identity)
        saved = await self._save(contact, channel, identity)
        logger.info("Created contact", contact_id=saved.id, channel=channel.value)
        return saved

    async def _save(self, contact: Contact, channel: ChannelType, identity: str) -> Contact:
        try:
            return await self.storage.save_contact(contact)
        except DuplicateIdentityError as e:
            # Another process bound the identity first
            logger.info(
                "Contact identity claimed concurrently, using existing contact",
                channel=channel.value,
                contact_id=e.contact_id,
            )
            existing = await self.storage.get_contact(e.contact_id)
            if existing is None:
                raise
            return existing
