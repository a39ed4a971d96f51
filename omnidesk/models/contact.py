"""Contact model - one person reachable on one or more channels."""

from datetime import datetime

from pydantic import BaseModel, Field

from omnidesk.models.common import new_id, utcnow
from omnidesk.models.message import ChannelType


class Contact(BaseModel):
    """A person known to the platform across channels.

    Contacts are global; the same person may talk to several companies.
    """

    id: str = Field(default_factory=new_id)
    name: str
    channel_identities: dict[ChannelType, str] = Field(
        default_factory=dict,
        description="External id per channel; each (channel, id) pair maps to one contact",
    )
    channels: list[ChannelType] = Field(default_factory=list)
    phone: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    tags: list[str] = Field(default_factory=list)

    first_contact_at: datetime = Field(default_factory=utcnow)
    last_contact_at: datetime = Field(default_factory=utcnow)

    def add_identity(self, channel: ChannelType, external_id: str) -> None:
        self.channel_identities[channel] = external_id
        if channel not in self.channels:
            self.channels.append(channel)

    def address_for(self, channel: ChannelType) -> str | None:
        """Best address to reach this contact on ``channel``."""
        if channel in self.channel_identities:
            return self.channel_identities[channel]
        if channel in (ChannelType.WHATSAPP, ChannelType.SMS) and self.phone:
            return self.phone
        if channel == ChannelType.EMAIL and self.email:
            return self.email
        return None
