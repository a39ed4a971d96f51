"""Conversation and assignment models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from omnidesk.core.exceptions import InvalidTransitionError
from omnidesk.models.common import new_id, utcnow
from omnidesk.models.message import ChannelType


class ConversationStatus(str, Enum):
    """Status of a conversation."""

    OPEN = "open"  # An agent is working it
    PENDING = "pending"  # Waiting for an agent
    CLOSED = "closed"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


ACTIVE_STATUSES = frozenset({ConversationStatus.OPEN, ConversationStatus.PENDING})

_TRANSITIONS: dict[ConversationStatus, frozenset[ConversationStatus]] = {
    ConversationStatus.PENDING: frozenset(
        {ConversationStatus.OPEN, ConversationStatus.PENDING, ConversationStatus.CLOSED}
    ),
    ConversationStatus.OPEN: frozenset(
        {ConversationStatus.OPEN, ConversationStatus.PENDING, ConversationStatus.CLOSED}
    ),
    ConversationStatus.CLOSED: frozenset({ConversationStatus.PENDING}),
}


def can_transition(current: ConversationStatus, target: ConversationStatus) -> bool:
    return target in _TRANSITIONS[current]


class Conversation(BaseModel):
    """A thread between one contact and one company, across channels."""

    id: str = Field(default_factory=new_id)
    contact_id: str
    company_id: str

    status: ConversationStatus = ConversationStatus.PENDING
    channels: list[ChannelType] = Field(default_factory=list)
    last_channel: ChannelType | None = None
    created_via: ChannelType | None = None

    department_id: str | None = None
    rating: int | None = Field(default=None, ge=1, le=5)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_activity_at: datetime = Field(default_factory=utcnow)
    closed_at: datetime | None = None
    closed_by: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def ensure_transition(self, target: ConversationStatus) -> None:
        """Raise if the lifecycle does not allow moving to ``target``.

        Leaving CLOSED only happens through an explicit reopen, which the
        storage backends check on their own.
        """
        if self.status == ConversationStatus.CLOSED:
            raise InvalidTransitionError("conversation", self.id, self.status.value, target.value)
        if not can_transition(self.status, target):
            raise InvalidTransitionError("conversation", self.id, self.status.value, target.value)

    def touch(self, channel: ChannelType | None = None) -> None:
        """Record activity, optionally on a channel."""
        now = utcnow()
        self.last_activity_at = now
        self.updated_at = now
        if channel is not None:
            if channel not in self.channels:
                self.channels.append(channel)
            self.last_channel = channel


class ConversationAgent(BaseModel):
    """Time-bounded assignment of an agent to a conversation.

    Never deleted; deactivated on reassignment, transfer or close.
    """

    id: str = Field(default_factory=new_id)
    conversation_id: str
    agent_id: str
    is_active: bool = True
    assigned_at: datetime = Field(default_factory=utcnow)
    unassigned_at: datetime | None = None

    def deactivate(self) -> None:
        self.is_active = False
        self.unassigned_at = utcnow()
