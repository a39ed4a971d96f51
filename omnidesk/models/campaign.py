"""Campaign (broadcast) models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from omnidesk.models.common import ensure_utc, new_id, utcnow
from omnidesk.models.message import ChannelType


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    SENT = "sent"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CampaignStatus.SENT, CampaignStatus.CANCELLED, CampaignStatus.FAILED)


class CampaignRecipient(BaseModel):
    phone: str
    name: str | None = None


class CampaignError(BaseModel):
    """One failed recipient."""

    phone: str
    error: str
    code: str | None = None


class CampaignResults(BaseModel):
    total: int = 0
    sent: int = 0
    delivered: int = 0
    failed: int = 0
    errors: list[CampaignError] = Field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.sent + self.failed


class Campaign(BaseModel):
    """A templated message broadcast to a list of recipients."""

    id: str = Field(default_factory=new_id)
    company_id: str
    name: str
    content: str = Field(..., description="Template; supports {name} and {phone} placeholders")
    channel: ChannelType = ChannelType.WHATSAPP
    recipients: list[CampaignRecipient] = Field(default_factory=list)

    status: CampaignStatus = CampaignStatus.DRAFT
    results: CampaignResults = Field(default_factory=CampaignResults)

    scheduled_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("scheduled_at", "started_at", "completed_at")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)
