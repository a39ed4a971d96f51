"""Company, agent and per-company configuration models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from omnidesk.core.config import settings
from omnidesk.models.common import new_id, utcnow
from omnidesk.models.message import ChannelType


class CompanyStatus(str, Enum):
    """Company account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    TRIAL = "trial"


class BusinessHours(BaseModel):
    """Weekly window during which human agents are expected to work."""

    timezone: str = Field(default_factory=lambda: settings.business_timezone)
    weekdays: list[int] = Field(
        default_factory=lambda: list(settings.business_weekdays),
        description="ISO weekday numbers counted from Monday=0",
    )
    open_hour: int = Field(default_factory=lambda: settings.business_open_hour, ge=0, le=23)
    close_hour: int = Field(default_factory=lambda: settings.business_close_hour, ge=1, le=24)


class Company(BaseModel):
    """A tenant of the platform."""

    id: str = Field(default_factory=new_id)
    name: str
    status: CompanyStatus = CompanyStatus.ACTIVE
    business_hours: BusinessHours = Field(default_factory=BusinessHours)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class UserRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    AGENT = "agent"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


# Roles counted as human capacity when deciding between bot and human.
CAPACITY_ROLES = frozenset({UserRole.AGENT, UserRole.MANAGER, UserRole.ADMIN})

# Roles that may receive conversations from automatic routing.
ASSIGNABLE_ROLES = frozenset({UserRole.AGENT, UserRole.MANAGER})


class User(BaseModel):
    """A company member who can work conversations."""

    id: str = Field(default_factory=new_id)
    company_id: str
    name: str
    email: str | None = None
    role: UserRole = UserRole.AGENT
    status: UserStatus = UserStatus.ACTIVE
    department_id: str | None = None
    last_seen_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE


class ChatbotConfig(BaseModel):
    """Bot configuration for a company.

    ``config`` is handed to the model verbatim as part of the prompt context.
    """

    id: str = Field(default_factory=new_id)
    company_id: str
    name: str = "Assistente"
    is_active: bool = True
    config: dict[str, Any] = Field(default_factory=dict)
    handoff_message: str = Field(default_factory=lambda: settings.chatbot_handoff_message)
    escalation_keywords: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class ChannelAccountStatus(str, Enum):
    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


class ChannelAccount(BaseModel):
    """A company's sending identity on one channel."""

    id: str = Field(default_factory=new_id)
    company_id: str
    channel: ChannelType
    status: ChannelAccountStatus = ChannelAccountStatus.DISCONNECTED
    name: str = ""
    address: str = Field(
        default="",
        description="Sender address: phone number, page id, bot username or mailbox",
    )
    credentials: dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_connected(self) -> bool:
        return self.status == ChannelAccountStatus.CONNECTED
