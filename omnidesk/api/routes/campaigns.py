"""Campaign endpoints."""

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from omnidesk.api.dependencies import AgentDep, CampaignsDep, StorageDep
from omnidesk.models import Campaign, CampaignRecipient, CampaignStatus, ChannelType, UserRole

router = APIRouter(prefix="/companies/{company_id}/campaigns", tags=["Campaigns"])

MANAGING_ROLES = {UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER}


class CampaignCreate(BaseModel):
    name: str
    content: str
    recipients: list[CampaignRecipient] = Field(..., min_length=1)
    channel: ChannelType = ChannelType.WHATSAPP
    scheduled_at: datetime | None = None
    start_immediately: bool = False


def _require_manager(agent: AgentDep) -> None:
    if agent.role not in MANAGING_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only managers can run campaigns",
        )


@router.post("", response_model=Campaign, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    company_id: str,
    data: CampaignCreate,
    agent: AgentDep,
    campaigns: CampaignsDep,
) -> Campaign:
    _require_manager(agent)
    return await campaigns.create(
        company_id,
        data.name,
        data.content,
        data.recipients,
        scheduled_at=data.scheduled_at,
        channel=data.channel,
        created_by=agent.id,
        start_immediately=data.start_immediately,
    )


@router.get("", response_model=list[Campaign])
async def list_campaigns(
    company_id: str,
    agent: AgentDep,
    storage: StorageDep,
    status_filter: CampaignStatus | None = Query(None, alias="status"),
) -> list[Campaign]:
    return await storage.list_campaigns(company_id, status=status_filter)


@router.get("/{campaign_id}", response_model=Campaign)
async def get_campaign(
    company_id: str,
    campaign_id: str,
    agent: AgentDep,
    campaigns: CampaignsDep,
) -> Campaign:
    return await campaigns.get(campaign_id, company_id)


@router.post("/{campaign_id}/start", response_model=Campaign, status_code=status.HTTP_202_ACCEPTED)
async def start_campaign(
    company_id: str,
    campaign_id: str,
    agent: AgentDep,
    campaigns: CampaignsDep,
) -> Campaign:
    """Start sending; returns at once while batches go out in the background."""
    _require_manager(agent)
    await campaigns.start(campaign_id, company_id)
    return await campaigns.get(campaign_id, company_id)


@router.post("/{campaign_id}/cancel", response_model=Campaign)
async def cancel_campaign(
    company_id: str,
    campaign_id: str,
    agent: AgentDep,
    campaigns: CampaignsDep,
) -> Campaign:
    _require_manager(agent)
    return await campaigns.cancel(campaign_id, company_id)
