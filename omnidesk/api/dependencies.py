"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from omnidesk.core.config import Settings, settings
from omnidesk.core.security import verify_agent_token
from omnidesk.models import User
from omnidesk.services.campaigns import CampaignDispatcher
from omnidesk.services.conversation import ConversationLifecycleManager
from omnidesk.services.messaging import InboundMessageProcessor, OutboundMessenger
from omnidesk.services.platform import Platform
from omnidesk.services.routing import AgentAssigner
from omnidesk.storage.base import StorageBackend


def get_platform(request: Request) -> Platform:
    """The platform built by the application lifespan."""
    return request.app.state.platform


PlatformDep = Annotated[Platform, Depends(get_platform)]
SettingsDep = Annotated[Settings, Depends(lambda: settings)]


def get_storage(platform: PlatformDep) -> StorageBackend:
    return platform.storage


def get_lifecycle(platform: PlatformDep) -> ConversationLifecycleManager:
    return platform.lifecycle


def get_messenger(platform: PlatformDep) -> OutboundMessenger:
    return platform.messenger


def get_inbound(platform: PlatformDep) -> InboundMessageProcessor:
    return platform.inbound


def get_campaigns(platform: PlatformDep) -> CampaignDispatcher:
    return platform.campaigns


def get_assigner(platform: PlatformDep) -> AgentAssigner:
    return platform.assigner


StorageDep = Annotated[StorageBackend, Depends(get_storage)]
LifecycleDep = Annotated[ConversationLifecycleManager, Depends(get_lifecycle)]
MessengerDep = Annotated[OutboundMessenger, Depends(get_messenger)]
InboundDep = Annotated[InboundMessageProcessor, Depends(get_inbound)]
CampaignsDep = Annotated[CampaignDispatcher, Depends(get_campaigns)]
AssignerDep = Annotated[AgentAssigner, Depends(get_assigner)]


async def get_current_agent(
    company_id: str,
    storage: StorageDep,
    authorization: str | None = Header(None),
) -> User:
    """Authenticate the caller with a Bearer agent token scoped to ``company_id``."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
        )

    claims = verify_agent_token(authorization[7:].strip())
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    if claims.company_id != company_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is not valid for this company",
        )

    user = await storage.get_user(claims.user_id)
    if user is None or user.company_id != company_id or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not active in this company",
        )
    return user


AgentDep = Annotated[User, Depends(get_current_agent)]
