"""Conversation endpoints for agents."""

from typing import Any

import structlog
from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from omnidesk.api.dependencies import AgentDep, AssignerDep, LifecycleDep, MessengerDep, StorageDep
from omnidesk.models import Conversation, ConversationAgent, Message, MessageType

logger = structlog.get_logger()

router = APIRouter(prefix="/companies/{company_id}/conversations", tags=["Conversations"])


# ==================== Pydantic Schemas ====================


class AssignRequest(BaseModel):
    agent_id: str | None = Field(default=None, description="Defaults to the calling agent")
    reassign: bool = False


class CloseRequest(BaseModel):
    rating: int | None = Field(default=None, ge=1, le=5)


class TransferRequest(BaseModel):
    department_id: str


class SendMessageRequest(BaseModel):
    content: str = ""
    media_url: str | None = None
    message_type: MessageType = MessageType.TEXT


class ConversationDetail(BaseModel):
    conversation: Conversation
    assignment: ConversationAgent | None = None


# ==================== Endpoints ====================


@router.get("", response_model=list[Conversation])
async def list_conversations(
    company_id: str,
    agent: AgentDep,
    lifecycle: LifecycleDep,
    mine: bool = False,
    limit: int = Query(50, ge=1, le=200),
) -> list[Conversation]:
    """OPEN and PENDING conversations of the company, or only the caller's."""
    return await lifecycle.list_active(company_id, agent_id=agent.id if mine else None, limit=limit)


@router.get("/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(
    company_id: str,
    conversation_id: str,
    agent: AgentDep,
    lifecycle: LifecycleDep,
    storage: StorageDep,
) -> dict[str, Any]:
    conversation = await lifecycle.get(conversation_id, company_id)
    assignment = await storage.get_active_assignment(conversation_id)
    return {"conversation": conversation, "assignment": assignment}


@router.get("/{conversation_id}/messages", response_model=list[Message])
async def list_messages(
    company_id: str,
    conversation_id: str,
    agent: AgentDep,
    lifecycle: LifecycleDep,
    storage: StorageDep,
    limit: int = Query(50, ge=1, le=200),
    before_id: str | None = None,
) -> list[Message]:
    """Message history in chronological order."""
    await lifecycle.get(conversation_id, company_id)
    return await storage.get_messages(conversation_id, limit=limit, before_id=before_id)


@router.post("/{conversation_id}/messages", response_model=Message, status_code=status.HTTP_201_CREATED)
async def send_message(
    company_id: str,
    conversation_id: str,
    data: SendMessageRequest,
    agent: AgentDep,
    messenger: MessengerDep,
) -> Message:
    """Send a message to the contact as the calling agent."""
    return await messenger.send_agent_message(
        conversation_id,
        agent.id,
        data.content,
        company_id=company_id,
        media_url=data.media_url,
        message_type=data.message_type,
    )


@router.post("/{conversation_id}/assign", response_model=ConversationAgent)
async def assign_conversation(
    company_id: str,
    conversation_id: str,
    data: AssignRequest,
    agent: AgentDep,
    lifecycle: LifecycleDep,
) -> ConversationAgent:
    agent_id = data.agent_id or agent.id
    logger.info("Assign requested", conversation_id=conversation_id, agent_id=agent_id, by=agent.id)
    return await lifecycle.assign(conversation_id, agent_id, reassign=data.reassign, company_id=company_id)


@router.post("/{conversation_id}/close", response_model=Conversation)
async def close_conversation(
    company_id: str,
    conversation_id: str,
    data: CloseRequest,
    agent: AgentDep,
    lifecycle: LifecycleDep,
) -> Conversation:
    return await lifecycle.close(conversation_id, rating=data.rating, closed_by=agent.id, company_id=company_id)


@router.post("/{conversation_id}/transfer", response_model=Conversation)
async def transfer_conversation(
    company_id: str,
    conversation_id: str,
    data: TransferRequest,
    agent: AgentDep,
    lifecycle: LifecycleDep,
) -> Conversation:
    return await lifecycle.transfer(conversation_id, data.department_id, company_id=company_id)


@router.post("/{conversation_id}/reopen", response_model=Conversation)
async def reopen_conversation(
    company_id: str,
    conversation_id: str,
    agent: AgentDep,
    lifecycle: LifecycleDep,
) -> Conversation:
    return await lifecycle.reopen(conversation_id, company_id=company_id)


@router.post("/{conversation_id}/release", response_model=Conversation)
async def release_conversation(
    company_id: str,
    conversation_id: str,
    agent: AgentDep,
    assigner: AssignerDep,
) -> Conversation:
    """Hand the conversation to another online agent, or back to the queue."""
    return await assigner.release(conversation_id, agent.id, company_id=company_id)
