"""Conversation lifecycle manager.

Owns every status change of a conversation and its agent assignments:

    PENDING -> OPEN      agent assigned
    OPEN    -> OPEN      explicit reassignment
    OPEN    -> PENDING   transfer, or the only agent removed
    *       -> CLOSED    close (assignments deactivated)
    CLOSED  -> PENDING   explicit reopen

The atomic parts live in the storage backend; this layer validates input,
enforces tenancy and announces changes over the realtime transport.
"""

from typing import Any

import structlog

from omnidesk.core.exceptions import NotFoundError, ValidationError
from omnidesk.models import (
    ACTIVE_STATUSES,
    CAPACITY_ROLES,
    ChannelType,
    Conversation,
    ConversationAgent,
    ConversationStatus,
    User,
)
from omnidesk.models.common import utcnow
from omnidesk.services.realtime.notifier import RealtimeEvent, RealtimeNotifier
from omnidesk.storage.base import StorageBackend

logger = structlog.get_logger()


def conversation_payload(conversation: Conversation, **extra: Any) -> dict[str, Any]:
    return {"conversation": conversation.model_dump(mode="json"), **extra}


class ConversationLifecycleManager:
    """Find-or-create, assignment, close, transfer and reopen of conversations."""

    def __init__(self, storage: StorageBackend, notifier: RealtimeNotifier) -> None:
        self.storage = storage
        self.notifier = notifier

    async def get(self, conversation_id: str, company_id: str | None = None) -> Conversation:
        """Get a conversation, optionally scoped to a company.

        Raises:
            NotFoundError: If it doesn't exist or belongs to another company
        """
        conversation = await self.storage.get_conversation(conversation_id)
        if conversation is None or (company_id is not None and conversation.company_id != company_id):
            raise NotFoundError("Conversation", conversation_id)
        return conversation

    async def find_or_create_active(
        self,
        contact_id: str,
        company_id: str,
        channel: ChannelType,
        initial_status: ConversationStatus = ConversationStatus.PENDING,
    ) -> Conversation:
        """Return the contact's OPEN/PENDING conversation, creating one if needed.

        Repeated calls for the same pair return the same conversation until it
        is closed. ``initial_status`` only applies to a newly created one.
        """
        if initial_status not in ACTIVE_STATUSES:
            raise ValidationError(
                "A new conversation must start OPEN or PENDING",
                details={"initial_status": initial_status.value},
            )

        conversation, created = await self.storage.find_or_create_active_conversation(
            contact_id, company_id, channel, initial_status
        )
        if created:
            logger.info(
                "Created new conversation",
                conversation_id=conversation.id,
                company_id=company_id,
                channel=channel.value,
                status=conversation.status.value,
            )
        return conversation

    async def _get_agent(self, agent_id: str, company_id: str) -> User:
        agent = await self.storage.get_user(agent_id)
        if (
            agent is None
            or agent.company_id != company_id
            or not agent.is_active
            or agent.role not in CAPACITY_ROLES
        ):
            raise NotFoundError("Agent", agent_id)
        return agent

    async def assign(
        self,
        conversation_id: str,
        agent_id: str,
        reassign: bool = False,
        company_id: str | None = None,
    ) -> ConversationAgent:
        """Make ``agent_id`` the conversation's only active agent and open it.

        Raises:
            NotFoundError: Unknown conversation, or agent not usable by the company
            AlreadyAssignedError: Another agent holds it and ``reassign`` is False
            InvalidTransitionError: The conversation is closed
        """
        conversation = await self.get(conversation_id, company_id)
        await self._get_agent(agent_id, conversation.company_id)

        previous = await self.storage.get_active_assignment(conversation_id)
        assignment = await self.storage.assign_conversation(
            conversation_id, agent_id, allow_reassign=reassign
        )

        if previous is not None and previous.id == assignment.id:
            return assignment

        conversation = await self.get(conversation_id)
        logger.info(
            "Conversation assigned",
            conversation_id=conversation_id,
            agent_id=agent_id,
            previous_agent_id=previous.agent_id if previous else None,
        )
        payload = conversation_payload(
            conversation,
            agent_id=agent_id,
            previous_agent_id=previous.agent_id if previous else None,
        )
        await self.notifier.to_company(conversation.company_id, RealtimeEvent.CONVERSATION_ASSIGNED, payload)
        await self.notifier.to_user(agent_id, RealtimeEvent.CONVERSATION_ASSIGNED, payload)
        return assignment

    async def close(
        self,
        conversation_id: str,
        rating: int | None = None,
        closed_by: str | None = None,
        company_id: str | None = None,
    ) -> Conversation:
        """Close a conversation and deactivate its assignments.

        Raises:
            ValidationError: If ``rating`` is outside 1..5
        """
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5", details={"rating": rating})

        await self.get(conversation_id, company_id)
        updates: dict[str, Any] = {"closed_at": utcnow(), "closed_by": closed_by}
        if rating is not None:
            updates["rating"] = rating

        conversation = await self.storage.release_conversation(
            conversation_id, ConversationStatus.CLOSED, updates=updates
        )
        logger.info("Conversation closed", conversation_id=conversation_id, closed_by=closed_by)

        payload = conversation_payload(conversation, closed_by=closed_by)
        await self.notifier.to_company(conversation.company_id, RealtimeEvent.CONVERSATION_CLOSED, payload)
        await self.notifier.to_conversation(conversation_id, RealtimeEvent.CONVERSATION_CLOSED, payload)
        return conversation

    async def transfer(
        self,
        conversation_id: str,
        department_id: str,
        company_id: str | None = None,
    ) -> Conversation:
        """Hand the conversation to a department's queue."""
        await self.get(conversation_id, company_id)
        conversation = await self.storage.release_conversation(
            conversation_id,
            ConversationStatus.PENDING,
            updates={"department_id": department_id},
        )
        logger.info(
            "Conversation transferred",
            conversation_id=conversation_id,
            department_id=department_id,
        )

        payload = conversation_payload(conversation, department_id=department_id)
        await self.notifier.to_company(conversation.company_id, RealtimeEvent.CONVERSATION_PENDING, payload)
        await self.notifier.to_department(department_id, RealtimeEvent.CONVERSATION_PENDING, payload)
        return conversation

    async def reopen(self, conversation_id: str, company_id: str | None = None) -> Conversation:
        """Move a closed conversation back to PENDING.

        Raises:
            InvalidTransitionError: If it isn't closed
            DuplicateActiveConversationError: If the contact has another
                active conversation with the company
        """
        await self.get(conversation_id, company_id)
        conversation = await self.storage.reopen_conversation(conversation_id)
        logger.info("Conversation reopened", conversation_id=conversation_id)

        await self.notifier.to_company(
            conversation.company_id,
            RealtimeEvent.CONVERSATION_REOPENED,
            conversation_payload(conversation),
        )
        return conversation

    async def release_agent(
        self,
        conversation_id: str,
        agent_id: str,
        company_id: str | None = None,
    ) -> Conversation:
        """Remove an agent from a conversation and send it back to PENDING.

        Callers wanting a replacement agent go through ``AgentAssigner.release``.

        Raises:
            NotFoundError: If the agent isn't the active assignee
        """
        conversation = await self.get(conversation_id, company_id)
        current = await self.storage.get_active_assignment(conversation_id)
        if current is None or current.agent_id != agent_id:
            raise NotFoundError("Assignment", f"{conversation_id}/{agent_id}")

        conversation = await self.storage.release_conversation(
            conversation_id, ConversationStatus.PENDING, agent_id=agent_id
        )
        logger.info("Agent released from conversation", conversation_id=conversation_id, agent_id=agent_id)

        await self.notifier.to_company(
            conversation.company_id,
            RealtimeEvent.CONVERSATION_PENDING,
            conversation_payload(conversation, released_agent_id=agent_id),
        )
        return conversation

    async def queue(self, conversation: Conversation, reason: str = "no_agent_available") -> Conversation:
        """Leave an unassigned conversation waiting for an agent and announce it.

        A conversation that has an active agent is left untouched.
        """
        current = await self.storage.get_active_assignment(conversation.id)
        if current is None and conversation.status == ConversationStatus.OPEN:
            conversation = await self.storage.release_conversation(
                conversation.id, ConversationStatus.PENDING
            )

        payload = conversation_payload(conversation, reason=reason)
        await self.notifier.to_company(conversation.company_id, RealtimeEvent.CONVERSATION_PENDING, payload)
        if conversation.department_id:
            await self.notifier.to_department(
                conversation.department_id, RealtimeEvent.CONVERSATION_PENDING, payload
            )
        return conversation

    async def list_active(
        self,
        company_id: str,
        agent_id: str | None = None,
        limit: int = 50,
    ) -> list[Conversation]:
        """OPEN/PENDING conversations of a company, or of one agent."""
        return await self.storage.list_conversations(
            company_id, statuses=ACTIVE_STATUSES, agent_id=agent_id, limit=limit
        )
