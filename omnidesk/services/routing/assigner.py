"""Agent assigner - hands a conversation to the least-loaded online agent."""

import structlog

from omnidesk.core.exceptions import AlreadyAssignedError, NotFoundError
from omnidesk.models import ASSIGNABLE_ROLES, Conversation, User, UserStatus
from omnidesk.services.conversation.lifecycle import ConversationLifecycleManager
from omnidesk.services.presence import PresenceTracker
from omnidesk.services.routing.outcome import RoutingOutcome
from omnidesk.storage.base import StorageBackend

logger = structlog.get_logger()


class AgentAssigner:
    """Picks an agent for an unassigned conversation.

    Candidates are ACTIVE agents and managers of the company that are online.
    When the conversation was transferred to a department and that department
    has online candidates, only those are considered. The candidate with the
    fewest active assignments wins; ties go to the smallest agent id.
    """

    def __init__(
        self,
        storage: StorageBackend,
        presence: PresenceTracker,
        lifecycle: ConversationLifecycleManager,
    ) -> None:
        self.storage = storage
        self.presence = presence
        self.lifecycle = lifecycle

    async def candidates(
        self,
        company_id: str,
        department_id: str | None = None,
        exclude: set[str] | None = None,
    ) -> list[User]:
        online = self.presence.online_agents(company_id) - (exclude or set())
        if not online:
            return []

        users = await self.storage.list_users(
            company_id,
            roles=ASSIGNABLE_ROLES,
            status=UserStatus.ACTIVE,
            user_ids=online,
        )
        if department_id:
            in_department = [u for u in users if u.department_id == department_id]
            if in_department:
                return in_department
        return users

    async def select_agent(
        self,
        company_id: str,
        department_id: str | None = None,
        exclude: set[str] | None = None,
    ) -> str | None:
        """Return the least-loaded online candidate, or None."""
        users = await self.candidates(company_id, department_id, exclude)
        if not users:
            return None

        loads = await self.storage.count_active_assignments(u.id for u in users)
        chosen = min(users, key=lambda u: (loads.get(u.id, 0), u.id))
        logger.debug(
            "Selected agent",
            company_id=company_id,
            agent_id=chosen.id,
            load=loads.get(chosen.id, 0),
            candidates=len(users),
        )
        return chosen.id

    async def assign_available(self, conversation: Conversation) -> RoutingOutcome:
        """Assign the conversation to an available agent or leave it queued.

        Returns:
            ASSIGNED_TO_AGENT with the agent, or QUEUED_PENDING when nobody
            is available
        """
        agent_id = await self.select_agent(conversation.company_id, conversation.department_id)
        if agent_id is None:
            logger.info(
                "No agent available, conversation queued",
                conversation_id=conversation.id,
                company_id=conversation.company_id,
            )
            await self.lifecycle.queue(conversation)
            return RoutingOutcome.queued()

        try:
            await self.lifecycle.assign(conversation.id, agent_id)
        except AlreadyAssignedError as e:
            # Someone took it between the check and the write
            return RoutingOutcome.agent(e.agent_id)
        except NotFoundError:
            logger.warning(
                "Selected agent no longer assignable, conversation queued",
                conversation_id=conversation.id,
                agent_id=agent_id,
            )
            await self.lifecycle.queue(conversation)
            return RoutingOutcome.queued()

        return RoutingOutcome.agent(agent_id)

    async def release(
        self,
        conversation_id: str,
        agent_id: str,
        company_id: str | None = None,
    ) -> Conversation:
        """Take an agent off a conversation.

        Another online candidate takes over when there is one and the
        conversation stays OPEN; otherwise it goes back to PENDING.

        Raises:
            NotFoundError: If the agent isn't the active assignee
        """
        conversation = await self.lifecycle.get(conversation_id, company_id)
        current = await self.storage.get_active_assignment(conversation_id)
        if current is None or current.agent_id != agent_id:
            raise NotFoundError("Assignment", f"{conversation_id}/{agent_id}")

        replacement = await self.select_agent(
            conversation.company_id, conversation.department_id, exclude={agent_id}
        )
        if replacement is not None:
            try:
                await self.lifecycle.assign(conversation_id, replacement, reassign=True)
            except NotFoundError:
                logger.warning(
                    "Replacement agent no longer assignable",
                    conversation_id=conversation_id,
                    agent_id=replacement,
                )
            else:
                logger.info(
                    "Released conversation handed over",
                    conversation_id=conversation_id,
                    released_agent_id=agent_id,
                    agent_id=replacement,
                )
                return await self.lifecycle.get(conversation_id)

        return await self.lifecycle.release_agent(conversation_id, agent_id)
