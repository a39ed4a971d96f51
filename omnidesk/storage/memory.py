"""In-memory storage backend for development and testing."""

import asyncio
from collections.abc import Iterable
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel

from omnidesk.core.exceptions import (
    AlreadyAssignedError,
    DuplicateActiveConversationError,
    DuplicateIdentityError,
    InvalidTransitionError,
    NotFoundError,
)
from omnidesk.models import (
    ACTIVE_STATUSES,
    Campaign,
    CampaignStatus,
    ChannelAccount,
    ChannelAccountStatus,
    ChannelType,
    ChatbotConfig,
    Company,
    Contact,
    Conversation,
    ConversationAgent,
    ConversationStatus,
    DeliveryStatus,
    Message,
    User,
    UserRole,
    UserStatus,
)
from omnidesk.models.common import utcnow
from omnidesk.storage.base import StorageBackend

M = TypeVar("M", bound=BaseModel)


def _copy(model: M | None) -> M | None:
    return model.model_copy(deep=True) if model is not None else None


class InMemoryStorage(StorageBackend):
    """In-memory storage implementation for development.

    Models are copied on the way in and out so callers never share state with
    the store. Composite operations run under a single lock.
    """

    def __init__(self) -> None:
        self._companies: dict[str, Company] = {}
        self._users: dict[str, User] = {}
        self._chatbots: dict[str, ChatbotConfig] = {}
        self._accounts: dict[str, ChannelAccount] = {}
        self._contacts: dict[str, Contact] = {}
        self._identities: dict[tuple[ChannelType, str], str] = {}
        self._conversations: dict[str, Conversation] = {}
        self._assignments: dict[str, ConversationAgent] = {}
        self._messages: dict[str, Message] = {}
        self._campaigns: dict[str, Campaign] = {}
        self._lock = asyncio.Lock()

    # ==================== Company Operations ====================

    async def get_company(self, company_id: str) -> Company | None:
        return _copy(self._companies.get(company_id))

    async def save_company(self, company: Company) -> Company:
        company.updated_at = utcnow()
        self._companies[company.id] = _copy(company)
        return company

    # ==================== User Operations ====================

    async def get_user(self, user_id: str) -> User | None:
        return _copy(self._users.get(user_id))

    async def save_user(self, user: User) -> User:
        self._users[user.id] = _copy(user)
        return user

    async def list_users(
        self,
        company_id: str,
        roles: Iterable[UserRole] | None = None,
        status: UserStatus | None = None,
        user_ids: Iterable[str] | None = None,
    ) -> list[User]:
        role_set = set(roles) if roles is not None else None
        id_set = set(user_ids) if user_ids is not None else None
        users = [
            u
            for u in self._users.values()
            if u.company_id == company_id
            and (role_set is None or u.role in role_set)
            and (status is None or u.status == status)
            and (id_set is None or u.id in id_set)
        ]
        users.sort(key=lambda u: u.id)
        return [_copy(u) for u in users]

    # ==================== Chatbot Operations ====================

    async def save_chatbot_config(self, chatbot: ChatbotConfig) -> ChatbotConfig:
        self._chatbots[chatbot.id] = _copy(chatbot)
        return chatbot

    async def list_chatbot_configs(
        self,
        company_id: str,
        active_only: bool = True,
    ) -> list[ChatbotConfig]:
        bots = [
            b
            for b in self._chatbots.values()
            if b.company_id == company_id and (b.is_active or not active_only)
        ]
        bots.sort(key=lambda b: b.created_at)
        return [_copy(b) for b in bots]

    # ==================== Channel Account Operations ====================

    async def save_channel_account(self, account: ChannelAccount) -> ChannelAccount:
        self._accounts[account.id] = _copy(account)
        return account

    async def list_channel_accounts(
        self,
        company_id: str,
        channel: ChannelType | None = None,
        status: ChannelAccountStatus | None = None,
    ) -> list[ChannelAccount]:
        accounts = [
            a
            for a in self._accounts.values()
            if a.company_id == company_id
            and (channel is None or a.channel == channel)
            and (status is None or a.status == status)
        ]
        accounts.sort(key=lambda a: a.created_at)
        return [_copy(a) for a in accounts]

    # ==================== Contact Operations ====================

    async def get_contact(self, contact_id: str) -> Contact | None:
        return _copy(self._contacts.get(contact_id))

    async def find_contact_by_identity(
        self,
        channel: ChannelType,
        external_id: str,
    ) -> Contact | None:
        contact_id = self._identities.get((channel, external_id))
        return await self.get_contact(contact_id) if contact_id else None

    async def find_contact_by_phone(self, phone: str) -> Contact | None:
        for contact in self._contacts.values():
            if contact.phone == phone:
                return _copy(contact)
        return None

    async def find_contact_by_email(self, email: str) -> Contact | None:
        for contact in self._contacts.values():
            if contact.email == email:
                return _copy(contact)
        return None

    async def save_contact(self, contact: Contact) -> Contact:
        async with self._lock:
            for channel, external_id in contact.channel_identities.items():
                owner = self._identities.get((channel, external_id))
                if owner is not None and owner != contact.id:
                    raise DuplicateIdentityError(channel.value, external_id, owner)

            for channel, external_id in contact.channel_identities.items():
                self._identities[(channel, external_id)] = contact.id
            self._contacts[contact.id] = _copy(contact)
        return contact

    # ==================== Conversation Operations ====================

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        return _copy(self._conversations.get(conversation_id))

    async def save_conversation(self, conversation: Conversation) -> Conversation:
        async with self._lock:
            stored = self._conversations.get(conversation.id)
            if stored is not None and stored.status != conversation.status:
                # Status only changes through the composite operations
                conversation.status = stored.status
            conversation.updated_at = utcnow()
            self._conversations[conversation.id] = _copy(conversation)
        return conversation

    def _active_for(self, contact_id: str, company_id: str) -> Conversation | None:
        for conv in self._conversations.values():
            if (
                conv.contact_id == contact_id
                and conv.company_id == company_id
                and conv.status in ACTIVE_STATUSES
            ):
                return conv
        return None

    async def get_active_conversation(
        self,
        contact_id: str,
        company_id: str,
    ) -> Conversation | None:
        return _copy(self._active_for(contact_id, company_id))

    async def list_conversations(
        self,
        company_id: str,
        statuses: Iterable[ConversationStatus] | None = None,
        agent_id: str | None = None,
        limit: int = 50,
    ) -> list[Conversation]:
        status_set = set(statuses) if statuses is not None else None
        assigned_to = None
        if agent_id is not None:
            assigned_to = {
                a.conversation_id
                for a in self._assignments.values()
                if a.agent_id == agent_id and a.is_active
            }

        convs = [
            c
            for c in self._conversations.values()
            if c.company_id == company_id
            and (status_set is None or c.status in status_set)
            and (assigned_to is None or c.id in assigned_to)
        ]
        convs.sort(key=lambda c: c.last_activity_at, reverse=True)
        return [_copy(c) for c in convs[:limit]]

    async def find_or_create_active_conversation(
        self,
        contact_id: str,
        company_id: str,
        channel: ChannelType,
        initial_status: ConversationStatus = ConversationStatus.PENDING,
    ) -> tuple[Conversation, bool]:
        async with self._lock:
            existing = self._active_for(contact_id, company_id)
            if existing is not None:
                existing.touch(channel)
                return _copy(existing), False

            conversation = Conversation(
                contact_id=contact_id,
                company_id=company_id,
                status=initial_status,
                created_via=channel,
            )
            conversation.touch(channel)
            self._conversations[conversation.id] = conversation
            return _copy(conversation), True

    def _conversation_or_raise(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation", conversation_id)
        return conversation

    def _active_assignments(self, conversation_id: str) -> list[ConversationAgent]:
        return [
            a
            for a in self._assignments.values()
            if a.conversation_id == conversation_id and a.is_active
        ]

    async def assign_conversation(
        self,
        conversation_id: str,
        agent_id: str,
        allow_reassign: bool = False,
    ) -> ConversationAgent:
        async with self._lock:
            conversation = self._conversation_or_raise(conversation_id)
            conversation.ensure_transition(ConversationStatus.OPEN)

            active = self._active_assignments(conversation_id)
            for assignment in active:
                if assignment.agent_id == agent_id and len(active) == 1:
                    conversation.status = ConversationStatus.OPEN
                    conversation.touch()
                    return _copy(assignment)
                if assignment.agent_id != agent_id and not allow_reassign:
                    raise AlreadyAssignedError(conversation_id, assignment.agent_id)

            for assignment in active:
                assignment.deactivate()

            assignment = ConversationAgent(conversation_id=conversation_id, agent_id=agent_id)
            self._assignments[assignment.id] = assignment
            conversation.status = ConversationStatus.OPEN
            conversation.touch()
            return _copy(assignment)

    async def release_conversation(
        self,
        conversation_id: str,
        status: ConversationStatus,
        agent_id: str | None = None,
        updates: dict[str, Any] | None = None,
    ) -> Conversation:
        async with self._lock:
            conversation = self._conversation_or_raise(conversation_id)
            conversation.ensure_transition(status)

            for assignment in self._active_assignments(conversation_id):
                if agent_id is None or assignment.agent_id == agent_id:
                    assignment.deactivate()

            for field, value in (updates or {}).items():
                setattr(conversation, field, value)
            conversation.status = status
            conversation.touch()
            return _copy(conversation)

    async def reopen_conversation(self, conversation_id: str) -> Conversation:
        async with self._lock:
            conversation = self._conversation_or_raise(conversation_id)
            if conversation.status != ConversationStatus.CLOSED:
                raise InvalidTransitionError(
                    "conversation",
                    conversation_id,
                    conversation.status.value,
                    ConversationStatus.PENDING.value,
                )

            other = self._active_for(conversation.contact_id, conversation.company_id)
            if other is not None:
                raise DuplicateActiveConversationError(
                    conversation.contact_id, conversation.company_id, other.id
                )

            conversation.status = ConversationStatus.PENDING
            conversation.closed_at = None
            conversation.closed_by = None
            conversation.touch()
            return _copy(conversation)

    # ==================== Assignment Operations ====================

    async def get_active_assignment(self, conversation_id: str) -> ConversationAgent | None:
        active = self._active_assignments(conversation_id)
        return _copy(active[0]) if active else None

    async def list_assignments(self, conversation_id: str) -> list[ConversationAgent]:
        assignments = [a for a in self._assignments.values() if a.conversation_id == conversation_id]
        assignments.sort(key=lambda a: a.assigned_at)
        return [_copy(a) for a in assignments]

    async def count_active_assignments(self, agent_ids: Iterable[str]) -> dict[str, int]:
        counts = {agent_id: 0 for agent_id in agent_ids}
        for assignment in self._assignments.values():
            if not assignment.is_active or assignment.agent_id not in counts:
                continue
            conversation = self._conversations.get(assignment.conversation_id)
            if conversation is not None and conversation.status in ACTIVE_STATUSES:
                counts[assignment.agent_id] += 1
        return counts

    # ==================== Message Operations ====================

    async def get_message(self, message_id: str) -> Message | None:
        return _copy(self._messages.get(message_id))

    async def save_message(self, message: Message) -> Message:
        self._messages[message.id] = _copy(message)
        return message

    async def find_message_by_external_id(self, external_message_id: str) -> Message | None:
        for message in self._messages.values():
            if message.external_message_id == external_message_id:
                return _copy(message)
        return None

    async def update_message_status(
        self,
        message_id: str,
        status: DeliveryStatus,
        external_message_id: str | None = None,
        failure_reason: str | None = None,
    ) -> Message:
        async with self._lock:
            message = self._messages.get(message_id)
            if message is None:
                raise NotFoundError("Message", message_id)
            if not message.status.can_become(status):
                raise InvalidTransitionError("message", message_id, message.status.value, status.value)

            message.status = status
            if external_message_id:
                message.external_message_id = external_message_id
            if status == DeliveryStatus.DELIVERED:
                message.delivered_at = utcnow()
            if failure_reason:
                message.failure_reason = failure_reason
            return _copy(message)

    async def get_messages(
        self,
        conversation_id: str,
        limit: int = 50,
        before_id: str | None = None,
    ) -> list[Message]:
        messages = [m for m in self._messages.values() if m.conversation_id == conversation_id]
        messages.sort(key=lambda x: x.created_at)

        if before_id:
            try:
                idx = next(i for i, m in enumerate(messages) if m.id == before_id)
                messages = messages[:idx]
            except StopIteration:
                pass

        return [_copy(m) for m in messages[-limit:]]

    async def get_recent_messages(
        self,
        conversation_id: str,
        limit: int = 10,
    ) -> list[Message]:
        return await self.get_messages(conversation_id, limit=limit)

    # ==================== Campaign Operations ====================

    async def get_campaign(self, campaign_id: str) -> Campaign | None:
        return _copy(self._campaigns.get(campaign_id))

    async def save_campaign(self, campaign: Campaign) -> Campaign:
        campaign.updated_at = utcnow()
        self._campaigns[campaign.id] = _copy(campaign)
        return campaign

    async def list_campaigns(
        self,
        company_id: str | None = None,
        status: CampaignStatus | None = None,
    ) -> list[Campaign]:
        campaigns = [
            c
            for c in self._campaigns.values()
            if (company_id is None or c.company_id == company_id)
            and (status is None or c.status == status)
        ]
        campaigns.sort(key=lambda c: c.created_at)
        return [_copy(c) for c in campaigns]

    async def list_due_campaigns(self, now: datetime) -> list[Campaign]:
        scheduled = await self.list_campaigns(status=CampaignStatus.SCHEDULED)
        return [c for c in scheduled if c.scheduled_at is not None and c.scheduled_at <= now]

    # ==================== Health Check ====================

    async def health_check(self) -> bool:
        return True

    # ==================== Development Helpers ====================

    async def clear_all(self) -> None:
        """Clear all data (for testing)."""
        for store in (
            self._companies,
            self._users,
            self._chatbots,
            self._accounts,
            self._contacts,
            self._identities,
            self._conversations,
            self._assignments,
            self._messages,
            self._campaigns,
        ):
            store.clear()

    async def seed_demo_company(self) -> Company:
        """Create a demo company with one agent and an active chatbot."""
        company = await self.save_company(Company(id="demo", name="Demo Company"))
        await self.save_user(
            User(
                id="demo-agent",
                company_id=company.id,
                name="Demo Agent",
                email="agent@demo.local",
                role=UserRole.AGENT,
            )
        )
        await self.save_chatbot_config(
            ChatbotConfig(
                company_id=company.id,
                name="Demo Bot",
                config={"greeting": "Olá! Como posso ajudar?"},
            )
        )
        for channel in (ChannelType.WHATSAPP, ChannelType.WEBCHAT):
            await self.save_channel_account(
                ChannelAccount(
                    company_id=company.id,
                    channel=channel,
                    name=f"Demo {channel.value}",
                    status=ChannelAccountStatus.CONNECTED,
                )
            )
        return company
