"""Firestore storage backend for production."""

import functools
import os
from collections.abc import Iterable
from datetime import datetime
from typing import Any

import structlog
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from omnidesk.core.exceptions import (
    AlreadyAssignedError,
    AppException,
    DuplicateActiveConversationError,
    DuplicateIdentityError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
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

logger = structlog.get_logger()


def _translate_errors(func):
    """Surface Firestore failures as PersistenceError."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except AppException:
            raise
        except google_exceptions.GoogleAPIError as e:
            logger.error("Firestore operation failed", operation=func.__name__, error=str(e))
            raise PersistenceError(str(e), operation=func.__name__) from e

    return wrapper


def _dump(model) -> dict[str, Any]:
    return model.model_dump(mode="json")


class FirestoreStorage(StorageBackend):
    """Firestore storage implementation for production.

    Collection structure:
    - companies/{company_id}
    - users/{user_id}
    - chatbot_configs/{chatbot_id}
    - channel_accounts/{account_id}
    - contacts/{contact_id}
    - contact_identities/{channel}:{external_id}  -> owning contact
    - conversations/{conversation_id}
    - active_conversations/{company_id}:{contact_id}  -> the OPEN/PENDING conversation
    - conversation_agents/{assignment_id}
    - messages/{message_id}
    - campaigns/{campaign_id}

    The two pointer collections let transactions enforce uniqueness by
    reading a single document.
    """

    def __init__(self, project_id: str | None = None) -> None:
        self._project_id = project_id
        self._db: firestore.AsyncClient | None = None
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        """Lazy initialization of Firestore client."""
        if self._initialized:
            return

        try:
            if os.environ.get("FIRESTORE_EMULATOR_HOST"):
                logger.info("Using Firestore emulator")

            self._db = firestore.AsyncClient(project=self._project_id)
            self._initialized = True
            logger.info("Firestore client initialized", project=self._project_id)
        except Exception as e:
            logger.error("Failed to initialize Firestore", error=str(e))
            raise PersistenceError(f"Failed to initialize Firestore: {e}", operation="init") from e

    def _collection(self, name: str):
        return self._db.collection(name)

    async def _get(self, collection: str, doc_id: str | None, model):
        await self._ensure_initialized()
        if not doc_id:
            return None
        doc = await self._collection(collection).document(doc_id).get()
        if not doc.exists:
            return None
        return model(**doc.to_dict())

    async def _set(self, collection: str, doc_id: str, model) -> None:
        await self._ensure_initialized()
        await self._collection(collection).document(doc_id).set(_dump(model))

    # ==================== Company Operations ====================

    @_translate_errors
    async def get_company(self, company_id: str) -> Company | None:
        return await self._get("companies", company_id, Company)

    @_translate_errors
    async def save_company(self, company: Company) -> Company:
        company.updated_at = utcnow()
        await self._set("companies", company.id, company)
        return company

    # ==================== User Operations ====================

    @_translate_errors
    async def get_user(self, user_id: str) -> User | None:
        return await self._get("users", user_id, User)

    @_translate_errors
    async def save_user(self, user: User) -> User:
        await self._set("users", user.id, user)
        return user

    @_translate_errors
    async def list_users(
        self,
        company_id: str,
        roles: Iterable[UserRole] | None = None,
        status: UserStatus | None = None,
        user_ids: Iterable[str] | None = None,
    ) -> list[User]:
        await self._ensure_initialized()
        query = self._collection("users").where("company_id", "==", company_id)
        if status is not None:
            query = query.where("status", "==", status.value)

        docs = await query.get()
        role_set = set(roles) if roles is not None else None
        id_set = set(user_ids) if user_ids is not None else None
        users = [User(**doc.to_dict()) for doc in docs]
        users = [
            u
            for u in users
            if (role_set is None or u.role in role_set) and (id_set is None or u.id in id_set)
        ]
        users.sort(key=lambda u: u.id)
        return users

    # ==================== Chatbot Operations ====================

    @_translate_errors
    async def save_chatbot_config(self, chatbot: ChatbotConfig) -> ChatbotConfig:
        await self._set("chatbot_configs", chatbot.id, chatbot)
        return chatbot

    @_translate_errors
    async def list_chatbot_configs(
        self,
        company_id: str,
        active_only: bool = True,
    ) -> list[ChatbotConfig]:
        await self._ensure_initialized()
        query = self._collection("chatbot_configs").where("company_id", "==", company_id)
        if active_only:
            query = query.where("is_active", "==", True)
        docs = await query.get()
        bots = [ChatbotConfig(**doc.to_dict()) for doc in docs]
        bots.sort(key=lambda b: b.created_at)
        return bots

    # ==================== Channel Account Operations ====================

    @_translate_errors
    async def save_channel_account(self, account: ChannelAccount) -> ChannelAccount:
        await self._set("channel_accounts", account.id, account)
        return account

    @_translate_errors
    async def list_channel_accounts(
        self,
        company_id: str,
        channel: ChannelType | None = None,
        status: ChannelAccountStatus | None = None,
    ) -> list[ChannelAccount]:
        await self._ensure_initialized()
        query = self._collection("channel_accounts").where("company_id", "==", company_id)
        if channel is not None:
            query = query.where("channel", "==", channel.value)
        if status is not None:
            query = query.where("status", "==", status.value)
        docs = await query.get()
        accounts = [ChannelAccount(**doc.to_dict()) for doc in docs]
        accounts.sort(key=lambda a: a.created_at)
        return accounts

    # ==================== Contact Operations ====================

    @_translate_errors
    async def get_contact(self, contact_id: str) -> Contact | None:
        return await self._get("contacts", contact_id, Contact)

    @_translate_errors
    async def find_contact_by_identity(
        self,
        channel: ChannelType,
        external_id: str,
    ) -> Contact | None:
        await self._ensure_initialized()
        pointer = await self._collection("contact_identities").document(
            f"{channel.value}:{external_id}"
        ).get()
        if not pointer.exists:
            return None
        return await self.get_contact(pointer.to_dict()["contact_id"])

    async def _find_contact_by(self, field: str, value: str) -> Contact | None:
        await self._ensure_initialized()
        docs = await self._collection("contacts").where(field, "==", value).limit(1).get()
        for doc in docs:
            return Contact(**doc.to_dict())
        return None

    @_translate_errors
    async def find_contact_by_phone(self, phone: str) -> Contact | None:
        return await self._find_contact_by("phone", phone)

    @_translate_errors
    async def find_contact_by_email(self, email: str) -> Contact | None:
        return await self._find_contact_by("email", email)

    @_translate_errors
    async def save_contact(self, contact: Contact) -> Contact:
        await self._ensure_initialized()
        identity_refs = {
            (channel, external_id): self._collection("contact_identities").document(
                f"{channel.value}:{external_id}"
            )
            for channel, external_id in contact.channel_identities.items()
        }
        contact_ref = self._collection("contacts").document(contact.id)

        @firestore.async_transactional
        async def _save(transaction) -> None:
            for (channel, external_id), ref in identity_refs.items():
                snapshot = await ref.get(transaction=transaction)
                if snapshot.exists:
                    owner = snapshot.to_dict()["contact_id"]
                    if owner != contact.id:
                        raise DuplicateIdentityError(channel.value, external_id, owner)

            for ref in identity_refs.values():
                transaction.set(ref, {"contact_id": contact.id})
            transaction.set(contact_ref, _dump(contact))

        await _save(self._db.transaction())
        return contact

    # ==================== Conversation Operations ====================

    def _active_pointer(self, company_id: str, contact_id: str):
        return self._collection("active_conversations").document(f"{company_id}:{contact_id}")

    @_translate_errors
    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        return await self._get("conversations", conversation_id, Conversation)

    @_translate_errors
    async def save_conversation(self, conversation: Conversation) -> Conversation:
        await self._ensure_initialized()
        conversation.updated_at = utcnow()
        data = _dump(conversation)
        data.pop("status")
        await self._collection("conversations").document(conversation.id).set(data, merge=True)
        return conversation

    @_translate_errors
    async def get_active_conversation(
        self,
        contact_id: str,
        company_id: str,
    ) -> Conversation | None:
        await self._ensure_initialized()
        pointer = await self._active_pointer(company_id, contact_id).get()
        if not pointer.exists:
            return None
        return await self.get_conversation(pointer.to_dict()["conversation_id"])

    @_translate_errors
    async def list_conversations(
        self,
        company_id: str,
        statuses: Iterable[ConversationStatus] | None = None,
        agent_id: str | None = None,
        limit: int = 50,
    ) -> list[Conversation]:
        await self._ensure_initialized()
        query = self._collection("conversations").where("company_id", "==", company_id)
        if statuses is not None:
            query = query.where("status", "in", [s.value for s in statuses])

        docs = await query.order_by("last_activity_at", direction="DESCENDING").get()
        conversations = [Conversation(**doc.to_dict()) for doc in docs]

        if agent_id is not None:
            assigned = await (
                self._collection("conversation_agents")
                .where("agent_id", "==", agent_id)
                .where("is_active", "==", True)
                .get()
            )
            assigned_ids = {doc.to_dict()["conversation_id"] for doc in assigned}
            conversations = [c for c in conversations if c.id in assigned_ids]

        return conversations[:limit]

    @_translate_errors
    async def find_or_create_active_conversation(
        self,
        contact_id: str,
        company_id: str,
        channel: ChannelType,
        initial_status: ConversationStatus = ConversationStatus.PENDING,
    ) -> tuple[Conversation, bool]:
        await self._ensure_initialized()
        pointer_ref = self._active_pointer(company_id, contact_id)

        @firestore.async_transactional
        async def _find_or_create(transaction) -> tuple[Conversation, bool]:
            pointer = await pointer_ref.get(transaction=transaction)
            if pointer.exists:
                ref = self._collection("conversations").document(pointer.to_dict()["conversation_id"])
                snapshot = await ref.get(transaction=transaction)
                if snapshot.exists:
                    conversation = Conversation(**snapshot.to_dict())
                    conversation.touch(channel)
                    transaction.set(ref, _dump(conversation))
                    return conversation, False

            conversation = Conversation(
                contact_id=contact_id,
                company_id=company_id,
                status=initial_status,
                created_via=channel,
            )
            conversation.touch(channel)
            transaction.set(
                self._collection("conversations").document(conversation.id), _dump(conversation)
            )
            transaction.set(pointer_ref, {"conversation_id": conversation.id})
            return conversation, True

        return await _find_or_create(self._db.transaction())

    async def _load_for_update(self, transaction, conversation_id: str):
        ref = self._collection("conversations").document(conversation_id)
        snapshot = await ref.get(transaction=transaction)
        if not snapshot.exists:
            raise NotFoundError("Conversation", conversation_id)
        return ref, Conversation(**snapshot.to_dict())

    async def _active_assignment_docs(self, transaction, conversation_id: str):
        query = (
            self._collection("conversation_agents")
            .where("conversation_id", "==", conversation_id)
            .where("is_active", "==", True)
        )
        return await query.get(transaction=transaction)

    @_translate_errors
    async def assign_conversation(
        self,
        conversation_id: str,
        agent_id: str,
        allow_reassign: bool = False,
    ) -> ConversationAgent:
        await self._ensure_initialized()

        @firestore.async_transactional
        async def _assign(transaction) -> ConversationAgent:
            ref, conversation = await self._load_for_update(transaction, conversation_id)
            conversation.ensure_transition(ConversationStatus.OPEN)

            active = [
                (doc.reference, ConversationAgent(**doc.to_dict()))
                for doc in await self._active_assignment_docs(transaction, conversation_id)
            ]
            for _, assignment in active:
                if assignment.agent_id == agent_id and len(active) == 1:
                    conversation.status = ConversationStatus.OPEN
                    conversation.touch()
                    transaction.set(ref, _dump(conversation))
                    return assignment
                if assignment.agent_id != agent_id and not allow_reassign:
                    raise AlreadyAssignedError(conversation_id, assignment.agent_id)

            for assignment_ref, assignment in active:
                assignment.deactivate()
                transaction.set(assignment_ref, _dump(assignment))

            new_assignment = ConversationAgent(conversation_id=conversation_id, agent_id=agent_id)
            transaction.set(
                self._collection("conversation_agents").document(new_assignment.id),
                _dump(new_assignment),
            )
            conversation.status = ConversationStatus.OPEN
            conversation.touch()
            transaction.set(ref, _dump(conversation))
            return new_assignment

        return await _assign(self._db.transaction())

    @_translate_errors
    async def release_conversation(
        self,
        conversation_id: str,
        status: ConversationStatus,
        agent_id: str | None = None,
        updates: dict[str, Any] | None = None,
    ) -> Conversation:
        await self._ensure_initialized()

        @firestore.async_transactional
        async def _release(transaction) -> Conversation:
            ref, conversation = await self._load_for_update(transaction, conversation_id)
            conversation.ensure_transition(status)

            for doc in await self._active_assignment_docs(transaction, conversation_id):
                assignment = ConversationAgent(**doc.to_dict())
                if agent_id is None or assignment.agent_id == agent_id:
                    assignment.deactivate()
                    transaction.set(doc.reference, _dump(assignment))

            for field, value in (updates or {}).items():
                setattr(conversation, field, value)
            conversation.status = status
            conversation.touch()
            transaction.set(ref, _dump(conversation))

            if status == ConversationStatus.CLOSED:
                transaction.delete(self._active_pointer(conversation.company_id, conversation.contact_id))
            return conversation

        return await _release(self._db.transaction())

    @_translate_errors
    async def reopen_conversation(self, conversation_id: str) -> Conversation:
        await self._ensure_initialized()

        @firestore.async_transactional
        async def _reopen(transaction) -> Conversation:
            ref, conversation = await self._load_for_update(transaction, conversation_id)
            if conversation.status != ConversationStatus.CLOSED:
                raise InvalidTransitionError(
                    "conversation",
                    conversation_id,
                    conversation.status.value,
                    ConversationStatus.PENDING.value,
                )

            pointer_ref = self._active_pointer(conversation.company_id, conversation.contact_id)
            pointer = await pointer_ref.get(transaction=transaction)
            if pointer.exists:
                raise DuplicateActiveConversationError(
                    conversation.contact_id,
                    conversation.company_id,
                    pointer.to_dict()["conversation_id"],
                )

            conversation.status = ConversationStatus.PENDING
            conversation.closed_at = None
            conversation.closed_by = None
            conversation.touch()
            transaction.set(ref, _dump(conversation))
            transaction.set(pointer_ref, {"conversation_id": conversation.id})
            return conversation

        return await _reopen(self._db.transaction())

    # ==================== Assignment Operations ====================

    @_translate_errors
    async def get_active_assignment(self, conversation_id: str) -> ConversationAgent | None:
        await self._ensure_initialized()
        docs = await (
            self._collection("conversation_agents")
            .where("conversation_id", "==", conversation_id)
            .where("is_active", "==", True)
            .limit(1)
            .get()
        )
        for doc in docs:
            return ConversationAgent(**doc.to_dict())
        return None

    @_translate_errors
    async def list_assignments(self, conversation_id: str) -> list[ConversationAgent]:
        await self._ensure_initialized()
        docs = await (
            self._collection("conversation_agents")
            .where("conversation_id", "==", conversation_id)
            .get()
        )
        assignments = [ConversationAgent(**doc.to_dict()) for doc in docs]
        assignments.sort(key=lambda a: a.assigned_at)
        return assignments

    @_translate_errors
    async def count_active_assignments(self, agent_ids: Iterable[str]) -> dict[str, int]:
        await self._ensure_initialized()
        counts: dict[str, int] = {}
        for agent_id in agent_ids:
            docs = await (
                self._collection("conversation_agents")
                .where("agent_id", "==", agent_id)
                .where("is_active", "==", True)
                .get()
            )
            total = 0
            for doc in docs:
                conversation = await self.get_conversation(doc.to_dict()["conversation_id"])
                if conversation is not None and conversation.status in ACTIVE_STATUSES:
                    total += 1
            counts[agent_id] = total
        return counts

    # ==================== Message Operations ====================

    @_translate_errors
    async def get_message(self, message_id: str) -> Message | None:
        return await self._get("messages", message_id, Message)

    @_translate_errors
    async def save_message(self, message: Message) -> Message:
        await self._set("messages", message.id, message)
        return message

    @_translate_errors
    async def find_message_by_external_id(self, external_message_id: str) -> Message | None:
        await self._ensure_initialized()
        docs = await (
            self._collection("messages")
            .where("external_message_id", "==", external_message_id)
            .limit(1)
            .get()
        )
        for doc in docs:
            return Message(**doc.to_dict())
        return None

    @_translate_errors
    async def update_message_status(
        self,
        message_id: str,
        status: DeliveryStatus,
        external_message_id: str | None = None,
        failure_reason: str | None = None,
    ) -> Message:
        await self._ensure_initialized()
        ref = self._collection("messages").document(message_id)

        @firestore.async_transactional
        async def _update(transaction) -> Message:
            snapshot = await ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError("Message", message_id)
            message = Message(**snapshot.to_dict())
            if not message.status.can_become(status):
                raise InvalidTransitionError("message", message_id, message.status.value, status.value)

            message.status = status
            if external_message_id:
                message.external_message_id = external_message_id
            if status == DeliveryStatus.DELIVERED:
                message.delivered_at = utcnow()
            if failure_reason:
                message.failure_reason = failure_reason
            transaction.set(ref, _dump(message))
            return message

        return await _update(self._db.transaction())

    @_translate_errors
    async def get_messages(
        self,
        conversation_id: str,
        limit: int = 50,
        before_id: str | None = None,
    ) -> list[Message]:
        await self._ensure_initialized()
        query = self._collection("messages").where("conversation_id", "==", conversation_id)

        if before_id:
            cursor = await self.get_message(before_id)
            if cursor is not None:
                query = query.where("created_at", "<", cursor.created_at.isoformat())

        query = query.order_by("created_at", direction="DESCENDING").limit(limit)
        docs = await query.get()
        return list(reversed([Message(**doc.to_dict()) for doc in docs]))

    @_translate_errors
    async def get_recent_messages(
        self,
        conversation_id: str,
        limit: int = 10,
    ) -> list[Message]:
        return await self.get_messages(conversation_id, limit=limit)

    # ==================== Campaign Operations ====================

    @_translate_errors
    async def get_campaign(self, campaign_id: str) -> Campaign | None:
        return await self._get("campaigns", campaign_id, Campaign)

    @_translate_errors
    async def save_campaign(self, campaign: Campaign) -> Campaign:
        campaign.updated_at = utcnow()
        await self._set("campaigns", campaign.id, campaign)
        return campaign

    @_translate_errors
    async def list_campaigns(
        self,
        company_id: str | None = None,
        status: CampaignStatus | None = None,
    ) -> list[Campaign]:
        await self._ensure_initialized()
        query = self._collection("campaigns")
        if company_id is not None:
            query = query.where("company_id", "==", company_id)
        if status is not None:
            query = query.where("status", "==", status.value)
        docs = await query.get()
        campaigns = [Campaign(**doc.to_dict()) for doc in docs]
        campaigns.sort(key=lambda c: c.created_at)
        return campaigns

    @_translate_errors
    async def list_due_campaigns(self, now: datetime) -> list[Campaign]:
        scheduled = await self.list_campaigns(status=CampaignStatus.SCHEDULED)
        return [c for c in scheduled if c.scheduled_at is not None and c.scheduled_at <= now]

    # ==================== Health Check ====================

    async def health_check(self) -> bool:
        try:
            await self._ensure_initialized()
            await self._collection("companies").limit(1).get()
            return True
        except Exception as e:
            logger.warning("Firestore health check failed", error=str(e))
            return False
