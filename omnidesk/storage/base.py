"""Abstract base class for storage backends."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from omnidesk.models import (
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


class StorageBackend(ABC):
    """Abstract storage backend interface.

    Backends raise ``PersistenceError`` when the underlying store fails. The
    composite conversation operations must be atomic with respect to each
    other: they are the only way conversation status and assignments change.
    """

    # ==================== Company Operations ====================

    @abstractmethod
    async def get_company(self, company_id: str) -> Company | None:
        """Get a company by ID."""
        ...

    @abstractmethod
    async def save_company(self, company: Company) -> Company:
        """Save or update a company."""
        ...

    # ==================== User Operations ====================

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        """Get a user by ID."""
        ...

    @abstractmethod
    async def save_user(self, user: User) -> User:
        """Save or update a user."""
        ...

    @abstractmethod
    async def list_users(
        self,
        company_id: str,
        roles: Iterable[UserRole] | None = None,
        status: UserStatus | None = None,
        user_ids: Iterable[str] | None = None,
    ) -> list[User]:
        """List users of a company, optionally filtered."""
        ...

    # ==================== Chatbot Operations ====================

    @abstractmethod
    async def save_chatbot_config(self, chatbot: ChatbotConfig) -> ChatbotConfig:
        """Save or update a chatbot configuration."""
        ...

    @abstractmethod
    async def list_chatbot_configs(
        self,
        company_id: str,
        active_only: bool = True,
    ) -> list[ChatbotConfig]:
        """List chatbot configurations of a company, oldest first."""
        ...

    # ==================== Channel Account Operations ====================

    @abstractmethod
    async def save_channel_account(self, account: ChannelAccount) -> ChannelAccount:
        """Save or update a channel account."""
        ...

    @abstractmethod
    async def list_channel_accounts(
        self,
        company_id: str,
        channel: ChannelType | None = None,
        status: ChannelAccountStatus | None = None,
    ) -> list[ChannelAccount]:
        """List channel accounts of a company."""
        ...

    # ==================== Contact Operations ====================

    @abstractmethod
    async def get_contact(self, contact_id: str) -> Contact | None:
        """Get a contact by ID."""
        ...

    @abstractmethod
    async def find_contact_by_identity(
        self,
        channel: ChannelType,
        external_id: str,
    ) -> Contact | None:
        """Find the contact owning a channel identity."""
        ...

    @abstractmethod
    async def find_contact_by_phone(self, phone: str) -> Contact | None:
        """Find a contact by normalized phone number."""
        ...

    @abstractmethod
    async def find_contact_by_email(self, email: str) -> Contact | None:
        """Find a contact by lower-cased email address."""
        ...

    @abstractmethod
    async def save_contact(self, contact: Contact) -> Contact:
        """Create or update a contact.

        Raises:
            DuplicateIdentityError: If one of the contact's channel identities
                already belongs to a different contact.
        """
        ...

    # ==================== Conversation Operations ====================

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        ...

    @abstractmethod
    async def save_conversation(self, conversation: Conversation) -> Conversation:
        """Save fields of a conversation that do not affect its status."""
        ...

    @abstractmethod
    async def get_active_conversation(
        self,
        contact_id: str,
        company_id: str,
    ) -> Conversation | None:
        """Get the OPEN/PENDING conversation of a contact with a company."""
        ...

    @abstractmethod
    async def list_conversations(
        self,
        company_id: str,
        statuses: Iterable[ConversationStatus] | None = None,
        agent_id: str | None = None,
        limit: int = 50,
    ) -> list[Conversation]:
        """List conversations for a company, most recent activity first."""
        ...

    @abstractmethod
    async def find_or_create_active_conversation(
        self,
        contact_id: str,
        company_id: str,
        channel: ChannelType,
        initial_status: ConversationStatus = ConversationStatus.PENDING,
    ) -> tuple[Conversation, bool]:
        """Atomically return the active conversation of the pair or create one.

        Returns:
            Tuple of (conversation, created)
        """
        ...

    @abstractmethod
    async def assign_conversation(
        self,
        conversation_id: str,
        agent_id: str,
        allow_reassign: bool = False,
    ) -> ConversationAgent:
        """Atomically make ``agent_id`` the sole active assignee and set OPEN.

        Assigning the current assignee again is a no-op returning the
        existing assignment.

        Raises:
            NotFoundError: If the conversation does not exist
            AlreadyAssignedError: If another agent is active and
                ``allow_reassign`` is False
            InvalidTransitionError: If the conversation is closed
        """
        ...

    @abstractmethod
    async def release_conversation(
        self,
        conversation_id: str,
        status: ConversationStatus,
        agent_id: str | None = None,
        updates: dict[str, Any] | None = None,
    ) -> Conversation:
        """Atomically deactivate assignments and move to ``status``.

        Only ``agent_id``'s assignment is deactivated when given. ``updates``
        are applied to the conversation in the same step.
        """
        ...

    @abstractmethod
    async def reopen_conversation(self, conversation_id: str) -> Conversation:
        """Atomically move a CLOSED conversation back to PENDING.

        Raises:
            DuplicateActiveConversationError: If the contact already has
                another active conversation with the company.
        """
        ...

    # ==================== Assignment Operations ====================

    @abstractmethod
    async def get_active_assignment(self, conversation_id: str) -> ConversationAgent | None:
        """Get the active assignment of a conversation."""
        ...

    @abstractmethod
    async def list_assignments(self, conversation_id: str) -> list[ConversationAgent]:
        """List all assignments of a conversation, oldest first."""
        ...

    @abstractmethod
    async def count_active_assignments(self, agent_ids: Iterable[str]) -> dict[str, int]:
        """Count active assignments on OPEN/PENDING conversations per agent."""
        ...

    # ==================== Message Operations ====================

    @abstractmethod
    async def get_message(self, message_id: str) -> Message | None:
        """Get a message by ID."""
        ...

    @abstractmethod
    async def save_message(self, message: Message) -> Message:
        """Save a message."""
        ...

    @abstractmethod
    async def find_message_by_external_id(self, external_message_id: str) -> Message | None:
        """Find a message by the id the channel gave it."""
        ...

    @abstractmethod
    async def update_message_status(
        self,
        message_id: str,
        status: DeliveryStatus,
        external_message_id: str | None = None,
        failure_reason: str | None = None,
    ) -> Message:
        """Move a message from SENT to DELIVERED or FAILED.

        Raises:
            NotFoundError: If the message does not exist
            InvalidTransitionError: If the status already settled
        """
        ...

    @abstractmethod
    async def get_messages(
        self,
        conversation_id: str,
        limit: int = 50,
        before_id: str | None = None,
    ) -> list[Message]:
        """Get messages for a conversation in chronological order."""
        ...

    @abstractmethod
    async def get_recent_messages(
        self,
        conversation_id: str,
        limit: int = 10,
    ) -> list[Message]:
        """Get the most recent messages, in chronological order."""
        ...

    # ==================== Campaign Operations ====================

    @abstractmethod
    async def get_campaign(self, campaign_id: str) -> Campaign | None:
        """Get a campaign by ID."""
        ...

    @abstractmethod
    async def save_campaign(self, campaign: Campaign) -> Campaign:
        """Save or update a campaign."""
        ...

    @abstractmethod
    async def list_campaigns(
        self,
        company_id: str | None = None,
        status: CampaignStatus | None = None,
    ) -> list[Campaign]:
        """List campaigns, optionally filtered."""
        ...

    @abstractmethod
    async def list_due_campaigns(self, now: datetime) -> list[Campaign]:
        """List SCHEDULED campaigns whose send time has passed."""
        ...

    # ==================== Health Check ====================

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if storage is healthy."""
        ...
