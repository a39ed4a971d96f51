"""Custom exceptions for the application."""

from typing import Any


class AppException(Exception):
    """Base exception for application errors."""

    status_code = 400

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class ConfigurationError(AppException):
    """Raised when there's a configuration problem."""

    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR", details=details)


class NotFoundError(AppException):
    """Raised when an entity does not exist or belongs to another company."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            f"{entity} not found: {entity_id}",
            code="NOT_FOUND",
            details={"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(AppException):
    """Raised when caller-supplied input is unusable."""

    status_code = 422

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, details=details)


class InvalidIdentityError(ValidationError):
    """Raised when a channel identity cannot be resolved to a contact."""

    def __init__(self, channel: str, external_id: str) -> None:
        super().__init__(
            f"Invalid external id for channel {channel}",
            code="INVALID_IDENTITY",
            details={"channel": channel, "external_id": external_id},
        )


class InvalidRecipientsError(ValidationError):
    """Raised when campaign recipients contain unusable phone numbers."""

    def __init__(self, invalid: list[str]) -> None:
        super().__init__(
            f"Invalid recipient phone numbers: {', '.join(invalid)}",
            code="INVALID_RECIPIENTS",
            details={"invalid": invalid},
        )


# ==================== Invariant violations ====================


class InvariantViolationError(AppException):
    """Raised when a change would break a data invariant.

    Callers are expected to re-read state and decide again rather than force it.
    """

    status_code = 409

    def __init__(
        self,
        message: str,
        code: str = "INVARIANT_VIOLATION",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, details=details)


class AlreadyAssignedError(InvariantViolationError):
    """Raised when a conversation already has a different active agent."""

    def __init__(self, conversation_id: str, agent_id: str) -> None:
        super().__init__(
            f"Conversation {conversation_id} is already assigned to {agent_id}",
            code="ALREADY_ASSIGNED",
            details={"conversation_id": conversation_id, "agent_id": agent_id},
        )
        self.agent_id = agent_id


class DuplicateActiveConversationError(InvariantViolationError):
    """Raised when a contact already has an open or pending conversation."""

    def __init__(self, contact_id: str, company_id: str, conversation_id: str) -> None:
        super().__init__(
            f"Contact {contact_id} already has an active conversation",
            code="DUPLICATE_ACTIVE_CONVERSATION",
            details={
                "contact_id": contact_id,
                "company_id": company_id,
                "conversation_id": conversation_id,
            },
        )


class DuplicateIdentityError(InvariantViolationError):
    """Raised when a channel identity is already bound to another contact."""

    def __init__(self, channel: str, external_id: str, contact_id: str) -> None:
        super().__init__(
            f"Identity {channel}:{external_id} already belongs to contact {contact_id}",
            code="DUPLICATE_IDENTITY",
            details={"channel": channel, "external_id": external_id, "contact_id": contact_id},
        )
        self.contact_id = contact_id


class InvalidTransitionError(InvariantViolationError):
    """Raised when a status change is not allowed by the lifecycle."""

    def __init__(self, entity: str, entity_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Cannot move {entity} {entity_id} from {current} to {target}",
            code="INVALID_TRANSITION",
            details={"entity": entity, "id": entity_id, "from": current, "to": target},
        )


class CampaignStateError(InvariantViolationError):
    """Raised when a campaign operation doesn't fit its current status."""

    def __init__(self, campaign_id: str, status: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} campaign {campaign_id} while {status}",
            code="CAMPAIGN_STATE",
            details={"campaign_id": campaign_id, "status": status, "action": action},
        )


class ChannelNotConnectedError(AppException):
    """Raised when a company has no connected account for a channel."""

    status_code = 409

    def __init__(self, company_id: str, channel: str) -> None:
        super().__init__(
            f"No connected {channel} account for company {company_id}",
            code="CHANNEL_NOT_CONNECTED",
            details={"company_id": company_id, "channel": channel},
        )


# ==================== Collaborator failures ====================


class CollaboratorUnavailableError(AppException):
    """Raised when an external collaborator is unreachable or erroring."""

    status_code = 503

    def __init__(
        self,
        message: str,
        code: str = "COLLABORATOR_UNAVAILABLE",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, details=details)


class PersistenceError(CollaboratorUnavailableError):
    """Raised when the storage backend fails."""

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(
            message,
            code="PERSISTENCE_ERROR",
            details={"operation": operation} if operation else {},
        )


class LLMError(CollaboratorUnavailableError):
    """Raised when LLM provider fails."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(
            message,
            code="LLM_ERROR",
            details={"provider": provider} if provider else {},
        )


class ChannelError(CollaboratorUnavailableError):
    """Raised when channel operations fail."""

    def __init__(self, message: str, channel: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            code="CHANNEL_ERROR",
            details={"channel": channel, **(details or {})},
        )


class RateLimitExceededError(AppException):
    """Raised when a channel rejects a send for exceeding its throughput."""

    status_code = 429

    def __init__(self, channel: str, retry_after: float | None = None) -> None:
        super().__init__(
            f"Rate limit exceeded on channel {channel}",
            code="RATE_LIMIT_EXCEEDED",
            details={"channel": channel, "retry_after": retry_after},
        )
        self.retry_after = retry_after
