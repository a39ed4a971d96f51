"""Core module - configuration and utilities."""

from omnidesk.core.config import settings
from omnidesk.core.exceptions import (
    AlreadyAssignedError,
    AppException,
    CampaignStateError,
    ChannelError,
    ChannelNotConnectedError,
    CollaboratorUnavailableError,
    ConfigurationError,
    DuplicateActiveConversationError,
    InvalidIdentityError,
    InvalidTransitionError,
    InvariantViolationError,
    LLMError,
    NotFoundError,
    PersistenceError,
    RateLimitExceededError,
)
from omnidesk.core.locks import KeyedLock, LockTimeoutError

__all__ = [
    "settings",
    "AppException",
    "AlreadyAssignedError",
    "CampaignStateError",
    "ChannelError",
    "ChannelNotConnectedError",
    "CollaboratorUnavailableError",
    "ConfigurationError",
    "DuplicateActiveConversationError",
    "InvalidIdentityError",
    "InvalidTransitionError",
    "InvariantViolationError",
    "KeyedLock",
    "LLMError",
    "LockTimeoutError",
    "NotFoundError",
    "PersistenceError",
    "RateLimitExceededError",
]
