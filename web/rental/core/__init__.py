from .base import BaseRepository, BaseService
from .exceptions import (
    BaseError,
    NotFoundError,
    ValidationError,
    AuthenticationError,
    AuthorizationError,
    PreconditionFailedError,
    CapacityExceededError,
    AuditError,
    ConfigurationError,
    TransientJobFailure,
)
from .config import Settings, get_settings

__all__ = [
    # Base classes
    "BaseRepository",
    "BaseService",

    # Exceptions
    "BaseError",
    "NotFoundError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "PreconditionFailedError",
    "CapacityExceededError",
    "AuditError",
    "ConfigurationError",
    "TransientJobFailure",

    # Config
    "Settings",
    "get_settings"
]
