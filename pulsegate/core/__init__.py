"""Core primitives for pulsegate."""

from .errors import (
    AdminRequestError,
    BadTimestamp,
    CommandExecutionError,
    InvalidFormat,
    MacMismatch,
    MissingParameter,
    NoSharedKey,
    ReplayedCounter,
    SanityCheckFailed,
    UnauthorizedClient,
    UnknownCommand,
)
from .models import (
    AdminRequest,
    CounterCommit,
    CredentialCheck,
    CredentialPolicy,
    DeviceCredential,
    Gate,
    ValidationResult,
)
from .protocols import CacheInvalidator, ConfigurationStore, CredentialRepository

__all__ = [
    "AdminRequest",
    "AdminRequestError",
    "BadTimestamp",
    "CacheInvalidator",
    "CommandExecutionError",
    "ConfigurationStore",
    "CounterCommit",
    "CredentialCheck",
    "CredentialPolicy",
    "CredentialRepository",
    "DeviceCredential",
    "Gate",
    "InvalidFormat",
    "MacMismatch",
    "MissingParameter",
    "NoSharedKey",
    "ReplayedCounter",
    "SanityCheckFailed",
    "UnauthorizedClient",
    "UnknownCommand",
    "ValidationResult",
]
