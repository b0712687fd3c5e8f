"""Core domain models, settings, logging configuration, and shared utilities."""

from portalbot.core.exceptions import (
    ConfigError,
    CredentialNotFoundError,
    DuplicateCredentialError,
    OrchestratorError,
    PortalbotError,
    StorageError,
)
from portalbot.core.logging_config import JsonFormatter, configure_logging
from portalbot.core.models import (
    Command,
    Credential,
    CycleState,
    SessionState,
    SpeedUpdate,
    StatusUpdate,
    is_connected_status,
)
from portalbot.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "Command",
    "Credential",
    "CycleState",
    "SessionState",
    "SpeedUpdate",
    "StatusUpdate",
    "is_connected_status",
    # Settings
    "Settings",
    # Exceptions
    "PortalbotError",
    "ConfigError",
    "DuplicateCredentialError",
    "StorageError",
    "CredentialNotFoundError",
    "OrchestratorError",
]
