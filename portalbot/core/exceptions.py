"""Portalbot exception taxonomy.

Every custom exception inherits from :class:`PortalbotError`.  Exceptions are
organised by architectural layer so callers can catch at the right granularity:

    Layer hierarchy
    ---------------
    PortalbotError
    ├── ConfigError
    │   └── DuplicateCredentialError
    ├── StorageError
    │   └── CredentialNotFoundError
    └── OrchestratorError

Network failures (transport errors, timeouts) are deliberately absent: the
portal client collapses them into boolean outcomes at each call site, so they
never travel past :class:`~portalbot.portal.client.PortalClient`.

Usage:

    from portalbot.core.exceptions import DuplicateCredentialError

    try:
        await store.add_credential(credential)
    except DuplicateCredentialError as exc:
        print(exc)
"""

from __future__ import annotations

import logging

__all__ = [
    "PortalbotError",
    # Config
    "ConfigError",
    "DuplicateCredentialError",
    # Storage
    "StorageError",
    "CredentialNotFoundError",
    # Orchestrator
    "OrchestratorError",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class PortalbotError(Exception):
    """Root exception for all Portalbot errors.

    Catch this to handle any application-level error uniformly.  Prefer
    catching layer-specific subclasses wherever possible.
    """


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(PortalbotError):
    """Raised when configuration supplied by the user is invalid.

    Examples:
        - A settings value is malformed.
        - A credential being added collides with an existing one.
    """


class DuplicateCredentialError(ConfigError):
    """Raised when adding a credential whose username is already stored.

    The stored credential list is left untouched.  The message is meant to be
    shown to the user verbatim.

    Args:
        username: The colliding username.
    """

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__("This username already exists.")


# ---------------------------------------------------------------------------
# Storage layer
# ---------------------------------------------------------------------------


class StorageError(PortalbotError):
    """Raised when a database or persistence operation fails."""


class CredentialNotFoundError(StorageError):
    """Raised when an operation references a username that is not stored.

    Args:
        username: The missing username.
    """

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"No stored credential for username {username!r}")


# ---------------------------------------------------------------------------
# Orchestrator layer
# ---------------------------------------------------------------------------


class OrchestratorError(PortalbotError):
    """Raised for errors in the scheduling or command layer.

    Examples:
        - An unknown command name reaches the dispatcher.
        - A timer is registered with a non-positive period.
    """
