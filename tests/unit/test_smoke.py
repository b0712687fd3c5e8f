"""Smoke tests: the package imports, logging configures, exceptions are wired.

These run first and fail fast if the environment is broken.
"""

from __future__ import annotations

import asyncio
import importlib

import pytest

from portalbot.core import configure_logging
from portalbot.core.exceptions import (
    ConfigError,
    CredentialNotFoundError,
    DuplicateCredentialError,
    OrchestratorError,
    PortalbotError,
    StorageError,
)

# ---------------------------------------------------------------------------
# Imports
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "module",
    [
        "portalbot",
        "portalbot.__main__",
        "portalbot.core",
        "portalbot.core.events",
        "portalbot.notifiers",
        "portalbot.orchestrator",
        "portalbot.portal",
        "portalbot.storage",
    ],
)
def test_module_imports(module: str) -> None:
    importlib.import_module(module)


def test_version_is_exposed() -> None:
    import portalbot

    assert portalbot.__version__


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def test_configure_logging_text() -> None:
    configure_logging(level="INFO", fmt="text", force=True)


def test_configure_logging_json() -> None:
    configure_logging(level="DEBUG", fmt="json", force=True)
    # Back to text so later output stays readable.
    configure_logging(level="DEBUG", fmt="text", force=True)


def test_configure_logging_invalid_level() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_LEVEL"):
        configure_logging(level="VERBOSE", force=True)


def test_configure_logging_invalid_format() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_FORMAT"):
        configure_logging(fmt="xml", force=True)


# ---------------------------------------------------------------------------
# Exception taxonomy
# ---------------------------------------------------------------------------


def test_exception_hierarchy_base() -> None:
    """All custom exceptions are subclasses of ``PortalbotError``."""
    for exc_class in (
        ConfigError,
        DuplicateCredentialError,
        StorageError,
        CredentialNotFoundError,
        OrchestratorError,
    ):
        assert issubclass(exc_class, PortalbotError), exc_class.__name__


def test_exception_hierarchy_layers() -> None:
    assert issubclass(DuplicateCredentialError, ConfigError)
    assert issubclass(CredentialNotFoundError, StorageError)


def test_duplicate_credential_message_is_user_facing() -> None:
    exc = DuplicateCredentialError("alice")
    assert exc.username == "alice"
    assert str(exc) == "This username already exists."


def test_credential_not_found_carries_username() -> None:
    exc = CredentialNotFoundError("bob")
    assert exc.username == "bob"
    assert "bob" in str(exc)


# ---------------------------------------------------------------------------
# Async harness
# ---------------------------------------------------------------------------


async def test_async_test_runs() -> None:
    """Confirms pytest-asyncio is operational."""
    await asyncio.sleep(0)
