"""Shared pytest fixtures and configuration for the Portalbot test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across unit and integration tests.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic_settings import SettingsConfigDict

from portalbot.core import configure_logging
from portalbot.core.models import SpeedUpdate, StatusUpdate
from portalbot.core.settings import Settings
from portalbot.notifiers.channel import StatusChannel
from portalbot.portal.client import PortalClient
from portalbot.storage.database import MEMORY_DB, open_db
from portalbot.storage.repository import StateStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test.

    ``force=True`` applies the configuration even when pytest's own
    ``log_cli`` handler is already present.
    """
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every env var Settings reads, and disable ``.env`` loading.

    Keeps a developer's local portal configuration out of settings tests.
    """
    prefixes = (
        "PORTAL_",
        "PROBE_",
        "SPEED_TEST_",
        "LOGIN_",
        "POLL_",
        "DATABASE_",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.upper().startswith(prefix) for prefix in prefixes):
            monkeypatch.delenv(key, raising=False)

    # pydantic-settings reads the file directly, not via os.environ.
    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


@pytest.fixture()
def settings(clean_env: None) -> Settings:
    """Default settings on a throwaway in-memory database."""
    return Settings(database_path=MEMORY_DB)


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


@pytest.fixture()
async def store() -> AsyncIterator[StateStore]:
    """A :class:`StateStore` over a fresh in-memory SQLite database."""
    conn = await open_db(MEMORY_DB)
    try:
        yield StateStore(conn)
    finally:
        await conn.close()


@pytest.fixture()
def portal() -> MagicMock:
    """PortalClient double: network unreachable, every login rejected."""
    mock = MagicMock(spec=PortalClient)
    mock.probe = AsyncMock(return_value=False)
    mock.login = AsyncMock(return_value=False)
    mock.logout = AsyncMock(return_value=True)
    return mock


@pytest.fixture()
def channel() -> StatusChannel:
    return StatusChannel()


@pytest.fixture()
def published(channel: StatusChannel) -> list[StatusUpdate | SpeedUpdate]:
    """Every event published on ``channel``, in order."""
    events: list[StatusUpdate | SpeedUpdate] = []
    channel.subscribe(events.append)
    return events

