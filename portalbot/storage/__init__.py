"""SQLite-backed key-value store for credentials and session state."""

from portalbot.storage.database import DEFAULT_DB_PATH, MEMORY_DB, create_schema, open_db
from portalbot.storage.repository import StateStore

__all__ = [
    "DEFAULT_DB_PATH",
    "MEMORY_DB",
    "open_db",
    "create_schema",
    "StateStore",
]
