"""SQLite database initialisation for Portalbot.

This module is responsible for:

* Opening (or creating) the SQLite file.
* Configuring PRAGMA settings (WAL journal mode, busy timeout).
* Bootstrapping the key-value schema via ``CREATE TABLE IF NOT EXISTS``.

The long-running service and one-shot CLI invocations open the same file, so
WAL mode matters here: a ``portalbot stop`` from a second shell commits while
the service is mid-rotation, and the service sees the new running flag on its
next read.

Typical usage::

    from portalbot.storage.database import open_db

    async def main() -> None:
        conn = await open_db()
        # ... pass conn to StateStore ...
        await conn.close()
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

__all__ = [
    "DEFAULT_DB_PATH",
    "MEMORY_DB",
    "open_db",
    "create_schema",
]

logger = logging.getLogger(__name__)

#: Fallback database path when no explicit path is passed to :func:`open_db`.
DEFAULT_DB_PATH: Path = Path("portalbot.db")

#: Special path understood by SQLite as a private in-memory database.
MEMORY_DB: str = ":memory:"

#: Milliseconds SQLite itself waits on a locked database before giving up.
_BUSY_TIMEOUT_MS: int = 2000

#: ``kv`` holds one JSON document per key.
#:
#: key         ``credentials`` or ``session_state``.
#: value       JSON text; replaced whole on every write.
#: updated_at  ISO-8601 UTC timestamp of the last write.
_DDL_KV = """\
CREATE TABLE IF NOT EXISTS kv (
    key         TEXT NOT NULL,
    value       TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    PRIMARY KEY (key)
)"""


async def open_db(path: Path | str | None = None) -> aiosqlite.Connection:
    """Open (or create) the state database.

    Creates parent directories, opens the connection, applies PRAGMAs and
    bootstraps the schema.  Pass :data:`MEMORY_DB` for a throwaway database.

    Args:
        path: Filesystem path for the SQLite file.  Defaults to
            :data:`DEFAULT_DB_PATH`.

    Returns:
        An open :class:`aiosqlite.Connection`.  The caller closes it.

    Raises:
        aiosqlite.OperationalError: If the file cannot be opened or created.
    """
    if path == MEMORY_DB:
        target: str | Path = MEMORY_DB
    else:
        target = Path(path or DEFAULT_DB_PATH)
        target.parent.mkdir(parents=True, exist_ok=True)

    logger.debug("Opening SQLite database at %s", target)

    conn: aiosqlite.Connection = await aiosqlite.connect(target)
    conn.row_factory = aiosqlite.Row

    await _configure_pragmas(conn)
    await create_schema(conn)

    logger.debug("SQLite state store ready at %s", target)
    return conn


async def create_schema(conn: aiosqlite.Connection) -> None:
    """Create the ``kv`` table if it does not already exist (idempotent)."""
    await conn.execute(_DDL_KV)
    await conn.commit()


async def _configure_pragmas(conn: aiosqlite.Connection) -> None:
    """Apply PRAGMA settings that must be set right after opening."""
    result = await conn.execute("PRAGMA journal_mode=WAL")
    row = await result.fetchone()
    mode = row[0] if row else "unknown"
    if mode != "wal":
        # In-memory databases always report "memory".
        logger.debug("SQLite journal_mode is %r (WAL not available).", mode)

    await conn.execute(f"PRAGMA busy_timeout={_BUSY_TIMEOUT_MS}")
