"""Key-value state store for credentials and session state.

Provides :class:`StateStore`, the single data-access object for the ``kv``
table.  Two documents live there:

``credentials``
    JSON array of ``{"username": ..., "password": ...}`` objects, in rotation
    order.  Mutated only by explicit add/remove/move commands.

``session_state``
    JSON object ``{"running": bool, "status": str, "last_good_index": int}``.
    Mutated by the orchestrator through merge-patches.

Each document is read and replaced whole, so per-key reads and writes are
atomic.  Read-modify-write sequences issued through this object are
additionally serialised by an in-process :class:`asyncio.Lock`; writes from
other processes are not prevented, only tolerated.

Typical usage::

    from portalbot.storage.database import open_db
    from portalbot.storage.repository import StateStore

    conn = await open_db()
    store = StateStore(conn)

    await store.add_credential(Credential(username="alice", password="pw"))
    await store.set_session_state(running=True, status="Service starting...")
    state = await store.get_session_state()
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, Final

import aiosqlite
from pydantic import TypeAdapter, ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from portalbot.core.exceptions import (
    CredentialNotFoundError,
    DuplicateCredentialError,
    StorageError,
)
from portalbot.core.models import Credential, SessionState

__all__ = ["StateStore", "CREDENTIALS_KEY", "SESSION_STATE_KEY"]

logger = logging.getLogger(__name__)

CREDENTIALS_KEY: Final[str] = "credentials"
SESSION_STATE_KEY: Final[str] = "session_state"

#: Total attempts for a statement that hits "database is locked".
_LOCKED_MAX_ATTEMPTS: Final[int] = 3

#: Seconds between attempts on a locked database.
_LOCKED_WAIT_S: Final[float] = 0.2

_CREDENTIALS_ADAPTER: Final[TypeAdapter[list[Credential]]] = TypeAdapter(list[Credential])

_SESSION_FIELDS: Final[frozenset[str]] = frozenset(SessionState.model_fields)


def _is_locked_error(exc: BaseException) -> bool:
    """Return ``True`` for SQLite's transient lock-contention errors."""
    return isinstance(exc, sqlite3.OperationalError) and (
        "locked" in str(exc) or "busy" in str(exc)
    )


def _log_locked_retry(rs: RetryCallState) -> None:
    logger.warning(
        "State store locked (attempt %d/%d) — retrying in %.1f s…",
        rs.attempt_number,
        _LOCKED_MAX_ATTEMPTS,
        _LOCKED_WAIT_S,
    )


class StateStore:
    """Data-access object for the ``kv`` table.

    Owns no connection lifecycle. The caller supplies an open
    :class:`aiosqlite.Connection` (see
    :func:`~portalbot.storage.database.open_db`) and closes it when done.

    Args:
        conn: Open, configured :class:`aiosqlite.Connection`.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    async def get_credentials(self) -> list[Credential]:
        """Return the stored credentials in rotation order (``[]`` if none)."""
        raw = await self._read(CREDENTIALS_KEY)
        if raw is None:
            return []
        try:
            return _CREDENTIALS_ADAPTER.validate_json(raw)
        except ValidationError as exc:
            raise StorageError(f"Stored credential list is corrupt: {exc}") from exc

    async def save_credentials(self, credentials: Iterable[Credential]) -> None:
        """Replace the whole credential list."""
        await self._write(
            CREDENTIALS_KEY,
            _CREDENTIALS_ADAPTER.dump_json(list(credentials)).decode(),
        )

    async def add_credential(self, credential: Credential) -> None:
        """Append *credential* to the end of the rotation.

        Raises:
            DuplicateCredentialError: If the username is already stored.  The
                list is not modified.
        """
        async with self._lock:
            credentials = await self.get_credentials()
            if any(c.username == credential.username for c in credentials):
                raise DuplicateCredentialError(credential.username)
            await self.save_credentials([*credentials, credential])
        logger.info("Credential added: %s (%d stored)", credential.username, len(credentials) + 1)

    async def remove_credential(self, username: str) -> None:
        """Remove the credential for *username*; no-op if it is not stored."""
        async with self._lock:
            credentials = await self.get_credentials()
            remaining = [c for c in credentials if c.username != username]
            if len(remaining) == len(credentials):
                logger.debug("remove_credential: %s not stored — nothing to do.", username)
                return
            await self.save_credentials(remaining)
        logger.info("Credential removed: %s (%d stored)", username, len(remaining))

    async def move_credential(self, username: str, new_index: int) -> None:
        """Move the credential for *username* to *new_index* in the rotation.

        *new_index* is clamped into ``[0, len - 1]``.  The stored
        ``last_good_index`` is not rewritten; it may point at a different
        credential afterwards, which only changes where the next rotation
        starts.

        Raises:
            CredentialNotFoundError: If *username* is not stored.
        """
        async with self._lock:
            credentials = await self.get_credentials()
            for position, credential in enumerate(credentials):
                if credential.username == username:
                    break
            else:
                raise CredentialNotFoundError(username)

            moved = credentials.pop(position)
            target = max(0, min(new_index, len(credentials)))
            credentials.insert(target, moved)
            await self.save_credentials(credentials)
        logger.info("Credential %s moved from position %d to %d", username, position, target)

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    async def get_session_state(self) -> SessionState:
        """Return the persisted session state, or defaults if never written."""
        raw = await self._read(SESSION_STATE_KEY)
        if raw is None:
            return SessionState()
        try:
            return SessionState.model_validate_json(raw)
        except ValidationError as exc:
            raise StorageError(f"Stored session state is corrupt: {exc}") from exc

    async def set_session_state(
        self, *, require_running: bool = False, **patch: Any
    ) -> SessionState | None:
        """Merge *patch* into the session state and persist it.

        Fields not named in *patch* keep their stored values.

        Args:
            require_running: Only write while the stored state is running.
                Checked under the same lock as the write, so a concurrent
                stop cannot be overwritten.
            **patch: :class:`SessionState` fields to change.

        Returns:
            The session state as written, or ``None`` if *require_running*
            was set and the service is stopped (nothing is written).

        Raises:
            ValueError: If *patch* names a field :class:`SessionState` lacks.
        """
        unknown = set(patch) - _SESSION_FIELDS
        if unknown:
            raise ValueError(f"Unknown session state field(s): {sorted(unknown)}")

        async with self._lock:
            current = await self.get_session_state()
            if require_running and not current.running:
                logger.debug("Session state update refused, service stopped: %s", patch)
                return None
            try:
                updated = SessionState.model_validate({**current.model_dump(), **patch})
            except ValidationError as exc:
                raise ValueError(f"Invalid session state patch {patch!r}: {exc}") from exc
            await self._write(SESSION_STATE_KEY, updated.model_dump_json())
        logger.debug("Session state updated: %s", patch)
        return updated

    # ------------------------------------------------------------------
    # Low-level access
    # ------------------------------------------------------------------

    async def _read(self, key: str) -> str | None:
        row = await self._execute(
            "SELECT value FROM kv WHERE key = ?",
            (key,),
            fetch=True,
        )
        return None if row is None else row["value"]

    async def _write(self, key: str, value: str) -> None:
        await self._execute(
            """
            INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value, datetime.now(UTC).isoformat()),
            commit=True,
        )

    async def _execute(
        self,
        sql: str,
        params: tuple[Any, ...],
        *,
        fetch: bool = False,
        commit: bool = False,
    ) -> aiosqlite.Row | None:
        """Run one statement, retrying on lock contention.

        Raises:
            StorageError: For any database error other than a transient lock,
                or once the lock retries are exhausted.
        """
        row: aiosqlite.Row | None = None
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(_is_locked_error),
                stop=stop_after_attempt(_LOCKED_MAX_ATTEMPTS),
                wait=wait_fixed(_LOCKED_WAIT_S),
                before_sleep=_log_locked_retry,
                reraise=True,
            ):
                with attempt:
                    cursor = await self._conn.execute(sql, params)
                    row = await cursor.fetchone() if fetch else None
                    await cursor.close()
                    if commit:
                        await self._conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"State store operation failed: {exc}") from exc
        return row
