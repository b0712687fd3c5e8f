"""Portalbot core domain models.

Defines the persisted data (:class:`Credential`, :class:`SessionState`), the
orchestrator state enumeration, the command vocabulary accepted from the
presentation layer, and the event payloads broadcast to observers.

Typical usage::

    from portalbot.core.models import Credential, SessionState

    credential = Credential(username="alice", password="s3cret")
    state = SessionState()               # running=False, last_good_index=-1
    state = state.model_copy(update={"running": True})
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field, field_validator

__all__ = [
    "CONNECTED_TOKEN",
    "Command",
    "Credential",
    "CycleState",
    "SessionState",
    "SpeedUpdate",
    "StatusUpdate",
    "is_connected_status",
]

logger = logging.getLogger(__name__)

#: Substring whose presence in a status string means "live connection".
CONNECTED_TOKEN: str = "connected"

#: Status shown before the service has ever run.
_INITIAL_STATUS: str = "Service stopped."


def is_connected_status(status: str) -> bool:
    """Return ``True`` if *status* carries the connected token.

    This is the only machine-meaningful content of a status string; the
    comparison is case-insensitive.
    """
    return CONNECTED_TOKEN in status.lower()


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class CycleState(StrEnum):
    """States of the login-cycle orchestrator."""

    STOPPED = "stopped"
    PROBING = "probing"
    ROTATING = "rotating"
    CONNECTED = "connected"
    EXHAUSTED = "exhausted"


class Command(StrEnum):
    """Tagged actions the presentation layer can send to the service."""

    START = "start"
    STOP = "stop"
    DISCONNECT = "disconnect"
    CHECK_SPEED = "checkSpeed"


# ---------------------------------------------------------------------------
# Persisted data
# ---------------------------------------------------------------------------


class Credential(BaseModel):
    """One portal login.

    Stored in an ordered list whose order defines the rotation sequence.
    Usernames are unique within that list; the store enforces it.

    Attributes:
        username: Portal username (non-blank).
        password: Portal password (non-empty).
    """

    model_config = {"frozen": True}

    username: str = Field(..., min_length=1, description="Portal username.")
    password: str = Field(..., min_length=1, description="Portal password.")

    @field_validator("username")
    @classmethod
    def _username_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("username must not be blank")
        return v

    def __repr__(self) -> str:
        return f"Credential(username={self.username!r}, password='***')"

    __str__ = __repr__


class SessionState(BaseModel):
    """Persisted state of the login service.

    Attributes:
        running: Whether scheduler ticks should do any work.
        status: Short human-readable description of the current state.  Only
            its connected token is contractually meaningful, see
            :func:`is_connected_status`.
        last_good_index: Index of the last credential that logged in, or -1
            when none is known.  May go stale when credentials are removed;
            readers clamp it via :meth:`rotation_offset`.
    """

    model_config = {"frozen": True}

    running: bool = False
    status: str = _INITIAL_STATUS
    last_good_index: int = Field(default=-1, ge=-1)

    @property
    def connected(self) -> bool:
        """``True`` if :attr:`status` carries the connected token."""
        return is_connected_status(self.status)

    def rotation_offset(self, count: int) -> int:
        """Return where a rotation over *count* credentials should start.

        :attr:`last_good_index` when it is a valid index, otherwise 0.
        """
        if 0 <= self.last_good_index < count:
            return self.last_good_index
        return 0


# ---------------------------------------------------------------------------
# Broadcast events
# ---------------------------------------------------------------------------


class StatusUpdate(BaseModel):
    """Broadcast whenever the service status string changes."""

    model_config = {"frozen": True}

    type: Literal["STATUS_UPDATE"] = "STATUS_UPDATE"
    status: str
    running: bool


class SpeedUpdate(BaseModel):
    """Broadcast when a speed test finishes."""

    model_config = {"frozen": True}

    type: Literal["SPEED_UPDATE"] = "SPEED_UPDATE"
    speed: str
