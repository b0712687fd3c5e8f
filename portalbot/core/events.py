"""Structured log event name constants.

Key transitions in the service emit a log record carrying an ``event`` field
(passed via ``extra={"event": events.X}``).  In ``LOG_FORMAT=json`` mode the
value surfaces as the top-level ``event`` key; in text mode the message is
self-describing and the field is not printed.

These are *log* events.  The events broadcast to observers
(``STATUS_UPDATE`` / ``SPEED_UPDATE``) are modelled in
:mod:`portalbot.core.models`.

Usage example::

    import logging
    from portalbot.core import events

    logger = logging.getLogger(__name__)

    logger.info("Cycle started", extra={"event": events.CYCLE_START})
"""

from __future__ import annotations

__all__ = [
    # Service lifecycle
    "SERVICE_START",
    "SERVICE_STOP",
    "SERVICE_RESUME",
    # Cycle lifecycle
    "CYCLE_START",
    "CYCLE_SKIPPED",
    "CYCLE_OVERLAP",
    "CYCLE_ABORT",
    "PROBE_REACHABLE",
    "NO_CREDENTIALS",
    # Rotation
    "LOGIN_ATTEMPT",
    "LOGIN_SUCCESS",
    "LOGIN_FAILED",
    "ROTATION_EXHAUSTED",
    # Peripheral commands
    "LOGOUT",
    "SPEED_TEST",
]

# ---------------------------------------------------------------------------
# Service lifecycle
# ---------------------------------------------------------------------------

#: ``start`` command accepted; running flag set.
SERVICE_START: str = "SERVICE_START"

#: Service stopped (user command, disconnect, or no credentials).
SERVICE_STOP: str = "SERVICE_STOP"

#: Process restarted with a persisted running flag; timer recreated.
SERVICE_RESUME: str = "SERVICE_RESUME"

# ---------------------------------------------------------------------------
# Cycle lifecycle
# ---------------------------------------------------------------------------

#: A login cycle began with the service running.
CYCLE_START: str = "CYCLE_START"

#: A tick arrived while the service was stopped; nothing was done.
CYCLE_SKIPPED: str = "CYCLE_SKIPPED"

#: A tick arrived while another cycle was still in flight; skipped.
CYCLE_OVERLAP: str = "CYCLE_OVERLAP"

#: The rotation observed a stop mid-flight and bailed out.
CYCLE_ABORT: str = "CYCLE_ABORT"

#: Connectivity probe succeeded; credentials untouched.
PROBE_REACHABLE: str = "PROBE_REACHABLE"

#: Probe failed and the credential list is empty; service stopped.
NO_CREDENTIALS: str = "NO_CREDENTIALS"

# ---------------------------------------------------------------------------
# Rotation
# ---------------------------------------------------------------------------

#: About to submit one credential to the portal.
LOGIN_ATTEMPT: str = "LOGIN_ATTEMPT"

#: Portal accepted the credential.
LOGIN_SUCCESS: str = "LOGIN_SUCCESS"

#: Portal rejected the credential or the request failed.
LOGIN_FAILED: str = "LOGIN_FAILED"

#: Every credential failed in one full rotation pass.
ROTATION_EXHAUSTED: str = "ROTATION_EXHAUSTED"

# ---------------------------------------------------------------------------
# Peripheral commands
# ---------------------------------------------------------------------------

#: Logout request issued (or skipped for lack of an active user).
LOGOUT: str = "LOGOUT"

#: Speed test finished with a result string.
SPEED_TEST: str = "SPEED_TEST"
