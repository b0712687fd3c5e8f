"""Login-cycle orchestrator: keep the captive-portal session alive.

:class:`LoginCycle` owns the retry/rotation state machine.  It is driven from
two independent sources: the scheduler's periodic tick (:meth:`run_cycle`)
and explicit commands (:meth:`start`, :meth:`stop`, :meth:`disconnect`,
:meth:`resume`).

State machine
~~~~~~~~~~~~~
::

    STOPPED ──start()──▶ PROBING ──probe ok──▶ CONNECTED
                            │                      ▲
                            │ probe failed         │ login ok
                            ▼                      │
                        ROTATING ──────────────────┘
                            │
                            │ every credential failed
                            ▼
                        EXHAUSTED   (still running; next tick → PROBING)

    any state ──stop()/disconnect()/no credentials──▶ STOPPED

One cycle
~~~~~~~~~
1. Not running → return (a tick racing a stop is a no-op).
2. Probe connectivity.  Reachable → publish ``"Connected"`` unless the status
   already carries the connected token, then return.
3. No credentials → ``stop("No credentials.")``.
4. Rotate once over the full list, starting at the last known-good index
   and wrapping around.
5. Before each candidate, and again after its login attempt, re-read the
   persisted running flag; a stop issued meanwhile aborts the rotation
   without publishing anything further.
6. Publish ``"Testing: i/N (user)"`` and submit.  Success → publish
   ``"Connected with ID i (user)"``, persist the index, return.
7. Everyone failed → publish ``"All N IDs failed. Retrying..."`` and reset the
   index to 0.  The service keeps running; the next tick tries again.

Concurrency
~~~~~~~~~~~
Network calls are the only suspension points, each bounded by its own
total deadline.  A stop from another command (or another process sharing the
store) is observed through the re-read in step 5, so it preempts a rotation
within one login attempt.  Cycle bodies never overlap inside one
:class:`LoginCycle`: a tick arriving while a cycle is in flight is skipped,
which keeps login attempts strictly sequential.  :meth:`start` and
:meth:`resume` instead wait for the in-flight cycle, which notices that it
belongs to an older generation (every start and stop bumps the generation)
and bails out at its next check, so the command always gets its own cycle.

Status writes made during a cycle patch only ``status`` (and the index), not
``running``, and the store refuses them once the service is stopped, so a
stop landing between the re-read and the write still wins.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Final

from portalbot.core import events
from portalbot.core.logging_config import CYCLE_ID_CTX
from portalbot.core.models import CycleState, SessionState, StatusUpdate
from portalbot.notifiers.channel import StatusChannel
from portalbot.orchestrator.scheduler import Scheduler
from portalbot.portal.client import PortalClient
from portalbot.storage.repository import StateStore

__all__ = [
    "ALARM_NAME",
    "DEFAULT_PERIOD_S",
    "LoginCycle",
    "STATUS_CONNECTED",
    "STATUS_DISCONNECTED",
    "STATUS_NO_CREDENTIALS",
    "STATUS_STARTING",
    "STATUS_STOPPED_BY_USER",
    "connected_status",
    "exhausted_status",
    "testing_status",
]

logger = logging.getLogger(__name__)

#: Name of the repeating timer that drives the cycle.
ALARM_NAME: Final[str] = "portalbot-login-cycle"

#: Seconds between scheduler ticks.
DEFAULT_PERIOD_S: Final[float] = 60.0

STATUS_STARTING: Final[str] = "Service starting..."
STATUS_STOPPED_BY_USER: Final[str] = "Service stopped by user."
STATUS_DISCONNECTED: Final[str] = "Disconnected by user."
STATUS_NO_CREDENTIALS: Final[str] = "No credentials."
STATUS_CONNECTED: Final[str] = "Connected"


def testing_status(index: int, total: int, username: str) -> str:
    return f"Testing: {index + 1}/{total} ({username})"


def connected_status(index: int, username: str) -> str:
    return f"Connected with ID {index + 1} ({username})"


def exhausted_status(total: int) -> str:
    return f"All {total} IDs failed. Retrying..."


class LoginCycle:
    """The login-cycle orchestrator.

    Args:
        store: Persisted credentials and session state.
        portal: Probe / login / logout client.
        channel: Receives a :class:`~portalbot.core.models.StatusUpdate` for
            every status change.
        scheduler: Timer facility.  ``None`` disables periodic ticks (the
            caller drives :meth:`run_cycle` itself).
        alarm_name: Name of the repeating timer.
        period_s: Seconds between ticks.
    """

    def __init__(
        self,
        store: StateStore,
        portal: PortalClient,
        channel: StatusChannel,
        scheduler: Scheduler | None = None,
        *,
        alarm_name: str = ALARM_NAME,
        period_s: float = DEFAULT_PERIOD_S,
    ) -> None:
        self._store = store
        self._portal = portal
        self._channel = channel
        self._scheduler = scheduler
        self._alarm_name = alarm_name
        self._period_s = period_s
        self._state = CycleState.STOPPED
        self._cycle_lock = asyncio.Lock()
        self._generation = 0

    @property
    def state(self) -> CycleState:
        """Where the orchestrator currently is in its state machine."""
        return self._state

    @property
    def alarm_name(self) -> str:
        return self._alarm_name

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the service and run one cycle immediately.

        Rotation begins at the first credential unless a known-good index is
        already stored.
        """
        session = await self._store.get_session_state()
        patch: dict[str, object] = {"running": True}
        if session.last_good_index == -1:
            patch["last_good_index"] = 0

        logger.info("Login service starting.", extra={"event": events.SERVICE_START})
        self._generation += 1
        await self._set_status(STATUS_STARTING, **patch)
        self._state = CycleState.PROBING
        self._schedule()
        await self._run_exclusive()

    async def stop(self, reason: str = STATUS_STOPPED_BY_USER) -> None:
        """Stop the service and publish *reason* as the final status.

        Safe to call when already stopped: the status is simply republished.
        """
        self._generation += 1
        self._unschedule()
        await self._set_status(reason, running=False, last_good_index=-1)
        self._state = CycleState.STOPPED
        logger.info("Login service stopped: %s", reason, extra={"event": events.SERVICE_STOP})

    async def disconnect(self) -> None:
        """Log the active credential out (best effort), then stop."""
        try:
            await self._logout_active()
        except Exception:  # noqa: BLE001
            logger.warning("Logout failed — stopping anyway.", exc_info=True)
        await self.stop(STATUS_DISCONNECTED)

    async def resume(self) -> bool:
        """Pick up where a previous process left off.

        Returns:
            ``True`` if the persisted state was running and the timer has
            been recreated; ``False`` if there was nothing to resume.
        """
        session = await self._store.get_session_state()
        if not session.running:
            logger.debug("Nothing to resume — service was stopped.")
            return False
        logger.info(
            "Resuming login service (last status: %s).",
            session.status,
            extra={"event": events.SERVICE_RESUME},
        )
        self._schedule()
        await self._run_exclusive()
        return True

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> None:
        """Run one probe-then-rotate cycle (the scheduler tick callback).

        Skipped when another cycle is still in flight.
        """
        if self._cycle_lock.locked():
            logger.info(
                "Previous cycle still in flight — skipping this tick.",
                extra={"event": events.CYCLE_OVERLAP},
            )
            return

        await self._run_exclusive()

    async def _run_exclusive(self) -> None:
        async with self._cycle_lock:
            token = CYCLE_ID_CTX.set(uuid.uuid4().hex[:8])
            try:
                await self._run_cycle(self._generation)
            finally:
                CYCLE_ID_CTX.reset(token)

    async def _run_cycle(self, generation: int) -> None:
        session = await self._store.get_session_state()
        if not session.running:
            logger.debug("Tick while stopped — nothing to do.", extra={"event": events.CYCLE_SKIPPED})
            self._state = CycleState.STOPPED
            # Stopped from elsewhere (e.g. another process): drop our timer too.
            self._unschedule()
            return

        logger.debug("Cycle started.", extra={"event": events.CYCLE_START})
        self._state = CycleState.PROBING

        if await self._portal.probe():
            session = await self._running_state(generation)
            if session is None:
                return
            self._state = CycleState.CONNECTED
            if not session.connected:
                await self._set_status(STATUS_CONNECTED, require_running=True)
            logger.debug("Network reachable.", extra={"event": events.PROBE_REACHABLE})
            return

        credentials = await self._store.get_credentials()
        if not credentials:
            logger.warning(
                "Network unreachable and no credentials stored — stopping.",
                extra={"event": events.NO_CREDENTIALS},
            )
            await self.stop(STATUS_NO_CREDENTIALS)
            return

        total = len(credentials)
        offset = session.rotation_offset(total)
        self._state = CycleState.ROTATING
        logger.info("Network unreachable — rotating %d credential(s) from index %d.", total, offset)

        for step in range(total):
            index = (offset + step) % total
            credential = credentials[index]

            if await self._running_state(generation) is None:
                return

            if not await self._set_status(
                testing_status(index, total, credential.username), require_running=True
            ):
                return
            logger.info(
                "Trying credential %d/%d (%s).",
                index + 1,
                total,
                credential.username,
                extra={"event": events.LOGIN_ATTEMPT},
            )
            success = await self._portal.login(credential)

            if await self._running_state(generation) is None:
                return

            if success:
                if not await self._set_status(
                    connected_status(index, credential.username),
                    require_running=True,
                    last_good_index=index,
                ):
                    return
                self._state = CycleState.CONNECTED
                logger.info(
                    "Logged in as %s.",
                    credential.username,
                    extra={"event": events.LOGIN_SUCCESS},
                )
                return

            logger.info(
                "Login rejected for %s.",
                credential.username,
                extra={"event": events.LOGIN_FAILED},
            )

        if not await self._set_status(
            exhausted_status(total), require_running=True, last_good_index=0
        ):
            return
        self._state = CycleState.EXHAUSTED
        logger.warning(
            "All %d credentials failed; retrying on the next tick.",
            total,
            extra={"event": events.ROTATION_EXHAUSTED},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _running_state(self, generation: int) -> SessionState | None:
        """Re-read the session.

        ``None`` (and an abort is logged) if the service was stopped, or
        stopped and started again, since the cycle of *generation* began.
        """
        session = await self._store.get_session_state()
        if session.running and generation == self._generation:
            return session
        logger.info("Stop observed mid-cycle — aborting.", extra={"event": events.CYCLE_ABORT})
        if not session.running:
            self._state = CycleState.STOPPED
        return None

    async def _set_status(
        self, status: str, *, require_running: bool = False, **patch: object
    ) -> bool:
        """Persist *status* together with *patch* and broadcast it.

        Returns ``False`` (nothing written or published) when
        *require_running* is set and the service has been stopped.
        """
        session = await self._store.set_session_state(
            status=status, require_running=require_running, **patch
        )
        if session is None:
            logger.info("Stop observed mid-cycle — aborting.", extra={"event": events.CYCLE_ABORT})
            self._state = CycleState.STOPPED
            return False
        self._channel.publish(StatusUpdate(status=status, running=session.running))
        return True

    async def _logout_active(self) -> None:
        credentials = await self._store.get_credentials()
        session = await self._store.get_session_state()
        index = session.last_good_index
        if not credentials or not 0 <= index < len(credentials):
            logger.info("No active user to log out.", extra={"event": events.LOGOUT})
            return
        username = credentials[index].username
        ok = await self._portal.logout(username)
        logger.info(
            "Logout of %s %s.",
            username,
            "sent" if ok else "failed",
            extra={"event": events.LOGOUT},
        )

    def _schedule(self) -> None:
        if self._scheduler is not None:
            self._scheduler.create(self._alarm_name, self._period_s, self.run_cycle)

    def _unschedule(self) -> None:
        if self._scheduler is not None:
            self._scheduler.clear(self._alarm_name)
