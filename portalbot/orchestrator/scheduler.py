"""Named repeating timers on the asyncio event loop.

:class:`Scheduler` is the service's periodic-timer facility.  Each timer has a
unique name, a fixed period, and an async callback:

* :meth:`Scheduler.create` replaces any timer already registered under the
  same name.  The first tick fires one full period after creation.
* Every tick spawns the callback as its **own task** and goes straight back
  to sleeping.  The previous tick's callback is not awaited, so a slow
  callback can still be running when the next tick fires.  Callbacks that
  must not overlap guard themselves (see
  :meth:`~portalbot.orchestrator.login_cycle.LoginCycle.run_cycle`).
* An exception escaping a callback is logged and never kills the timer.
* :meth:`Scheduler.clear` stops future ticks but leaves a callback that is
  already running alone; it finishes on its own.

Typical usage::

    scheduler = Scheduler()
    scheduler.create("portalbot-login-cycle", 60.0, cycle.run_cycle)
    ...
    scheduler.clear("portalbot-login-cycle")
    await scheduler.aclose()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from portalbot.core.exceptions import OrchestratorError

__all__ = ["Scheduler", "TickCallback"]

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None]]


class Scheduler:
    """Registry of named repeating timers.  Not thread-safe (asyncio only)."""

    def __init__(self) -> None:
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._ticks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create(self, name: str, period_s: float, callback: TickCallback) -> None:
        """Register (or re-register) the timer *name*.

        Raises:
            OrchestratorError: If *period_s* is not positive.
        """
        if period_s <= 0:
            raise OrchestratorError(f"Timer period must be > 0, got {period_s!r}.")
        self.clear(name)
        self._timers[name] = asyncio.create_task(
            self._run_timer(name, period_s, callback),
            name=f"timer:{name}",
        )
        logger.debug("Timer %s created (period %.1f s).", name, period_s)

    def clear(self, name: str) -> bool:
        """Cancel future ticks of *name*.

        Returns:
            ``True`` if a timer was registered under *name*.
        """
        task = self._timers.pop(name, None)
        if task is None:
            return False
        task.cancel()
        logger.debug("Timer %s cleared.", name)
        return True

    def is_active(self, name: str) -> bool:
        return name in self._timers

    async def wait_closed(self, name: str) -> None:
        """Block until the timer *name* is cleared (returns at once if absent)."""
        while True:
            task = self._timers.get(name)
            if task is None:
                return
            await asyncio.wait({task})
            if self._timers.get(name) is task:
                self._timers.pop(name)

    async def aclose(self) -> None:
        """Cancel every timer and every tick still running, then wait for them."""
        for name in list(self._timers):
            self.clear(name)
        pending = list(self._ticks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_timer(self, name: str, period_s: float, callback: TickCallback) -> None:
        while True:
            await asyncio.sleep(period_s)
            logger.debug("Timer %s tick.", name)
            tick = asyncio.create_task(self._invoke(name, callback), name=f"tick:{name}")
            self._ticks.add(tick)
            tick.add_done_callback(self._ticks.discard)

    @staticmethod
    async def _invoke(name: str, callback: TickCallback) -> None:
        try:
            await callback()
        except Exception:
            logger.exception("Unhandled exception in %s tick — timer keeps running.", name)
