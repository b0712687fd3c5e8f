"""Assemble the service and route commands to it.

:func:`open_service` wires every runtime component together and tears them
down again:

1. Opens the SQLite state store (:func:`~portalbot.storage.database.open_db`).
2. Creates the :class:`~portalbot.portal.client.PortalClient`,
   :class:`~portalbot.notifiers.channel.StatusChannel` and
   :class:`~portalbot.orchestrator.scheduler.Scheduler`.
3. Builds the :class:`~portalbot.orchestrator.login_cycle.LoginCycle` on top.

The resulting :class:`Service` is what the CLI talks to.  Commands are
independent entry points into the same :class:`LoginCycle`; the store's state
lock serialises their session writes and the cycle's running-flag re-reads
give stop and disconnect priority over an in-flight rotation.

Typical usage::

    async with open_service(Settings()) as service:
        service.channel.subscribe(print)
        await service.dispatch("start")
        await run_service(service)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack
from dataclasses import dataclass
from pathlib import Path

import httpx

from portalbot.core.exceptions import OrchestratorError
from portalbot.core.models import Command, SpeedUpdate
from portalbot.core.settings import Settings
from portalbot.notifiers.channel import StatusChannel
from portalbot.orchestrator.login_cycle import STATUS_STOPPED_BY_USER, LoginCycle
from portalbot.orchestrator.scheduler import Scheduler
from portalbot.portal.client import PortalClient
from portalbot.portal.speedtest import measure_speed
from portalbot.storage.database import MEMORY_DB, open_db
from portalbot.storage.repository import StateStore

__all__ = ["Service", "open_service", "run_service"]

logger = logging.getLogger(__name__)


@dataclass
class Service:
    """Live handles to every component of a running service."""

    settings: Settings
    store: StateStore
    portal: PortalClient
    channel: StatusChannel
    scheduler: Scheduler
    cycle: LoginCycle
    transport: httpx.AsyncBaseTransport | None = None

    async def dispatch(self, command: Command | str) -> None:
        """Execute one command from the presentation layer.

        Raises:
            OrchestratorError: If *command* is not a known command name.
        """
        try:
            command = Command(command)
        except ValueError as exc:
            raise OrchestratorError(f"Unknown command {command!r}") from exc

        logger.debug("Dispatching command %s", command)
        if command is Command.START:
            await self.cycle.start()
        elif command is Command.STOP:
            await self.cycle.stop(STATUS_STOPPED_BY_USER)
        elif command is Command.DISCONNECT:
            await self.cycle.disconnect()
        elif command is Command.CHECK_SPEED:
            speed = await measure_speed(self.settings, transport=self.transport)
            self.channel.publish(SpeedUpdate(speed=speed))


@contextlib.asynccontextmanager
async def open_service(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[Service]:
    """Build a :class:`Service` and release its resources on exit.

    Args:
        settings: Loaded application settings.
        transport: Optional httpx transport shared by the portal client and
            the speed test (tests).
    """
    db_path: Path | str = (
        MEMORY_DB if settings.database_path == MEMORY_DB else settings.database_path_resolved
    )
    conn = await open_db(db_path)
    try:
        store = StateStore(conn)
        async with AsyncExitStack() as stack:
            portal = await stack.enter_async_context(PortalClient(settings, transport=transport))
            channel = StatusChannel()
            stack.push_async_callback(channel.drain)
            scheduler = Scheduler()
            stack.push_async_callback(scheduler.aclose)
            cycle = LoginCycle(
                store,
                portal,
                channel,
                scheduler,
                period_s=settings.poll_interval_s,
            )
            yield Service(
                settings=settings,
                store=store,
                portal=portal,
                channel=channel,
                scheduler=scheduler,
                cycle=cycle,
                transport=transport,
            )
    finally:
        await conn.close()
        logger.debug("Database connection closed.")


async def run_service(service: Service, *, resume: bool = False) -> None:
    """Run the service in the foreground until it stops.

    Starts the service (or, with *resume*, continues a previously running one)
    and then waits for the cycle timer to go away, which happens when a
    ``stop``/``disconnect`` is issued from anywhere, or when the credential
    list turns out empty.

    ``SIGTERM`` ends the process without touching the persisted state, so a
    later ``run --resume`` picks up where this one left off.
    """
    if resume:
        if not await service.cycle.resume():
            logger.info("Service was not running — nothing to resume.")
            return
    else:
        await service.dispatch(Command.START)

    loop = asyncio.get_running_loop()
    terminated = asyncio.Event()
    signal_installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGTERM, terminated.set)
        signal_installed = True

    timer_closed = asyncio.create_task(service.scheduler.wait_closed(service.cycle.alarm_name))
    sigterm = asyncio.create_task(terminated.wait())
    try:
        await asyncio.wait({timer_closed, sigterm}, return_when=asyncio.FIRST_COMPLETED)
        if terminated.is_set():
            logger.info("Received SIGTERM — exiting; state kept for --resume.")
        else:
            logger.info("Login service is no longer running — exiting.")
    finally:
        timer_closed.cancel()
        sigterm.cancel()
        await asyncio.gather(timer_closed, sigterm, return_exceptions=True)
        if signal_installed:
            with contextlib.suppress(Exception):
                loop.remove_signal_handler(signal.SIGTERM)
