"""Best-effort broadcast of status and speed events.

:class:`StatusChannel` fans each published event out to every subscriber.
Delivery is fire-and-forget and at-most-once:

* :meth:`StatusChannel.publish` never blocks on a subscriber and never raises.
* Plain callables are invoked inline; coroutine functions are scheduled as
  tasks on the running loop and not awaited.
* A subscriber that raises is logged at ``DEBUG`` and skipped.

Observers therefore read the current state from the store when they
(re)attach, and treat pushed events as hints.

Typical usage::

    channel = StatusChannel()
    unsubscribe = channel.subscribe(lambda event: print(event))
    channel.publish(StatusUpdate(status="Connected", running=True))
    unsubscribe()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Union

from portalbot.core.models import SpeedUpdate, StatusUpdate

__all__ = ["Event", "Subscriber", "StatusChannel"]

logger = logging.getLogger(__name__)

Event = Union[StatusUpdate, SpeedUpdate]
Subscriber = Callable[[Event], Union[None, Awaitable[None]]]


class StatusChannel:
    """In-process pub/sub for :data:`Event` payloads."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* and return a function that unregisters it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: Event) -> None:
        """Deliver *event* to every subscriber, ignoring delivery failures."""
        logger.debug("Publishing %s", event)
        for callback in list(self._subscribers):
            try:
                if inspect.iscoroutinefunction(callback):
                    self._spawn(callback(event))
                else:
                    callback(event)
            except Exception:  # noqa: BLE001
                logger.debug("Subscriber %r failed on %s", callback, event.type, exc_info=True)

    async def drain(self) -> None:
        """Wait for coroutine deliveries still in flight (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Async subscriber failed", exc_info=task.exception())
