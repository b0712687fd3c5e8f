"""Unit tests for the status channel and the named-timer scheduler.

Tests cover:
- ``StatusChannel`` fan-out, unsubscribe, async subscribers and failure
  isolation.
- ``Scheduler`` tick delivery, replacement, clearing, exception isolation,
  ``wait_closed`` and shutdown.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest

from portalbot.core.exceptions import OrchestratorError
from portalbot.core.models import SpeedUpdate, StatusUpdate
from portalbot.notifiers.channel import Event, StatusChannel
from portalbot.orchestrator.scheduler import Scheduler

_CONNECTED = StatusUpdate(status="Connected", running=True)


# ---------------------------------------------------------------------------
# StatusChannel
# ---------------------------------------------------------------------------


class TestStatusChannel:
    def test_publish_without_subscribers(self) -> None:
        StatusChannel().publish(_CONNECTED)

    def test_fan_out_in_order(self) -> None:
        channel = StatusChannel()
        first: list[Event] = []
        second: list[Event] = []
        channel.subscribe(first.append)
        channel.subscribe(second.append)

        speed = SpeedUpdate(speed="12.00 Mbps")
        channel.publish(_CONNECTED)
        channel.publish(speed)

        assert first == [_CONNECTED, speed]
        assert second == [_CONNECTED, speed]

    def test_unsubscribe(self) -> None:
        channel = StatusChannel()
        received: list[Event] = []
        unsubscribe = channel.subscribe(received.append)
        assert channel.subscriber_count == 1

        unsubscribe()
        unsubscribe()
        channel.publish(_CONNECTED)

        assert received == []
        assert channel.subscriber_count == 0

    def test_failing_subscriber_does_not_block_others(self) -> None:
        channel = StatusChannel()
        received: list[Event] = []

        def broken(event: Event) -> None:
            raise RuntimeError("popup closed")

        channel.subscribe(broken)
        channel.subscribe(received.append)
        channel.publish(_CONNECTED)

        assert received == [_CONNECTED]

    async def test_async_subscriber_is_not_awaited_by_publish(self) -> None:
        channel = StatusChannel()
        gate = asyncio.Event()
        received: list[Event] = []

        async def slow(event: Event) -> None:
            await gate.wait()
            received.append(event)

        channel.subscribe(slow)
        channel.publish(_CONNECTED)
        assert received == []

        gate.set()
        await channel.drain()
        assert received == [_CONNECTED]

    async def test_failing_async_subscriber_is_swallowed(self) -> None:
        channel = StatusChannel()

        async def broken(event: Event) -> None:
            raise RuntimeError("no receiver")

        channel.subscribe(broken)
        channel.publish(_CONNECTED)
        await channel.drain()


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


@pytest.fixture()
async def scheduler() -> AsyncIterator[Scheduler]:
    s = Scheduler()
    yield s
    await s.aclose()


class TestScheduler:
    async def test_ticks_repeat(self, scheduler: Scheduler) -> None:
        ticks = 0

        async def tick() -> None:
            nonlocal ticks
            ticks += 1

        scheduler.create("t", 0.01, tick)
        await asyncio.sleep(0.08)
        assert ticks >= 2

    async def test_first_tick_waits_one_period(self, scheduler: Scheduler) -> None:
        ticks = 0

        async def tick() -> None:
            nonlocal ticks
            ticks += 1

        scheduler.create("t", 10.0, tick)
        await asyncio.sleep(0.02)
        assert ticks == 0
        assert scheduler.is_active("t")

    @pytest.mark.parametrize("period", [0, -1.0])
    async def test_non_positive_period_rejected(self, scheduler: Scheduler, period: float) -> None:
        async def tick() -> None:
            return None

        with pytest.raises(OrchestratorError):
            scheduler.create("t", period, tick)
        assert not scheduler.is_active("t")

    async def test_clear_stops_ticks(self, scheduler: Scheduler) -> None:
        ticks = 0

        async def tick() -> None:
            nonlocal ticks
            ticks += 1

        scheduler.create("t", 0.01, tick)
        await asyncio.sleep(0.05)
        assert scheduler.clear("t") is True
        seen = ticks
        await asyncio.sleep(0.05)

        assert ticks == seen
        assert not scheduler.is_active("t")
        assert scheduler.clear("t") is False

    async def test_create_replaces_existing_timer(self, scheduler: Scheduler) -> None:
        calls: list[str] = []

        async def old() -> None:
            calls.append("old")

        async def new() -> None:
            calls.append("new")

        scheduler.create("t", 0.01, old)
        scheduler.create("t", 0.01, new)
        await asyncio.sleep(0.05)

        assert calls
        assert set(calls) == {"new"}

    async def test_exception_does_not_kill_timer(self, scheduler: Scheduler) -> None:
        ticks = 0

        async def flaky() -> None:
            nonlocal ticks
            ticks += 1
            raise RuntimeError("boom")

        scheduler.create("t", 0.01, flaky)
        await asyncio.sleep(0.08)
        assert ticks >= 2
        assert scheduler.is_active("t")

    async def test_slow_callback_does_not_delay_next_tick(self, scheduler: Scheduler) -> None:
        started = 0
        gate = asyncio.Event()

        async def slow() -> None:
            nonlocal started
            started += 1
            await gate.wait()

        scheduler.create("t", 0.01, slow)
        await asyncio.sleep(0.08)
        gate.set()
        assert started >= 2

    async def test_wait_closed_returns_when_cleared(self, scheduler: Scheduler) -> None:
        async def tick() -> None:
            return None

        scheduler.create("t", 10.0, tick)
        waiter = asyncio.create_task(scheduler.wait_closed("t"))
        await asyncio.sleep(0.01)
        assert not waiter.done()

        scheduler.clear("t")
        await asyncio.wait_for(waiter, timeout=1.0)

    async def test_wait_closed_survives_replacement(self, scheduler: Scheduler) -> None:
        async def tick() -> None:
            return None

        scheduler.create("t", 10.0, tick)
        waiter = asyncio.create_task(scheduler.wait_closed("t"))
        await asyncio.sleep(0.01)

        scheduler.create("t", 10.0, tick)
        await asyncio.sleep(0.01)
        assert not waiter.done()

        scheduler.clear("t")
        await asyncio.wait_for(waiter, timeout=1.0)

    async def test_wait_closed_absent_timer(self, scheduler: Scheduler) -> None:
        await asyncio.wait_for(scheduler.wait_closed("missing"), timeout=1.0)

    async def test_aclose_cancels_running_ticks(self) -> None:
        scheduler = Scheduler()
        cancelled = asyncio.Event()

        async def forever() -> None:
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        scheduler.create("t", 0.01, forever)
        await asyncio.sleep(0.03)
        await scheduler.aclose()

        assert cancelled.is_set()
        assert not scheduler.is_active("t")
