"""One-shot download speed test.

Downloads a fixed-size reference object, times it, and renders the result as
the short string shown to the user (``"41.50 Mbps"``, ``"Test timed out."``).
Throughput is computed from the *nominal* size of the reference object, not
from the bytes actually received.

The timeout is one deadline for the whole transfer, not a per-read limit, so
a link that trickles the object in slowly still times out.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Final

import httpx

from portalbot.core import events
from portalbot.core.settings import Settings

__all__ = [
    "MIN_MEASURABLE_S",
    "RESULT_FAILED",
    "RESULT_TIMED_OUT",
    "RESULT_TOO_FAST",
    "format_speed",
    "measure_speed",
]

logger = logging.getLogger(__name__)

#: Downloads faster than this are reported as unmeasurable.
MIN_MEASURABLE_S: Final[float] = 0.1

RESULT_TOO_FAST: Final[str] = "Test too fast to measure."
RESULT_TIMED_OUT: Final[str] = "Test timed out."
RESULT_FAILED: Final[str] = "Speed test failed."

_BITS_PER_MEGABIT: Final[int] = 1024 * 1024


def format_speed(size_bytes: int, seconds: float) -> str:
    """Render the throughput of *size_bytes* in *seconds* as ``"N.NN Mbps"``.

    Returns :data:`RESULT_TOO_FAST` below :data:`MIN_MEASURABLE_S`.
    """
    if seconds < MIN_MEASURABLE_S:
        return RESULT_TOO_FAST
    mbps = size_bytes * 8 / seconds / _BITS_PER_MEGABIT
    return f"{mbps:.2f} Mbps"


async def measure_speed(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Callable[[], float] = time.perf_counter,
) -> str:
    """Download the reference object and return the formatted result.

    Never raises: a timeout yields :data:`RESULT_TIMED_OUT`, any other
    failure (including a non-2xx answer) :data:`RESULT_FAILED`.

    Args:
        settings: Supplies the URL, nominal size and timeout.
        transport: Optional httpx transport (tests).
        clock: Monotonic clock in seconds.
    """
    timeout = httpx.Timeout(settings.speed_test_timeout_s)
    try:
        async with httpx.AsyncClient(transport=transport, timeout=timeout) as client:
            started = clock()
            async with asyncio.timeout(settings.speed_test_timeout_s):
                async with client.stream(
                    "GET",
                    settings.speed_test_url,
                    headers={"Cache-Control": "no-store"},
                ) as response:
                    response.raise_for_status()
                    async for _chunk in response.aiter_bytes():
                        pass
            elapsed = clock() - started
    except (httpx.TimeoutException, TimeoutError):
        logger.warning(
            "Speed test timed out after %.0f s",
            settings.speed_test_timeout_s,
            extra={"event": events.SPEED_TEST},
        )
        return RESULT_TIMED_OUT
    except httpx.HTTPError as exc:
        logger.warning("Speed test failed: %s", exc, extra={"event": events.SPEED_TEST})
        return RESULT_FAILED

    result = format_speed(settings.speed_test_size_bytes, elapsed)
    logger.info(
        "Speed test finished in %.3f s: %s",
        elapsed,
        result,
        extra={"event": events.SPEED_TEST},
    )
    return result
