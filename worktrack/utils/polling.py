"""Bounded polling with an injectable clock."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Clock(Protocol):
    """Time source used by poll loops."""

    def monotonic(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class LoopClock:
    """Clock backed by the running event loop."""

    def monotonic(self) -> float:
        return asyncio.get_running_loop().time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


async def poll_until(
    check: Callable[[], Awaitable[T | None]],
    timeout_sec: float,
    interval_sec: float,
    clock: Clock | None = None,
) -> T | None:
    """Call `check` until it returns a value or the deadline passes.

    `check` always runs at least once. Sleeps never extend past the deadline.

    Args:
        check: Coroutine function returning a result, or None to keep polling
        timeout_sec: Upper bound on total waiting
        interval_sec: Delay between attempts
        clock: Time source (defaults to the event loop clock)

    Returns:
        The first non-None result, or None on timeout
    """
    clock = clock or LoopClock()
    deadline = clock.monotonic() + max(0.0, timeout_sec)

    while True:
        result = await check()
        if result is not None:
            return result

        remaining = deadline - clock.monotonic()
        if remaining <= 0:
            return None
        await clock.sleep(min(interval_sec, remaining))
