"""
Clock abstraction.

The rate limiter and the simulated sink read time through a Clock so tests can
swap in a manual one and both sides agree on what "now" means.
"""

import asyncio
import time
from typing import List


class Clock:
    """
    Monotonic time source backed by the running event loop's clock.

    In production: time.monotonic() and asyncio.sleep().
    In tests: ManualClock, which advances only when someone sleeps.
    """

    def now(self) -> float:
        """Current monotonic time in seconds."""
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


class ManualClock(Clock):
    """
    Clock that only moves when sleep() or advance() is called.

    sleep() advances time by the requested amount and yields once to the
    event loop, so code under test never waits on wall time.
    """

    def __init__(self, start: float = 0.0) -> None:
        self.current = start
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += max(0.0, seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


SYSTEM_CLOCK = Clock()
