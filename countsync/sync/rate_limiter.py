"""
Global rate limiter for sink calls.

One "next allowed" instant shared by every category: the sink enforces a single
cooldown window no matter which category is called, so there is deliberately
no per-category limiter.
"""

import logging

from ..core.clock import Clock, SYSTEM_CLOCK

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Spaces successive acquisitions at least min_interval (+ margin) apart.

    Waiting happens here, before a call, so attempts are not wasted on
    rejections. The reference point is the next permitted instant, never a
    stale "last call" timestamp, which is what makes the first call after an
    idle period go through.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Clock = SYSTEM_CLOCK,
        margin: float = 0.0,
        start_open: bool = False,
    ) -> None:
        """
        Initialize limiter.

        Args:
            min_interval: Minimum spacing between calls (seconds)
            clock: Time source (must be the one the sink measures with)
            margin: Extra spacing to absorb scheduling jitter
            start_open: If False, the first slot opens one interval after
                construction, for sinks that treat their own creation as the
                last request
        """
        self.min_interval = min_interval
        self.margin = margin
        self.clock = clock
        now = clock.now()
        self._next_allowed = now if start_open else now + min_interval + margin

    @property
    def next_allowed(self) -> float:
        return self._next_allowed

    @property
    def spacing(self) -> float:
        return self.min_interval + self.margin

    async def acquire(self) -> float:
        """
        Wait for the shared slot, then claim it.

        No suspension happens between claiming and returning, so a caller that
        invokes the sink right after acquire() hits it at the claimed instant.

        Returns:
            The instant the slot was claimed
        """
        while True:
            now = self.clock.now()
            wait = self._next_allowed - now
            if wait <= 0:
                self._next_allowed = now + self.spacing
                return now
            await self.clock.sleep(wait)

    def defer(self) -> None:
        """Push the next slot out by a full interval from now (sink still said too soon)."""
        pushed = self.clock.now() + self.spacing
        if pushed > self._next_allowed:
            logger.debug(f"Rate limiter deferred by {pushed - self._next_allowed:.3f}s")
            self._next_allowed = pushed
