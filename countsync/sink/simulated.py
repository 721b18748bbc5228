"""
In-process simulation of the unreliable remote counter store.

Behaviour per attempt:
- Too soon after the last accepted request -> RATE_LIMITED, no effect
- Otherwise wait a random latency, then roll a chance in [0, 1500):
  below 300 -> REQUEST_NOT_APPLIED (no effect)
  above 1000 -> counter updated, APPLIED_BUT_UNACKNOWLEDGED
  anything else -> counter updated, SUCCESS
"""

import logging
import random
from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional

from ..core.clock import Clock, SYSTEM_CLOCK
from ..core.outcomes import Outcome
from .base import RemoteSink

logger = logging.getLogger(__name__)

EVENT_SAVE_DELAY_SECONDS = 0.3
MAX_LATENCY_SECONDS = 1.0


@dataclass(frozen=True)
class SinkCall:
    """One attempt as seen by the sink."""
    at: float
    category: Hashable
    amount: int
    outcome: Outcome


@dataclass(frozen=True)
class FailureProfile:
    """
    Probability of each failure kind for accepted requests.

    Defaults match the reference store: 300/1500 request failures and
    499/1500 lost responses.
    """
    request_fail: float = 300 / 1500
    response_fail: float = 499 / 1500

    def __post_init__(self) -> None:
        if self.request_fail < 0 or self.response_fail < 0:
            raise ValueError("failure probabilities must be >= 0")
        if self.request_fail + self.response_fail > 1:
            raise ValueError("failure probabilities must sum to <= 1")


class SimulatedRemoteSink(RemoteSink):
    """
    Delayed counter repository with one global cooldown window.

    The last-request timestamp starts at construction time, so a call made
    right after creation is rejected unless the caller waits an interval first.
    """

    def __init__(
        self,
        min_interval: float = EVENT_SAVE_DELAY_SECONDS,
        max_latency: float = MAX_LATENCY_SECONDS,
        failures: Optional[FailureProfile] = None,
        rate_limit_probability: float = 0.0,
        clock: Clock = SYSTEM_CLOCK,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize simulated sink.

        Args:
            min_interval: Global cooldown between accepted requests (seconds)
            max_latency: Upper bound of the random per-call latency (seconds)
            failures: Failure probabilities for accepted requests
            rate_limit_probability: Extra chance of a spurious RATE_LIMITED,
                standing in for a second client sharing the window
            clock: Time source shared with the caller's rate limiter
            rng: Random source (seed it for reproducible runs)
        """
        self.min_interval = min_interval
        self.max_latency = max_latency
        self.failures = failures or FailureProfile()
        self.rate_limit_probability = rate_limit_probability
        self.clock = clock
        self.rng = rng or random.Random()
        self.calls: List[SinkCall] = []
        self._stats: Dict[Hashable, int] = {}
        self._last_request = clock.now()

    def get(self, category: Hashable) -> int:
        return self._stats.get(category, 0)

    async def apply(self, category: Hashable, amount: int) -> Outcome:
        now = self.clock.now()

        if now < self._last_request + self.min_interval:
            return self._finish(now, category, amount, Outcome.RATE_LIMITED)
        if self.rate_limit_probability and self.rng.random() < self.rate_limit_probability:
            return self._finish(now, category, amount, Outcome.RATE_LIMITED)

        self._last_request = now
        await self.clock.sleep(self.rng.random() * self.max_latency)

        chance = self.rng.random()
        if chance < self.failures.request_fail:
            return self._finish(now, category, amount, Outcome.REQUEST_NOT_APPLIED)

        self._stats[category] = self._stats.get(category, 0) + amount

        if chance >= 1 - self.failures.response_fail:
            return self._finish(now, category, amount, Outcome.APPLIED_BUT_UNACKNOWLEDGED)
        return self._finish(now, category, amount, Outcome.SUCCESS)

    def _finish(self, at: float, category: Hashable, amount: int, outcome: Outcome) -> Outcome:
        self.calls.append(SinkCall(at=at, category=category, amount=amount, outcome=outcome))
        logger.debug(f"Sink {outcome} for {category} (+{amount})")
        return outcome
