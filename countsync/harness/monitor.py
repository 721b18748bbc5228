"""
Convergence monitor: compares fired, handled and saved counts over time.

For each category and tick:
- fired: events the emitter actually fired (counted by its own subscription)
- handled: the accountant's local count
- saved: the sink's remote count

A tick passes when handled == fired and saved / handled >= pass_rate. A
category passes overall when the share of passing ticks is >= pass_rate.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Hashable, Iterable, List, Optional

from ..core.accountant import Accountant
from ..core.emitter import EventEmitter
from ..sink.base import RemoteSink

logger = logging.getLogger(__name__)

TEST_PASS_RATE = 0.85


@dataclass(frozen=True)
class CheckResult:
    category: Hashable
    fired: int
    handled: int
    saved: int
    passed: bool
    reason: str = ""


@dataclass
class MonitorReport:
    """Per-category summary of a monitoring run."""
    category: Hashable
    checks: List[CheckResult] = field(default_factory=list)
    pass_rate: float = TEST_PASS_RATE

    @property
    def fraction(self) -> float:
        if not self.checks:
            return 0.0
        return sum(1 for c in self.checks if c.passed) / len(self.checks)

    @property
    def passed(self) -> bool:
        return self.fraction >= self.pass_rate


class ConvergenceMonitor:
    """
    Polls the engine from outside and reports whether counts converge.

    Subscribes to the emitter on construction, so create it before events fire.
    """

    def __init__(
        self,
        emitter: EventEmitter,
        categories: Iterable[Hashable],
        accountant: Accountant,
        sink: RemoteSink,
        pass_rate: float = TEST_PASS_RATE,
    ) -> None:
        self.categories = list(categories)
        self.accountant = accountant
        self.sink = sink
        self.pass_rate = pass_rate
        self._fired: Dict[Hashable, int] = {c: 0 for c in self.categories}
        for category in self.categories:
            emitter.subscribe(category, self._counter(category))

    def _counter(self, category: Hashable) -> Callable[[], None]:
        def count() -> None:
            self._fired[category] += 1
        return count

    def fired(self, category: Hashable) -> int:
        return self._fired.get(category, 0)

    def check(self, category: Hashable) -> CheckResult:
        fired = self.fired(category)
        handled = self.accountant.local_count(category)
        saved = self.sink.get(category)

        if fired != handled:
            return CheckResult(
                category, fired, handled, saved, False, "amount of handled events differs"
            )
        if handled and saved / handled < self.pass_rate:
            return CheckResult(
                category,
                fired,
                handled,
                saved,
                False,
                f"saved events differ by more than {round((1 - self.pass_rate) * 100)}%",
            )
        return CheckResult(category, fired, handled, saved, True)

    async def run(
        self,
        ticks: int = 10,
        interval: float = 1.0,
        on_tick: Optional[Callable[[int, List[CheckResult]], None]] = None,
    ) -> Dict[Hashable, MonitorReport]:
        """
        Check every category once per interval, ticks times.

        Args:
            ticks: Number of checks per category
            interval: Seconds between checks
            on_tick: Called with (tick index, results) after each tick

        Returns:
            MonitorReport per category
        """
        reports = {c: MonitorReport(c, pass_rate=self.pass_rate) for c in self.categories}
        for tick in range(ticks):
            await asyncio.sleep(interval)
            results = [self.check(c) for c in self.categories]
            for result in results:
                reports[result.category].checks.append(result)
                if not result.passed:
                    logger.debug(f"Check for {result.category} failed: {result.reason}")
            if on_tick is not None:
                on_tick(tick, results)
        return reports
