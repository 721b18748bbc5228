"""
Scripted sink used by the scheduler tests.
"""

from typing import Callable, Dict, Hashable, Iterable, List, Optional

from countsync.core.clock import Clock
from countsync.core.outcomes import Outcome
from countsync.sink.base import RemoteSink
from countsync.sink.simulated import SinkCall


class ScriptedSink(RemoteSink):
    """
    Returns outcomes from a script (then SUCCESS forever).

    Categories listed in failing always get REQUEST_NOT_APPLIED.

    Applies the amount to its own counter whenever the outcome says the write
    landed, records every call, and tracks how many calls per category are
    outstanding at once.
    """

    def __init__(
        self,
        clock: Clock,
        script: Iterable[Outcome] = (),
        on_call: Optional[Callable[[Hashable, int], None]] = None,
        latency: float = 0.0,
        failing: Iterable[Hashable] = (),
    ) -> None:
        self.clock = clock
        self.script: List[Outcome] = list(script)
        self.on_call = on_call
        self.latency = latency
        self.failing = set(failing)
        self.calls: List[SinkCall] = []
        self.max_in_flight = 0
        self._in_flight: Dict[Hashable, int] = {}
        self._stats: Dict[Hashable, int] = {}

    def get(self, category: Hashable) -> int:
        return self._stats.get(category, 0)

    def amounts(self, category: Hashable) -> List[int]:
        return [c.amount for c in self.calls if c.category == category]

    async def apply(self, category: Hashable, amount: int) -> Outcome:
        at = self.clock.now()
        self._in_flight[category] = self._in_flight.get(category, 0) + 1
        self.max_in_flight = max(self.max_in_flight, self._in_flight[category])
        try:
            await self.clock.sleep(self.latency)
            if self.on_call is not None:
                self.on_call(category, amount)
            if category in self.failing:
                outcome = Outcome.REQUEST_NOT_APPLIED
            else:
                outcome = self.script.pop(0) if self.script else Outcome.SUCCESS
            if outcome.remote_applied:
                self._stats[category] = self._stats.get(category, 0) + amount
            self.calls.append(SinkCall(at=at, category=category, amount=amount, outcome=outcome))
            return outcome
        finally:
            self._in_flight[category] -= 1
