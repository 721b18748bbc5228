"""
SyncScheduler: the dispatch loop that reconciles local counts with the sink.

Each category is either IDLE or IN_FLIGHT. One iteration of the loop:
1. Wait until some category is ready (pending delta > 0, IDLE, not
   dead-lettered, backoff expired); record() and backoff expiry wake it
2. Claim the shared rate-limited slot
3. Pick a ready category (round-robin or largest pending)
4. Freeze d = pending delta, call sink.apply(category, d)
5. Resolve the outcome: confirm d, or leave it pending for the next round

Events recorded while a call is in flight are not part of its snapshot; they
are picked up by the next call for that category.

Categories that fail max_attempts times in a row (when configured) move to the
dead-letter area and are retried by a separate, slower timer.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Hashable, List, Optional, Tuple

from ..core.accountant import Accountant
from ..core.clock import Clock, SYSTEM_CLOCK
from ..core.errors import SchedulerStateError
from ..core.outcomes import Outcome, SinkError
from ..observability.logging_config import get_logger
from ..observability.metrics import set_counts, set_dead_letter, track_call, track_call_duration
from ..sink.base import RemoteSink
from .backoff import Backoff
from .config import LARGEST_PENDING, SyncConfig
from .dead_letter import DeadLetterEntry, DeadLetterQueue
from .policy import Resolution, resolve
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class CategoryState(str, Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"


@dataclass
class _Track:
    """Mutable per-category scheduler state."""
    log: logging.LoggerAdapter
    state: CategoryState = CategoryState.IDLE
    failures: int = 0
    not_before: float = 0.0
    last_outcome: Optional[Outcome] = None
    calls: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class CategoryStats:
    """
    Point-in-time view of one category.

    Fields:
        category: Category identifier
        local: Events observed locally
        confirmed: Events believed applied remotely
        pending: local - confirmed
        state: IDLE or IN_FLIGHT
        failures: Consecutive failed calls
        dead_lettered: Whether it sits in the dead-letter area
        calls: Call count per outcome value
        last_outcome: Outcome of the latest call, if any
    """
    category: Hashable
    local: int
    confirmed: int
    pending: int
    state: CategoryState
    failures: int
    dead_lettered: bool
    calls: Dict[str, int]
    last_outcome: Optional[Outcome] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": str(self.category),
            "local": self.local,
            "confirmed": self.confirmed,
            "pending": self.pending,
            "state": self.state.value,
            "failures": self.failures,
            "dead_lettered": self.dead_lettered,
            "calls": dict(self.calls),
            "last_outcome": self.last_outcome.value if self.last_outcome else None,
        }


@dataclass(frozen=True)
class SyncSnapshot:
    """Observability hook: counts and dead-letter entries for every category."""
    categories: Tuple[CategoryStats, ...]
    dead_letter: Tuple[DeadLetterEntry, ...]

    def get(self, category: Hashable) -> Optional[CategoryStats]:
        for stats in self.categories:
            if stats.category == category:
                return stats
        return None

    @property
    def converged(self) -> bool:
        return all(s.pending == 0 and s.state is CategoryState.IDLE for s in self.categories)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "converged": self.converged,
            "categories": [s.to_dict() for s in self.categories],
            "dead_letter": [
                {
                    "category": str(e.category),
                    "failures": e.failures,
                    "entered_at": e.entered_at,
                    "retries": e.retries,
                }
                for e in self.dead_letter
            ],
        }


class SyncScheduler:
    """
    Single-flight, rate-limited reconciliation of an Accountant with a RemoteSink.

    Usage:
        scheduler = SyncScheduler(accountant, sink, config=SyncConfig())
        async with scheduler:
            ...  # accountant.record(...) from event handlers
            await scheduler.wait_converged(timeout=30)
    """

    def __init__(
        self,
        accountant: Accountant,
        sink: RemoteSink,
        config: Optional[SyncConfig] = None,
        limiter: Optional[RateLimiter] = None,
        clock: Clock = SYSTEM_CLOCK,
    ) -> None:
        """
        Initialize scheduler and subscribe to accountant.record().

        Args:
            accountant: Owner of local/confirmed counts
            sink: Remote store to reconcile with
            config: Tunables (defaults to SyncConfig())
            limiter: Shared rate limiter; built from config when omitted
            clock: Time source for backoff and dead-letter timers
        """
        self.accountant = accountant
        self.sink = sink
        self.config = config or SyncConfig()
        self.config.validate()
        self.clock = clock
        self.limiter = limiter or RateLimiter(
            self.config.min_interval,
            clock=clock,
            margin=self.config.rate_margin,
            start_open=self.config.start_open,
        )
        self.backoff = Backoff(
            base=self.config.backoff_base,
            ceiling=self.config.backoff_ceiling,
            threshold=self.config.backoff_threshold,
        )
        self.dead_letter = DeadLetterQueue()

        self._tracks: Dict[Hashable, _Track] = {}
        self._last_dispatched: Optional[Hashable] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._progress: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._dead_letter_task: Optional[asyncio.Task] = None

        accountant.add_listener(self.notify)

    # Lifecycle

    def start(self) -> None:
        """
        Start the dispatch loop (and the dead-letter timer if max_attempts is set).

        Must be called from a running event loop.

        Raises:
            SchedulerStateError: If already running
        """
        if self._task is not None:
            raise SchedulerStateError("Scheduler already started")
        self._ensure_events()
        self._task = asyncio.create_task(self.run(), name="countsync-dispatch")
        self._task.add_done_callback(self._loop_done)
        if self.config.max_attempts is not None:
            self._dead_letter_task = asyncio.create_task(
                self.run_dead_letter(), name="countsync-dead-letter"
            )
            self._dead_letter_task.add_done_callback(self._loop_done)

    async def stop(self) -> None:
        """
        Cancel the loops and wait for them; start() may be called again afterwards.

        Re-raises the exception of a loop that crashed.
        """
        tasks = [t for t in (self._task, self._dead_letter_task) if t is not None]
        self._task = None
        self._dead_letter_task = None
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                raise result

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def __aenter__(self) -> "SyncScheduler":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def notify(self, category: Hashable) -> None:
        """Wake-up signal from Accountant.record(); never blocks."""
        self._track(category)
        if self._wakeup is not None:
            self._wakeup.set()
        set_counts(
            str(category),
            self.accountant.local_count(category),
            self.accountant.confirmed_count(category),
        )

    # Loops

    async def run(self) -> None:
        """Main dispatch loop; runs until cancelled."""
        self._ensure_events()
        logger.info(
            f"Dispatch loop started (min_interval={self.config.min_interval}s, "
            f"fairness={self.config.fairness})"
        )
        try:
            while True:
                self._wakeup.clear()
                if self._select(self.clock.now()) is None:
                    await self._idle(self._next_backoff_expiry())
                    continue

                await self.limiter.acquire()

                # Pick at the claimed instant; readiness can only have grown
                category = self._select(self.clock.now())
                if category is None:
                    continue
                self._last_dispatched = category
                await self._dispatch(category)
        finally:
            logger.info("Dispatch loop stopped")
            if self._progress is not None:
                self._progress.set()

    async def run_dead_letter(self) -> None:
        """Slow retry timer for dead-lettered categories; runs until cancelled."""
        self._ensure_events()
        try:
            while True:
                await self.clock.sleep(self.config.dead_letter_interval)
                if self.dead_letter.next_due(self._dead_letter_ready) is None:
                    continue

                await self.limiter.acquire()

                category = self.dead_letter.next_due(self._dead_letter_ready)
                if category is None:
                    continue
                self._track(category).log.info("Retrying dead-lettered category")
                self.dead_letter.mark_retry(category)
                await self._dispatch(category)
        finally:
            logger.info("Dead-letter timer stopped")
            if self._progress is not None:
                self._progress.set()

    # Observability

    def snapshot(self) -> SyncSnapshot:
        stats = []
        for category in self.accountant.categories():
            track = self._track(category)
            local = self.accountant.local_count(category)
            confirmed = self.accountant.confirmed_count(category)
            stats.append(
                CategoryStats(
                    category=category,
                    local=local,
                    confirmed=confirmed,
                    pending=local - confirmed,
                    state=track.state,
                    failures=track.failures,
                    dead_lettered=category in self.dead_letter,
                    calls=dict(track.calls),
                    last_outcome=track.last_outcome,
                )
            )
        return SyncSnapshot(categories=tuple(stats), dead_letter=tuple(self.dead_letter.entries()))

    def dead_letters(self) -> List[DeadLetterEntry]:
        return self.dead_letter.entries()

    def is_converged(self) -> bool:
        return self.snapshot().converged

    async def wait_converged(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every category has zero pending delta and no call in flight.

        Args:
            timeout: Seconds to wait (None = forever)

        Returns:
            True if converged, False on timeout

        Raises:
            Exception: Whatever crashed the dispatch loop while waiting
        """
        self._ensure_events()
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while True:
            self._progress.clear()
            self._raise_if_crashed()
            if self.is_converged():
                return True
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            try:
                await asyncio.wait_for(self._progress.wait(), remaining)
            except asyncio.TimeoutError:
                self._raise_if_crashed()
                return self.is_converged()

    # Internals

    def _ensure_events(self) -> None:
        # Created lazily so they bind to the loop that actually runs us
        if self._wakeup is None:
            self._wakeup = asyncio.Event()
        if self._progress is None:
            self._progress = asyncio.Event()

    def _loop_done(self, task: asyncio.Task) -> None:
        """A crashed loop takes its sibling down, so nothing keeps running half-alive."""
        if task.cancelled() or task.exception() is None:
            return
        logger.error(f"{task.get_name()} crashed: {task.exception()!r}")
        for sibling in (self._task, self._dead_letter_task):
            if sibling is not None and sibling is not task and not sibling.done():
                sibling.cancel()
        if self._progress is not None:
            self._progress.set()

    def _raise_if_crashed(self) -> None:
        for task in (self._task, self._dead_letter_task):
            if task is not None and task.done() and not task.cancelled():
                exc = task.exception()
                if exc is not None:
                    raise exc

    def _track(self, category: Hashable) -> _Track:
        track = self._tracks.get(category)
        if track is None:
            track = _Track(log=get_logger(__name__, trace_id=str(category)))
            self._tracks[category] = track
        return track

    def _ready(self, category: Hashable, now: float) -> bool:
        if category in self.dead_letter:
            return False
        track = self._track(category)
        if track.state is CategoryState.IN_FLIGHT or track.not_before > now:
            return False
        return self.accountant.pending_delta(category) > 0

    def _dead_letter_ready(self, category: Hashable) -> bool:
        return (
            self._track(category).state is CategoryState.IDLE
            and self.accountant.pending_delta(category) > 0
        )

    def _select(self, now: float) -> Optional[Hashable]:
        """
        Choose the next category to send, or None.

        round_robin: first ready category after the last one dispatched.
        largest_pending: ready category with the biggest pending delta; a busy
        category can starve quiet ones for as long as it stays busy.
        """
        categories = self.accountant.categories()
        if not categories:
            return None

        if self.config.fairness == LARGEST_PENDING:
            ready = [c for c in categories if self._ready(c, now)]
            if not ready:
                return None
            return max(ready, key=self.accountant.pending_delta)

        start = 0
        if self._last_dispatched in self._tracks:
            try:
                start = categories.index(self._last_dispatched) + 1
            except ValueError:
                start = 0
        for offset in range(len(categories)):
            category = categories[(start + offset) % len(categories)]
            if self._ready(category, now):
                return category
        return None

    def _next_backoff_expiry(self) -> Optional[float]:
        now = self.clock.now()
        expiries = [
            track.not_before
            for category, track in self._tracks.items()
            if track.not_before > now
            and track.state is CategoryState.IDLE
            and category not in self.dead_letter
            and self.accountant.pending_delta(category) > 0
        ]
        return min(expiries) if expiries else None

    async def _idle(self, deadline: Optional[float]) -> None:
        """Suspend until record() wakes us or the deadline passes."""
        if deadline is None:
            await self._wakeup.wait()
            return

        delay = deadline - self.clock.now()
        if delay <= 0:
            return
        waiters = [
            asyncio.ensure_future(self._wakeup.wait()),
            asyncio.ensure_future(self.clock.sleep(delay)),
        ]
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

    async def _dispatch(self, category: Hashable) -> Outcome:
        track = self._track(category)
        if track.state is CategoryState.IN_FLIGHT:
            raise SchedulerStateError(f"Category {category} already has a call in flight")

        amount = self.accountant.pending_delta(category)
        track.state = CategoryState.IN_FLIGHT
        track.log.debug(f"Sending delta {amount}")
        try:
            outcome = await self._call(category, amount)
        finally:
            track.state = CategoryState.IDLE

        self._apply_outcome(category, amount, outcome)
        return outcome

    async def _call(self, category: Hashable, amount: int) -> Outcome:
        with track_call_duration(str(category)):
            try:
                # Runs in this task: no suspension between acquire() and the call
                async with asyncio.timeout(self.config.call_timeout):
                    return Outcome(await self.sink.apply(category, amount))
            except TimeoutError:
                self._track(category).log.warning(
                    f"Call timed out after {self.config.call_timeout}s; treating as not applied"
                )
                return Outcome.REQUEST_NOT_APPLIED
            except SinkError as ex:
                return ex.outcome

    def _apply_outcome(self, category: Hashable, amount: int, outcome: Outcome) -> None:
        track = self._track(category)
        track.last_outcome = outcome
        track.calls[outcome.value] = track.calls.get(outcome.value, 0) + 1
        track_call(str(category), outcome.value)

        if resolve(outcome) is Resolution.CONFIRM:
            self.accountant.confirm(category, amount)
            if outcome is Outcome.APPLIED_BUT_UNACKNOWLEDGED:
                track.log.warning(f"Acknowledgement lost for delta {amount}; treating as applied")
            else:
                track.log.info(f"Confirmed delta {amount}")
            track.failures = 0
            track.not_before = 0.0
            if self.dead_letter.remove(category) is not None:
                set_dead_letter(str(category), False)
                track.log.info("Released from dead-letter area")
        else:
            track.failures += 1
            track.log.info(f"Delta {amount} not applied ({outcome}), failure #{track.failures}")
            if outcome is Outcome.RATE_LIMITED:
                self.limiter.defer()
            self._escalate(category, track)

        set_counts(
            str(category),
            self.accountant.local_count(category),
            self.accountant.confirmed_count(category),
        )
        self._wakeup.set()
        self._progress.set()

    def _escalate(self, category: Hashable, track: _Track) -> None:
        if category in self.dead_letter:
            return
        now = self.clock.now()
        max_attempts = self.config.max_attempts
        if max_attempts is not None and track.failures >= max_attempts:
            self.dead_letter.add(category, track.failures, now)
            set_dead_letter(str(category), True)
            track.log.warning(
                f"Dead-lettered after {track.failures} consecutive failures; "
                f"{self.accountant.pending_delta(category)} pending, "
                f"retrying every {self.config.dead_letter_interval}s"
            )
            return
        delay = self.backoff.delay(track.failures)
        track.not_before = now + delay if delay > 0 else 0.0
        if delay > 0:
            track.log.info(f"Backing off {delay:.2f}s after {track.failures} consecutive failures")
