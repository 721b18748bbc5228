"""
SyncScheduler behavior tests.

Sinks are scripted and time comes from a ManualClock, so rate-limit spacing,
backoff and dead-letter timers run without wall-time waits.
"""

import asyncio

import pytest

from countsync.core import Accountant, ManualClock, Outcome, SchedulerStateError, SinkError
from countsync.sync import CategoryState, LARGEST_PENDING, SyncConfig, SyncScheduler
from countsync.tests.scripted import ScriptedSink


def _config(**overrides):
    values = dict(min_interval=0.3, rate_margin=0.0, backoff_threshold=100)
    values.update(overrides)
    return SyncConfig(**values)


def _run(accountant, sink, clock, config, timeout=5.0):
    """Start a scheduler, wait for convergence, stop it; returns (converged, scheduler)."""

    async def scenario():
        scheduler = SyncScheduler(accountant, sink, config=config, clock=clock)
        async with scheduler:
            converged = await scheduler.wait_converged(timeout=timeout)
        return converged, scheduler

    return asyncio.run(scenario())


def test_batches_pending_events_into_one_call():
    clock = ManualClock()
    accountant = Accountant()
    sink = ScriptedSink(clock)
    for _ in range(7):
        accountant.record("A")

    converged, _ = _run(accountant, sink, clock, _config())

    assert converged
    assert sink.amounts("A") == [7]
    assert accountant.confirmed_count("A") == 7


def test_first_call_waits_one_interval():
    clock = ManualClock()
    accountant = Accountant()
    sink = ScriptedSink(clock)
    accountant.record("A")

    _run(accountant, sink, clock, _config())

    assert sink.calls[0].at >= 0.3


def test_events_during_call_stay_pending_for_next_round():
    """The delta is frozen when the call is issued."""
    clock = ManualClock()
    accountant = Accountant()
    extra = {"left": 4}

    def record_more(category, amount):
        while extra["left"]:
            extra["left"] -= 1
            accountant.record(category)

    sink = ScriptedSink(clock, on_call=record_more)
    for _ in range(3):
        accountant.record("A")

    converged, _ = _run(accountant, sink, clock, _config())

    assert converged
    assert sink.amounts("A") == [3, 4]
    assert sink.get("A") == accountant.local_count("A") == 7


def test_rate_limited_is_retried_and_defers_limiter():
    clock = ManualClock()
    accountant = Accountant()
    sink = ScriptedSink(clock, script=[Outcome.RATE_LIMITED])
    accountant.record("A")

    converged, scheduler = _run(accountant, sink, clock, _config())

    assert converged
    assert [c.outcome for c in sink.calls] == [Outcome.RATE_LIMITED, Outcome.SUCCESS]
    assert sink.calls[1].at - sink.calls[0].at >= 0.3 - 1e-9
    assert scheduler.snapshot().get("A").calls == {"rate_limited": 1, "success": 1}


def test_sink_error_is_mapped_to_outcome():
    clock = ManualClock()
    accountant = Accountant()

    class RaisingSink(ScriptedSink):
        async def apply(self, category, amount):
            if not self.calls:
                self.calls.append(None)
                raise SinkError(Outcome.REQUEST_NOT_APPLIED)
            return await super().apply(category, amount)

    sink = RaisingSink(clock)
    accountant.record("A")

    converged, scheduler = _run(accountant, sink, clock, _config())

    assert converged
    assert sink.get("A") == 1
    assert scheduler.snapshot().get("A").calls == {"request_not_applied": 1, "success": 1}


def test_hung_call_times_out_as_not_applied():
    clock = ManualClock()
    accountant = Accountant()

    class HangingOnceSink(ScriptedSink):
        hung = False

        async def apply(self, category, amount):
            if not self.hung:
                self.hung = True
                await asyncio.Event().wait()
            return await super().apply(category, amount)

    sink = HangingOnceSink(clock)
    accountant.record("A")

    converged, scheduler = _run(accountant, sink, clock, _config(call_timeout=0.05))

    assert converged
    assert sink.amounts("A") == [1]
    assert scheduler.snapshot().get("A").calls == {"request_not_applied": 1, "success": 1}


def test_backoff_grows_after_threshold():
    clock = ManualClock()
    accountant = Accountant()
    sink = ScriptedSink(clock, script=[Outcome.REQUEST_NOT_APPLIED] * 4)
    accountant.record("A")
    config = _config(min_interval=0.1, backoff_base=1.0, backoff_ceiling=4.0, backoff_threshold=2)

    converged, _ = _run(accountant, sink, clock, config)

    assert converged
    at = [c.at for c in sink.calls]
    assert len(at) == 5
    assert at[1] - at[0] < 1.0
    assert at[2] - at[1] >= 1.0 - 1e-9
    assert at[3] - at[2] >= 2.0 - 1e-9
    assert at[4] - at[3] >= 4.0 - 1e-9


def test_round_robin_does_not_starve_quiet_category():
    clock = ManualClock()
    accountant = Accountant()
    regen = {"left": 3}

    def keep_a_busy(category, amount):
        if category == "A" and regen["left"]:
            regen["left"] -= 1
            accountant.record("A")

    sink = ScriptedSink(clock, on_call=keep_a_busy)
    for _ in range(5):
        accountant.record("A")
    accountant.record("B")

    converged, _ = _run(accountant, sink, clock, _config())

    assert converged
    assert [c.category for c in sink.calls][:2] == ["A", "B"]


def test_largest_pending_prefers_busy_category():
    clock = ManualClock()
    accountant = Accountant()
    regen = {"left": 3}

    def keep_a_busy(category, amount):
        if category == "A" and regen["left"]:
            regen["left"] -= 1
            accountant.record("A")

    sink = ScriptedSink(clock, on_call=keep_a_busy)
    for _ in range(5):
        accountant.record("A")
    accountant.record("B")

    converged, _ = _run(accountant, sink, clock, _config(fairness=LARGEST_PENDING))

    assert converged
    assert [c.category for c in sink.calls] == ["A", "A", "A", "A", "B"]


def test_dead_letter_and_release():
    """Past max_attempts the category leaves the main loop and the slow timer retries it."""
    clock = ManualClock()
    accountant = Accountant()
    seen = []
    holder = {}

    def note_dead_letter(category, amount):
        seen.append(category in holder["scheduler"].dead_letter)

    sink = ScriptedSink(clock, script=[Outcome.REQUEST_NOT_APPLIED] * 3, on_call=note_dead_letter)
    for _ in range(2):
        accountant.record("A")
    config = _config(max_attempts=3, dead_letter_interval=1.0)

    async def scenario():
        scheduler = SyncScheduler(accountant, sink, config=config, clock=clock)
        holder["scheduler"] = scheduler
        async with scheduler:
            converged = await scheduler.wait_converged(timeout=5.0)
        return converged, scheduler

    converged, scheduler = asyncio.run(scenario())

    assert converged
    assert seen == [False, False, False, True]
    assert sink.get("A") == 2
    assert scheduler.dead_letters() == []
    stats = scheduler.snapshot().get("A")
    assert stats.failures == 0
    assert not stats.dead_lettered


def test_dead_lettered_category_keeps_pending_delta():
    clock = ManualClock()
    accountant = Accountant()
    sink = ScriptedSink(clock, script=[Outcome.REQUEST_NOT_APPLIED] * 100)
    for _ in range(3):
        accountant.record("A")
    config = _config(max_attempts=2, dead_letter_interval=1000.0)

    async def scenario():
        scheduler = SyncScheduler(accountant, sink, config=config, clock=clock)
        async with scheduler:
            while not scheduler.dead_letters():
                await asyncio.sleep(0)
            return scheduler.snapshot()

    snapshot = asyncio.run(scenario())

    stats = snapshot.get("A")
    assert stats.dead_lettered
    assert stats.pending == 3
    assert not snapshot.converged
    assert [e.category for e in snapshot.dead_letter] == ["A"]
    assert snapshot.dead_letter[0].failures == 2


def test_crashed_loop_is_reported():
    clock = ManualClock()
    accountant = Accountant()

    class BrokenSink(ScriptedSink):
        async def apply(self, category, amount):
            raise RuntimeError("boom")

    accountant.record("A")

    async def scenario():
        scheduler = SyncScheduler(accountant, BrokenSink(clock), config=_config(), clock=clock)
        scheduler.start()
        try:
            await scheduler.wait_converged(timeout=5.0)
        finally:
            with pytest.raises(RuntimeError, match="boom"):
                await scheduler.stop()

    with pytest.raises(RuntimeError, match="boom"):
        asyncio.run(scenario())


def test_crashed_dead_letter_timer_is_reported():
    """A crash on the dead-letter path stops both loops and surfaces from wait_converged()."""
    clock = ManualClock()
    accountant = Accountant()

    class BrokenRetrySink(ScriptedSink):
        async def apply(self, category, amount):
            if self.calls:
                raise RuntimeError("boom")
            return await super().apply(category, amount)

    sink = BrokenRetrySink(clock, script=[Outcome.REQUEST_NOT_APPLIED])
    accountant.record("A")
    config = _config(max_attempts=1, dead_letter_interval=1.0)

    async def scenario():
        scheduler = SyncScheduler(accountant, sink, config=config, clock=clock)
        scheduler.start()
        dispatch = scheduler._task
        try:
            await scheduler.wait_converged()
        finally:
            for _ in range(5):
                await asyncio.sleep(0)
            assert dispatch.cancelled()
            assert not scheduler.running
            with pytest.raises(RuntimeError, match="boom"):
                await scheduler.stop()

    with pytest.raises(RuntimeError, match="boom"):
        asyncio.run(scenario())


def test_start_twice_is_rejected():
    async def scenario():
        clock = ManualClock()
        scheduler = SyncScheduler(Accountant(), ScriptedSink(clock), config=_config(), clock=clock)
        scheduler.start()
        try:
            with pytest.raises(SchedulerStateError):
                scheduler.start()
            assert scheduler.running
        finally:
            await scheduler.stop()
        assert not scheduler.running

    asyncio.run(scenario())


def test_snapshot_reports_counts():
    clock = ManualClock()
    accountant = Accountant()
    scheduler = SyncScheduler(accountant, ScriptedSink(clock), config=_config(), clock=clock)
    accountant.record("A")
    accountant.record("A")
    accountant.register("B")

    snapshot = scheduler.snapshot()

    assert [s.category for s in snapshot.categories] == ["A", "B"]
    a = snapshot.get("A")
    assert (a.local, a.confirmed, a.pending, a.state) == (2, 0, 2, CategoryState.IDLE)
    assert snapshot.get("missing") is None
    assert not snapshot.converged
    assert snapshot.to_dict()["categories"][0]["pending"] == 2
