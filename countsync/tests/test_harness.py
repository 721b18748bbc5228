"""
Simulation harness tests: random triggers and the convergence monitor.
"""

import asyncio
import random

from countsync.core import Accountant, EventEmitter, ManualClock
from countsync.harness import ConvergenceMonitor, bind_emitter, trigger_randomly
from countsync.tests.scripted import ScriptedSink


def _wired(categories=("A", "B")):
    emitter = EventEmitter()
    accountant = Accountant()
    sink = ScriptedSink(ManualClock())
    bind_emitter(emitter, accountant, categories)
    monitor = ConvergenceMonitor(emitter, categories, accountant, sink)
    return emitter, accountant, sink, monitor


def test_trigger_randomly_fires_exact_count():
    calls = []
    fired = asyncio.run(trigger_randomly(lambda: calls.append(1), 25, 0.0005, random.Random(1)))
    assert fired == 25
    assert len(calls) == 25


def test_bind_emitter_records_in_accountant():
    emitter, accountant, _, monitor = _wired()
    emitter.emit("A")
    emitter.emit("A")
    emitter.emit("B")

    assert accountant.local_count("A") == 2
    assert accountant.local_count("B") == 1
    assert monitor.fired("A") == 2


def test_check_passes_with_nothing_handled():
    _, _, _, monitor = _wired()
    assert monitor.check("A").passed


def test_check_fails_when_saved_lags():
    emitter, _, sink, monitor = _wired()
    for _ in range(10):
        emitter.emit("A")
    sink._stats["A"] = 8

    result = monitor.check("A")

    assert not result.passed
    assert (result.fired, result.handled, result.saved) == (10, 10, 8)
    assert "15%" in result.reason


def test_check_passes_within_tolerance():
    emitter, _, sink, monitor = _wired()
    for _ in range(20):
        emitter.emit("B")
    sink._stats["B"] = 18

    assert monitor.check("B").passed


def test_check_fails_when_handler_missed_events():
    emitter = EventEmitter()
    accountant = Accountant()
    monitor = ConvergenceMonitor(emitter, ["A"], accountant, ScriptedSink(ManualClock()))
    emitter.emit("A")

    result = monitor.check("A")

    assert not result.passed
    assert result.reason == "amount of handled events differs"


def test_run_reports_fraction_of_passing_ticks():
    emitter, _, sink, monitor = _wired(("A",))
    ticks = []

    def on_tick(tick, results):
        ticks.append(tick)
        if tick == 1:
            for _ in range(10):
                emitter.emit("A")

    reports = asyncio.run(monitor.run(ticks=4, interval=0.001, on_tick=on_tick))

    report = reports["A"]
    assert ticks == [0, 1, 2, 3]
    assert [c.passed for c in report.checks] == [True, True, False, False]
    assert report.fraction == 0.5
    assert not report.passed
