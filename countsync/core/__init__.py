"""
Core reconciliation primitives.

This module provides the building blocks shared by the scheduler and sinks:
- Accountant: Local vs. confirmed counts per category
- Outcome: Closed taxonomy of remote call results
- EventEmitter: Synchronous publish/subscribe event source
- Clock: Injectable monotonic time source
"""

from .accountant import Accountant
from .categories import EventName, EVENT_NAMES
from .clock import Clock, ManualClock, SYSTEM_CLOCK
from .emitter import EventEmitter
from .errors import AccountingError, ConfigError, CountSyncError, SchedulerStateError
from .outcomes import Outcome, OutcomeClass, SinkError

__all__ = [
    "Accountant",
    "EventName",
    "EVENT_NAMES",
    "Clock",
    "ManualClock",
    "SYSTEM_CLOCK",
    "EventEmitter",
    "AccountingError",
    "ConfigError",
    "CountSyncError",
    "SchedulerStateError",
    "Outcome",
    "OutcomeClass",
    "SinkError",
]
