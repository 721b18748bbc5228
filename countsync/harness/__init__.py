"""
Simulation harness: random event firing and convergence monitoring.
"""

from .monitor import CheckResult, ConvergenceMonitor, MonitorReport, TEST_PASS_RATE
from .trigger import bind_emitter, trigger_randomly

__all__ = [
    "CheckResult",
    "ConvergenceMonitor",
    "MonitorReport",
    "TEST_PASS_RATE",
    "bind_emitter",
    "trigger_randomly",
]
