"""
Reconciliation engine.

This module provides:
- SyncScheduler: Dispatch loop with single-flight calls and fairness
- RateLimiter: One global minimum-interval gate for all sink calls
- resolve/Resolution: Outcome policy (confirm vs. retry)
- Backoff: Capped exponential delay for persistently failing categories
- DeadLetterQueue: Holding area for categories past the retry ceiling
- SyncConfig: Environment-driven tunables
"""

from .backoff import Backoff
from .config import FAIRNESS_POLICIES, LARGEST_PENDING, ROUND_ROBIN, SyncConfig
from .dead_letter import DeadLetterEntry, DeadLetterQueue
from .policy import Resolution, resolve
from .rate_limiter import RateLimiter
from .scheduler import CategoryState, CategoryStats, SyncScheduler, SyncSnapshot

__all__ = [
    "Backoff",
    "FAIRNESS_POLICIES",
    "LARGEST_PENDING",
    "ROUND_ROBIN",
    "SyncConfig",
    "DeadLetterEntry",
    "DeadLetterQueue",
    "Resolution",
    "resolve",
    "RateLimiter",
    "CategoryState",
    "CategoryStats",
    "SyncScheduler",
    "SyncSnapshot",
]
