"""
Scheduler configuration.

Read from COUNTSYNC_* environment variables, with defaults tuned to the
reference sink (0.3 s global cooldown, up to 1 s latency).
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from ..core.errors import ConfigError

ROUND_ROBIN = "round_robin"
LARGEST_PENDING = "largest_pending"
FAIRNESS_POLICIES = (ROUND_ROBIN, LARGEST_PENDING)


def _env_float(key: str, default: float) -> float:
    val = os.getenv(key)
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        return default


def _env_int(key: str, default: Optional[int]) -> Optional[int]:
    val = os.getenv(key)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        return default


@dataclass
class SyncConfig:
    """
    Tunables for the dispatch loop.

    Fields:
        min_interval: Global minimum spacing between sink calls (seconds)
        rate_margin: Extra spacing added by the limiter to absorb clock jitter
        call_timeout: Bound on one sink call; None waits forever
        fairness: round_robin or largest_pending
        backoff_base: First backoff delay once escalation starts
        backoff_ceiling: Upper bound of the backoff delay
        backoff_threshold: Consecutive failures before backoff kicks in
        max_attempts: Consecutive failures before dead-lettering; None retries forever
        dead_letter_interval: Period of the dead-letter retry timer
        start_open: Let the first call through immediately instead of after one interval
    """
    min_interval: float = 0.3
    rate_margin: float = 0.005
    call_timeout: Optional[float] = 5.0
    fairness: str = ROUND_ROBIN
    backoff_base: float = 0.3
    backoff_ceiling: float = 5.0
    backoff_threshold: int = 3
    max_attempts: Optional[int] = None
    dead_letter_interval: float = 5.0
    start_open: bool = False

    @staticmethod
    def from_env() -> "SyncConfig":
        call_timeout: Optional[float] = _env_float("COUNTSYNC_CALL_TIMEOUT", 5.0)
        if call_timeout is not None and call_timeout <= 0:
            call_timeout = None
        max_attempts = _env_int("COUNTSYNC_MAX_ATTEMPTS", None)
        if max_attempts is not None and max_attempts <= 0:
            max_attempts = None
        config = SyncConfig(
            min_interval=_env_float("COUNTSYNC_MIN_INTERVAL", 0.3),
            rate_margin=_env_float("COUNTSYNC_RATE_MARGIN", 0.005),
            call_timeout=call_timeout,
            fairness=os.getenv("COUNTSYNC_FAIRNESS", ROUND_ROBIN).lower(),
            backoff_base=_env_float("COUNTSYNC_BACKOFF_BASE", 0.3),
            backoff_ceiling=_env_float("COUNTSYNC_BACKOFF_CEILING", 5.0),
            backoff_threshold=_env_int("COUNTSYNC_BACKOFF_THRESHOLD", 3) or 0,
            max_attempts=max_attempts,
            dead_letter_interval=_env_float("COUNTSYNC_DEAD_LETTER_INTERVAL", 5.0),
            start_open=os.getenv("COUNTSYNC_START_OPEN", "0") == "1",
        )
        config.validate()
        return config

    def validate(self) -> None:
        """
        Raises:
            ConfigError: If any value is out of range
        """
        if self.min_interval < 0 or self.rate_margin < 0:
            raise ConfigError("min_interval and rate_margin must be >= 0")
        if self.call_timeout is not None and self.call_timeout <= 0:
            raise ConfigError("call_timeout must be > 0 or None")
        if self.fairness not in FAIRNESS_POLICIES:
            raise ConfigError(
                f"fairness must be one of {', '.join(FAIRNESS_POLICIES)}, got {self.fairness!r}"
            )
        if self.backoff_base < 0 or self.backoff_ceiling < self.backoff_base:
            raise ConfigError("backoff_base must be >= 0 and <= backoff_ceiling")
        if self.backoff_threshold < 0:
            raise ConfigError("backoff_threshold must be >= 0")
        if self.max_attempts is not None and self.max_attempts <= 0:
            raise ConfigError("max_attempts must be > 0 or None")
        if self.dead_letter_interval <= 0:
            raise ConfigError("dead_letter_interval must be > 0")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
