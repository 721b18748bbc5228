"""
Exception types for the count reconciliation engine.
"""


class CountSyncError(Exception):
    """Base class for engine errors."""
    pass


class AccountingError(CountSyncError):
    """Raised when a confirm would break confirmed <= local (programming error)."""
    pass


class ConfigError(CountSyncError):
    """Raised when configuration values are out of range."""
    pass


class SchedulerStateError(CountSyncError):
    """Raised when the scheduler is started twice or used after stop."""
    pass
