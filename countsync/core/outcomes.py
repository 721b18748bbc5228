"""
Outcome taxonomy for remote apply-delta calls.

Every call to a remote sink ends in exactly one of four outcomes. They fall into
three classes:
- SUCCESS: applied and acknowledged
- TRANSIENT_RETRYABLE: remote state unchanged, safe to resend an equal or
  larger delta (RATE_LIMITED, REQUEST_NOT_APPLIED)
- AMBIGUOUS_COMMIT: remote state changed but the acknowledgement was lost;
  resending the same delta would double count (APPLIED_BUT_UNACKNOWLEDGED)
"""

from enum import Enum


class OutcomeClass(str, Enum):
    SUCCESS = "success"
    TRANSIENT_RETRYABLE = "transient_retryable"
    AMBIGUOUS_COMMIT = "ambiguous_commit"


class Outcome(str, Enum):
    """Closed set of results a RemoteSink may report."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    REQUEST_NOT_APPLIED = "request_not_applied"
    APPLIED_BUT_UNACKNOWLEDGED = "applied_but_unacknowledged"

    @property
    def outcome_class(self) -> OutcomeClass:
        return _CLASSES[self]

    @property
    def remote_applied(self) -> bool:
        """True if the remote counter moved as a result of the call."""
        return self.outcome_class is not OutcomeClass.TRANSIENT_RETRYABLE

    def __str__(self) -> str:
        return self.value


_CLASSES = {
    Outcome.SUCCESS: OutcomeClass.SUCCESS,
    Outcome.RATE_LIMITED: OutcomeClass.TRANSIENT_RETRYABLE,
    Outcome.REQUEST_NOT_APPLIED: OutcomeClass.TRANSIENT_RETRYABLE,
    Outcome.APPLIED_BUT_UNACKNOWLEDGED: OutcomeClass.AMBIGUOUS_COMMIT,
}


class SinkError(Exception):
    """
    Raised by sinks that report failures as exceptions instead of return values.

    Carries the non-success outcome it stands for, so the scheduler handles it
    exactly like the returned form.
    """

    def __init__(self, outcome: Outcome, message: str = "") -> None:
        if outcome is Outcome.SUCCESS:
            raise ValueError("SinkError cannot carry a success outcome")
        super().__init__(message or str(outcome))
        self.outcome = outcome
