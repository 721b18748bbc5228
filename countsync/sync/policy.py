"""
Outcome policy: what an apply-delta outcome means for the confirmed count.

CONFIRM: the delta snapshot is now part of the remote counter.
RETRY: the remote counter did not move; the category stays pending and the
next call resends the current (equal or larger) pending delta.

APPLIED_BUT_UNACKNOWLEDGED resolves to CONFIRM. The sink has no idempotency
key, so resending the same delta would overcount permanently and silently.
This trusts the sink's contract that the ambiguous outcome always means the
write landed.
"""

from enum import Enum
from typing import Dict

from ..core.outcomes import Outcome


class Resolution(str, Enum):
    CONFIRM = "confirm"
    RETRY = "retry"


_RESOLUTIONS: Dict[Outcome, Resolution] = {
    Outcome.SUCCESS: Resolution.CONFIRM,
    Outcome.APPLIED_BUT_UNACKNOWLEDGED: Resolution.CONFIRM,
    Outcome.RATE_LIMITED: Resolution.RETRY,
    Outcome.REQUEST_NOT_APPLIED: Resolution.RETRY,
}

_missing = set(Outcome) - set(_RESOLUTIONS)
if _missing:
    raise RuntimeError(f"No resolution for outcomes: {sorted(o.value for o in _missing)}")


def resolve(outcome: Outcome) -> Resolution:
    """
    Map outcome to resolution.

    Raises:
        ValueError: If outcome is not an Outcome member
    """
    try:
        return _RESOLUTIONS[Outcome(outcome)]
    except (KeyError, ValueError) as ex:
        raise ValueError(f"Unknown outcome: {outcome!r}") from ex
