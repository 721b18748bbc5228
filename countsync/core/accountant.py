"""
Accountant: authoritative bookkeeping of observed vs. confirmed counts.

Two plain mappings per category:
- local: events observed in this process (only grows, +1 per event)
- confirmed: amount believed to be reflected in the remote sink

Pending delta is derived as local - confirmed and is never stored.
"""

from typing import Callable, Dict, Hashable, List

from .errors import AccountingError

Listener = Callable[[Hashable], None]


class Accountant:
    """
    Local and confirmed counters for every category seen so far.

    Entries are created at zero on first reference and never removed.
    record() never suspends: it bumps the counter and pokes listeners
    (the scheduler's wake signal).
    """

    def __init__(self) -> None:
        self._local: Dict[Hashable, int] = {}
        self._confirmed: Dict[Hashable, int] = {}
        self._listeners: List[Listener] = []

    def register(self, category: Hashable) -> None:
        """Create zero entries for category if it has not been seen yet."""
        if category not in self._local:
            self._local[category] = 0
            self._confirmed[category] = 0

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def record(self, category: Hashable) -> None:
        """
        Count one observed event.

        Args:
            category: Category the event belongs to
        """
        self.register(category)
        self._local[category] += 1
        for listener in self._listeners:
            listener(category)

    def pending_delta(self, category: Hashable) -> int:
        return self.local_count(category) - self.confirmed_count(category)

    def confirm(self, category: Hashable, amount: int) -> None:
        """
        Add amount to the confirmed count.

        Only the scheduler calls this, with the delta snapshot of a call whose
        outcome resolved to "applied".

        Raises:
            AccountingError: If amount is negative or confirmed would pass local
        """
        if amount < 0:
            raise AccountingError(f"Negative confirm for {category}: {amount}")
        self.register(category)
        confirmed = self._confirmed[category] + amount
        if confirmed > self._local[category]:
            raise AccountingError(
                f"Confirm of {amount} for {category} would exceed local count "
                f"({confirmed} > {self._local[category]})"
            )
        self._confirmed[category] = confirmed

    def local_count(self, category: Hashable) -> int:
        return self._local.get(category, 0)

    def confirmed_count(self, category: Hashable) -> int:
        return self._confirmed.get(category, 0)

    def categories(self) -> List[Hashable]:
        """Categories in first-reference order."""
        return list(self._local)
