"""
Dead-letter holding area for categories past the retry ceiling.

A dead-lettered category keeps its pending delta (the Accountant still owns the
counts) but leaves the main dispatch rotation; a slower timer retries it.
"""

from dataclasses import dataclass, replace
from typing import Dict, Hashable, Iterator, List, Optional


@dataclass(frozen=True)
class DeadLetterEntry:
    """
    Fields:
        category: Category identifier
        failures: Consecutive failures when it was dead-lettered
        entered_at: Clock time it was dead-lettered
        retries: Dead-letter retries attempted since
    """
    category: Hashable
    failures: int
    entered_at: float
    retries: int = 0


class DeadLetterQueue:
    """Insertion-ordered set of dead-lettered categories, served round-robin."""

    def __init__(self) -> None:
        self._entries: Dict[Hashable, DeadLetterEntry] = {}
        self._cursor = 0

    def add(self, category: Hashable, failures: int, at: float) -> DeadLetterEntry:
        entry = DeadLetterEntry(category=category, failures=failures, entered_at=at)
        self._entries[category] = entry
        return entry

    def remove(self, category: Hashable) -> Optional[DeadLetterEntry]:
        return self._entries.pop(category, None)

    def mark_retry(self, category: Hashable) -> None:
        entry = self._entries.get(category)
        if entry is not None:
            self._entries[category] = replace(entry, retries=entry.retries + 1)

    def get(self, category: Hashable) -> Optional[DeadLetterEntry]:
        return self._entries.get(category)

    def next_due(self, eligible) -> Optional[Hashable]:
        """
        Next category in rotation for which eligible(category) is true.

        Args:
            eligible: Predicate, e.g. "has pending delta and is idle"
        """
        order = list(self._entries)
        for offset in range(len(order)):
            idx = (self._cursor + offset) % len(order)
            if eligible(order[idx]):
                self._cursor = idx + 1
                return order[idx]
        return None

    def entries(self) -> List[DeadLetterEntry]:
        return list(self._entries.values())

    def __contains__(self, category: Hashable) -> bool:
        return category in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(list(self._entries))
