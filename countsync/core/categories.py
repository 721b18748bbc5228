"""
Event categories.

A category is any hashable string identifier. The reference setup counts two
of them, A and B.
"""

from enum import Enum
from typing import List


class EventName(str, Enum):
    """Reference categories fired by the event source."""

    EVENT_A = "A"
    EVENT_B = "B"

    def __str__(self) -> str:
        return self.value


EVENT_NAMES: List[EventName] = [EventName.EVENT_A, EventName.EVENT_B]
