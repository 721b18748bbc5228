"""
RemoteSink abstract interface.

Defines the contract the scheduler reconciles against.
"""

from abc import ABC, abstractmethod
from typing import Hashable

from ..core.outcomes import Outcome


class RemoteSink(ABC):
    """
    Rate-limited, fallible remote counter store.

    All implementations must guarantee:
    - One global minimum spacing between attempts, across categories;
      premature attempts get RATE_LIMITED and have no effect
    - SUCCESS means the remote counter grew by exactly amount
    - REQUEST_NOT_APPLIED means no effect
    - APPLIED_BUT_UNACKNOWLEDGED means the counter grew by exactly amount
    """

    @abstractmethod
    async def apply(self, category: Hashable, amount: int) -> Outcome:
        """
        Add amount to the remote counter for category.

        Args:
            category: Category identifier
            amount: Positive delta

        Returns:
            Outcome of the attempt

        Raises:
            SinkError: Implementations may raise instead of returning a failure
        """
        ...

    def get(self, category: Hashable) -> int:
        """
        Return the remote count for category if the sink can report it.

        Implementations may override. Default returns 0.
        """
        return 0
