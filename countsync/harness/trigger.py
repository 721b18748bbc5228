"""
Random event firing for simulations.
"""

import asyncio
import random
from typing import Callable, Hashable, Iterable, Optional

from ..core.accountant import Accountant
from ..core.emitter import EventEmitter


async def trigger_randomly(
    callback: Callable[[], None],
    max_fires: int,
    max_gap: float = 0.05,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Call callback max_fires times, sleeping a random gap in [0, max_gap) before each.

    Returns:
        Number of fires performed
    """
    rng = rng or random.Random()
    fired = 0
    while fired < max_fires:
        await asyncio.sleep(rng.random() * max_gap)
        callback()
        fired += 1
    return fired


def bind_emitter(emitter: EventEmitter, accountant: Accountant, categories: Iterable[Hashable]) -> None:
    """Count every emitted event of the given categories in accountant."""
    for category in categories:
        accountant.register(category)
        emitter.subscribe(category, lambda c=category: accountant.record(c))
