"""
Capped exponential backoff for categories that keep failing.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Backoff:
    """
    Delay before a failing category may be selected again.

    Fields:
        base: Delay at the first escalated failure (seconds)
        ceiling: Maximum delay (seconds)
        threshold: Consecutive failures tolerated without any delay

    delay(n) is base * 2 ** (n - threshold) once n >= threshold, capped at
    ceiling. A threshold of 0 counts as 1 in the exponent, so the first
    failure waits base rather than 2 * base.
    """
    base: float
    ceiling: float
    threshold: int = 3

    def delay(self, failures: int) -> float:
        if failures < self.threshold or failures <= 0:
            return 0.0
        exponent = failures - max(self.threshold, 1)
        # Cap the exponent before raising to keep the float finite
        if exponent > 62:
            return self.ceiling
        return min(self.ceiling, self.base * (2 ** exponent))
