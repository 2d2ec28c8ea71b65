from __future__ import annotations

import random
from typing import List, Optional


class BackoffStrategy:
    """Exponential backoff for transmission retries.

    Computes sleep duration as base * 2^(attempt-1), capped at a configurable
    maximum. With the defaults the sequence is 1s, 2s, 4s. Jitter is off unless
    jitter_ratio is set."""

    def __init__(
        self,
        base_seconds: float = 1.0,
        max_seconds: float = 4.0,
        jitter_ratio: float = 0.0,
    ) -> None:
        self._base = base_seconds
        self._max = max_seconds
        self._jitter_ratio = max(0.0, jitter_ratio)

    def get_sleep(self, attempt: int, error_type: Optional[str] = None) -> float:
        """Calculate the sleep duration in seconds after a failed attempt."""
        exp = min(self._max, self._base * (2 ** max(attempt - 1, 0)))
        if not self._jitter_ratio:
            return exp
        return exp + random.uniform(0, exp * self._jitter_ratio)

    def delays(self, attempts: int) -> List[float]:
        """Delays slept between the given number of attempts."""
        return [self.get_sleep(n) for n in range(1, max(attempts, 1))]
