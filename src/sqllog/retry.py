from __future__ import annotations

import math
import sys

MAX_RETRIES = sys.maxsize


class RetryBackoff:
    """Linear retry backoff with a ceiling.

    Each consecutive failure waits one increment longer than the previous
    one, up to `maximum`:

        wait = min(retries, floor(maximum / increment)) * increment

    Defaults: 5 minutes longer per retry, 1 hour at most.
    """

    def __init__(self, increment: float = 5 * 60.0, maximum: float = 60 * 60.0):
        if increment < 0 or maximum < 0:
            raise ValueError("increment and maximum must be >= 0")
        self._increment = increment
        self._maximum = maximum
        self._retries = 0

    @property
    def increment(self) -> float:
        return self._increment

    @property
    def maximum(self) -> float:
        return self._maximum

    @property
    def retries(self) -> int:
        return self._retries

    @property
    def max_increments(self) -> int:
        if self._increment <= 0:
            return 0
        return math.floor(self._maximum / self._increment)

    def delay(self, retries: int) -> float:
        return min(retries, self.max_increments) * self._increment

    def on_success(self) -> None:
        self._retries = 0

    def on_failure(self) -> float:
        """Count a failed attempt; returns the wait before the next one."""
        if self._retries < MAX_RETRIES:
            self._retries += 1
        return self.delay(self._retries)
