"""Bounded poll policy used by the connect / disconnect / service-resolution loops."""

from __future__ import annotations

import time
from typing import Callable, Optional


class RetryPolicy:
    """
    Fixed-interval, fixed-budget poll policy.

    ``sleep`` is injectable so tests can run the loops without real delays.
    """

    def __init__(
        self,
        attempts: int,
        interval: float,
        *,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        if attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {attempts}")
        if interval < 0:
            raise ValueError(f"interval must be >= 0, got {interval}")
        self.attempts = attempts
        self.interval = interval
        self._sleep = sleep or time.sleep

    def wait_until(self, predicate: Callable[[], bool]) -> bool:
        """
        Evaluate *predicate* up to ``attempts`` times, sleeping ``interval``
        between evaluations.  Returns True as soon as it holds.
        """
        for attempt in range(self.attempts):
            if predicate():
                return True
            if attempt + 1 < self.attempts:
                self._sleep(self.interval)
        return False

    @property
    def budget(self) -> float:
        """Upper bound (seconds) spent sleeping by :meth:`wait_until`."""
        return self.interval * (self.attempts - 1)

    def __eq__(self, other):
        if not isinstance(other, RetryPolicy):
            return NotImplemented
        return self.attempts == other.attempts and self.interval == other.interval

    def __repr__(self):
        return f"RetryPolicy(attempts={self.attempts}, interval={self.interval})"
