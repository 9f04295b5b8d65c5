# src/query_counter/clock.py
"""Clock abstraction for transaction timing.

Transaction start and end times default to the engine's clock when the
caller does not supply them. Production code uses SystemClock; tests inject
ManualClock to make elapsed times exact.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Source of monotonic time for elapsed-time measurement."""

    def monotonic(self) -> float:
        """Return monotonic time in seconds.

        Values are only meaningful relative to each other. They never go
        backwards and are unaffected by wall-clock adjustments.
        """
        ...


class SystemClock:
    """Clock backed by time.monotonic()."""

    def monotonic(self) -> float:
        return time.monotonic()


class ManualClock:
    """Clock that only moves when told to.

    Example:
        clock = ManualClock(start=10.0)
        counter = QueryCounter(clock=clock)
        with counter.count_queries():
            counter.record_transaction_begin()   # starts at 10.0
            clock.advance(0.25)
            counter.record_transaction_end(committed=True)
        # the recorded transaction took exactly 0.25s
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start

    def monotonic(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        """Move the clock forward.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot move a monotonic clock backwards: {seconds}")
        self._now += seconds


DEFAULT_CLOCK: Clock = SystemClock()
