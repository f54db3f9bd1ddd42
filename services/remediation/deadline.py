"""Shrinking time budget shared across the phases of one operation."""

from __future__ import annotations

import time
from collections.abc import Callable


class DeadlineBudget:
    """A single time allowance consumed by successive blocking waits.

    The budget is decremented only by :meth:`consume_since`, i.e. at the end of
    each blocking wait, so that a slow early phase leaves less time for later
    ones.
    """

    def __init__(self, seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._remaining = float(seconds)
        self._clock = clock

    @property
    def remaining(self) -> float:
        return self._remaining

    @property
    def exhausted(self) -> bool:
        return self._remaining <= 0.0

    def now(self) -> float:
        return self._clock()

    def consume_since(self, started: float) -> float:
        """Subtract the time elapsed since ``started`` and return what is left."""
        elapsed = max(0.0, self._clock() - started)
        self._remaining -= elapsed
        return self._remaining

    def __repr__(self) -> str:
        return f"DeadlineBudget(remaining={self._remaining:.3f})"
