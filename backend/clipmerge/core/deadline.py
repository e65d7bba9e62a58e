"""
Wall-clock budget shared by every stage of a merge job.
"""

from __future__ import annotations

import time

from clipmerge.core.exceptions import JobTimeoutError


class Deadline:
    """Absolute deadline computed from a budget at job start."""

    def __init__(self, budget_seconds: float, clock=time.monotonic) -> None:
        self.budget_seconds = budget_seconds
        self._clock = clock
        self._expires_at = clock() + budget_seconds

    def remaining(self) -> float:
        return max(self._expires_at - self._clock(), 0.0)

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def check(self, stage: str) -> None:
        """Raise ``JobTimeoutError`` if the budget is used up."""
        if self.expired:
            raise JobTimeoutError(stage, self.budget_seconds)

    def bound(self, timeout: float) -> float:
        """Clamp a per-operation timeout to what is left of the budget."""
        return min(timeout, self.remaining())
