from __future__ import annotations

import time
from typing import Callable

MIN_BUDGET_SECONDS = 60
MAX_BUDGET_SECONDS = 420


def clamp_budget(seconds: float | None, default: float) -> float:
    value = default if seconds is None else seconds
    return max(MIN_BUDGET_SECONDS, min(MAX_BUDGET_SECONDS, value))


class Deadline:
    """Wall-clock budget for one request."""

    def __init__(self, seconds: float, *, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.budget = seconds
        self._expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0

    def has(self, seconds: float) -> bool:
        return self.remaining() >= seconds

    def bound(self, timeout: float) -> float:
        """``timeout`` shortened so it never outlives the deadline."""
        return max(0.0, min(timeout, self.remaining()))
