"""
Failure-count circuit breaker.

Guards the spatial shop-search query: after ``failure_threshold``
consecutive failures the caller skips the slow path for
``cooldown_seconds`` and goes straight to its fallback.  Once the cooldown
has elapsed the count resets and the slow path is tried again.

One instance per application (see ``create_app``), never a module global,
so tests and parallel app instances do not share state.
"""

from __future__ import annotations

import time
from collections.abc import Callable


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 3,
        cooldown_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self.failure_count = 0
        self.last_failure_at: float | None = None

    @property
    def is_open(self) -> bool:
        if self.failure_count < self.failure_threshold:
            return False
        if self.last_failure_at is None:
            return False
        return self._clock() - self.last_failure_at < self.cooldown_seconds

    def allow_request(self) -> bool:
        """False while open.  Resets the count once the cooldown is over."""
        if self.failure_count < self.failure_threshold:
            return True
        if self.is_open:
            return False
        self.failure_count = 0
        return True

    def record_success(self) -> None:
        self.failure_count = 0

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_at = self._clock()
