from __future__ import annotations

import threading
import time
from collections.abc import Callable


class RateLimiter:
    """Minimum-interval limiter for frame captures.

    No burst credit: every grant is at least `1 / max_calls_per_second`
    after the previous one, measured from when the previous grant was issued.
    """

    def __init__(
        self,
        max_calls_per_second: float = 2.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_calls_per_second <= 0:
            raise ValueError("max_calls_per_second must be positive")
        self.min_interval = 1.0 / float(max_calls_per_second)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_grant: float | None = None

    def acquire(self) -> float:
        """Block until a capture is permitted; return the seconds waited."""
        with self._lock:
            now = self._clock()
            waited = 0.0
            if self._last_grant is not None:
                wait = self.min_interval - (now - self._last_grant)
                if wait > 0:
                    self._sleep(wait)
                    waited = wait
                    now = max(self._clock(), self._last_grant + self.min_interval)
            self._last_grant = now
            return waited


__all__ = ["RateLimiter"]
