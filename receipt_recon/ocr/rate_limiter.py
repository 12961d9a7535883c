"""Sliding-window request limiter guarding paid OCR provider quotas."""

import threading
import time
from collections import deque
from collections.abc import Callable

from receipt_recon.utils.errors import RateLimitError


class SlidingWindowRateLimiter:
    """Allow at most ``max_requests`` per ``window_seconds`` for each key.

    Requests over the limit are rejected at once, never queued.

    Args:
        max_requests: Requests allowed inside one window.
        window_seconds: Window length.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._requests: dict[str, deque[float]] = {}

    def acquire(self, key: str) -> int:
        """Record one request for ``key``.

        Returns:
            Requests still available in the current window.

        Raises:
            RateLimitError: If the window is already full.
        """
        now = self._clock()
        with self._lock:
            timestamps = self._requests.setdefault(key, deque())
            while timestamps and now - timestamps[0] >= self.window_seconds:
                timestamps.popleft()

            if len(timestamps) >= self.max_requests:
                retry_after = self.window_seconds - (now - timestamps[0])
                raise RateLimitError(
                    f"Rate limit exceeded for {key}", retry_after=round(retry_after, 3)
                )

            timestamps.append(now)
            return self.max_requests - len(timestamps)

    def reset(self, key: str) -> None:
        with self._lock:
            self._requests.pop(key, None)
