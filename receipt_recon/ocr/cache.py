"""Time-boxed, content-addressed cache of OCR results."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

V = TypeVar("V")


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class ResultCache(Generic[V]):
    """TTL key-value store keyed by a content hash.

    Expired entries are dropped lazily when read. There is no size
    bound beyond the TTL.

    Args:
        ttl_seconds: Lifetime of each entry.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._store: dict[str, _Entry[V]] = {}

    def get(self, key: str) -> V | None:
        """Return the stored value, or ``None`` if missing or expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if self._clock() > entry.expires_at:
                del self._store[key]
                return None
            return entry.value

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._store[key] = _Entry(value, self._clock() + self.ttl_seconds)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def size(self) -> int:
        """Number of stored entries, including not-yet-evicted expired ones."""
        with self._lock:
            return len(self._store)
