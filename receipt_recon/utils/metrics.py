"""In-process metrics aggregation for OCR and reconciliation calls."""

import json
import threading
from dataclasses import dataclass
from typing import Any


@dataclass
class MetricStats:
    """Aggregated values for one metric name and tag combination."""

    name: str
    tags: dict[str, str]
    count: int = 0
    total: float = 0.0
    min: float = float("inf")
    max: float = float("-inf")

    @property
    def average(self) -> float:
        return self.total / self.count if self.count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "tags": dict(self.tags),
            "count": self.count,
            "total": self.total,
            "average": round(self.average, 2),
            "min": self.min,
            "max": self.max,
        }


class MetricsCollector:
    """Thread-safe counter and duration aggregator.

    Each ``record`` call updates the count, sum, min and max of the
    series identified by the metric name and its tags.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._series: dict[str, MetricStats] = {}

    def record(
        self, name: str, value: float = 1, tags: dict[str, Any] | None = None
    ) -> None:
        """Add one observation to a metric series.

        Args:
            name: Metric name, e.g. ``ocr_provider_success``.
            value: Observed value; ``1`` for plain counters.
            tags: Optional labels, e.g. ``{"provider": "ocr_space"}``.
        """
        clean_tags = {k: str(v) for k, v in (tags or {}).items()}
        key = f"{name}:{json.dumps(clean_tags, sort_keys=True)}"
        with self._lock:
            stats = self._series.get(key)
            if stats is None:
                stats = MetricStats(name=name, tags=clean_tags)
                self._series[key] = stats
            stats.count += 1
            stats.total += value
            stats.min = min(stats.min, value)
            stats.max = max(stats.max, value)

    def get_stats(self, name: str) -> list[MetricStats]:
        """Return every series recorded under ``name``."""
        with self._lock:
            return [s for s in self._series.values() if s.name == name]

    def count(self, name: str) -> int:
        """Total observations across all tag combinations of ``name``."""
        return sum(s.count for s in self.get_stats(name))

    def snapshot(self) -> list[dict[str, Any]]:
        """Serializable view of all series."""
        with self._lock:
            return [s.to_dict() for s in self._series.values()]

    def reset(self) -> None:
        with self._lock:
            self._series.clear()
