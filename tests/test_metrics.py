"""Tests for in-process metrics aggregation."""

from receipt_recon.utils.metrics import MetricsCollector


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def setup_method(self) -> None:
        self.metrics = MetricsCollector()

    def test_counter(self) -> None:
        self.metrics.record("ocr_cache_hit")
        self.metrics.record("ocr_cache_hit")
        assert self.metrics.count("ocr_cache_hit") == 2

    def test_aggregates_values(self) -> None:
        for ms in (120.0, 80.0, 100.0):
            self.metrics.record("ocr_provider_success", ms, {"provider": "ocr_space"})
        (stats,) = self.metrics.get_stats("ocr_provider_success")
        assert stats.count == 3
        assert stats.total == 300.0
        assert stats.min == 80.0
        assert stats.max == 120.0
        assert stats.average == 100.0

    def test_tags_split_series(self) -> None:
        self.metrics.record("ocr_provider_failure", tags={"provider": "google_vision"})
        self.metrics.record("ocr_provider_failure", tags={"provider": "ocr_space"})
        assert len(self.metrics.get_stats("ocr_provider_failure")) == 2
        assert self.metrics.count("ocr_provider_failure") == 2

    def test_unknown_metric(self) -> None:
        assert self.metrics.get_stats("missing") == []
        assert self.metrics.count("missing") == 0

    def test_snapshot_and_reset(self) -> None:
        self.metrics.record("ocr_all_failed")
        snapshot = self.metrics.snapshot()
        assert snapshot == [
            {
                "name": "ocr_all_failed",
                "tags": {},
                "count": 1,
                "total": 1,
                "average": 1.0,
                "min": 1,
                "max": 1,
            }
        ]
        self.metrics.reset()
        assert self.metrics.snapshot() == []
