"""Tests for provider fallback, caching and rate limiting."""

from decimal import Decimal

import pytest

from receipt_recon.ocr.cache import ResultCache
from receipt_recon.ocr.models import BufferSource, ProviderId, ProviderResponse, UrlSource
from receipt_recon.ocr.orchestrator import ProviderOrchestrator
from receipt_recon.utils.config import OCRConfig, ProviderConfig, RetryConfig
from receipt_recon.utils.errors import (
    AllProvidersFailedError,
    ProviderPermanentError,
    ProviderTransientError,
    RateLimitError,
    ValidationError,
)
from receipt_recon.utils.metrics import MetricsCollector

URL = "https://example.com/receipt.jpg"


class FakeProvider:
    """Provider double returning queued responses or raising queued errors."""

    def __init__(self, provider_id: ProviderId, outcomes: list, configured: bool = True) -> None:
        self.provider_id = provider_id
        self.outcomes = list(outcomes)
        self.configured = configured
        self.calls = 0

    @property
    def is_configured(self) -> bool:
        return self.configured

    def recognize(self, source, options) -> ProviderResponse:
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return ProviderResponse(text=outcome, confidence=0.9)


def _config(**overrides) -> OCRConfig:
    return OCRConfig(
        google_vision=ProviderConfig(api_key="g", rate_limit_requests=2),
        ocr_space=ProviderConfig(api_key="o", rate_limit_requests=2),
        retry=RetryConfig(max_retries=2),
        **overrides,
    )


class TestProviderOrchestrator:
    """Tests for ProviderOrchestrator.fetch_text."""

    @pytest.fixture(autouse=True)
    def _setup(self, clock) -> None:
        self.clock = clock
        self.delays: list[float] = []
        self.metrics = MetricsCollector()

    def _orchestrator(self, google: FakeProvider, ocr_space: FakeProvider, **kwargs) -> ProviderOrchestrator:
        return ProviderOrchestrator(
            kwargs.pop("config", _config()),
            providers={ProviderId.GOOGLE_VISION: google, ProviderId.OCR_SPACE: ocr_space},
            metrics=self.metrics,
            sleep=self.delays.append,
            clock=self.clock,
            **kwargs,
        )

    def test_first_provider_success(self) -> None:
        google = FakeProvider(ProviderId.GOOGLE_VISION, ["Total: S/ 45.00"])
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["Total: S/ 99.00"])
        result = self._orchestrator(google, ocr_space).fetch_text(UrlSource(URL))

        assert result.provider == ProviderId.GOOGLE_VISION
        assert result.selected_total.value == Decimal("45.00")
        assert result.provider_confidence == 0.9
        assert ocr_space.calls == 0
        assert self.metrics.count("ocr_provider_success") == 1

    def test_falls_back_on_permanent_error(self) -> None:
        google = FakeProvider(
            ProviderId.GOOGLE_VISION, [ProviderPermanentError("google_vision", "auth failure")]
        )
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["Monto S/ 30.00"])
        result = self._orchestrator(google, ocr_space).fetch_text(UrlSource(URL))

        assert result.provider == ProviderId.OCR_SPACE
        assert google.calls == 1
        assert self.metrics.count("ocr_provider_failure") == 1

    def test_transient_errors_retried_before_fallback(self) -> None:
        google = FakeProvider(
            ProviderId.GOOGLE_VISION, [ProviderTransientError("google_vision", "timeout")]
        )
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["Total 12.50"])
        result = self._orchestrator(google, ocr_space).fetch_text(UrlSource(URL))

        assert result.provider == ProviderId.OCR_SPACE
        assert google.calls == 3
        assert self.delays == [0.2, 0.4]

    def test_transient_error_recovers(self) -> None:
        google = FakeProvider(
            ProviderId.GOOGLE_VISION,
            [ProviderTransientError("google_vision", "server error 503"), "Total S/ 20.00"],
        )
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["unused"])
        result = self._orchestrator(google, ocr_space).fetch_text(UrlSource(URL))

        assert result.provider == ProviderId.GOOGLE_VISION
        assert google.calls == 2
        assert ocr_space.calls == 0

    def test_empty_text_falls_back(self) -> None:
        google = FakeProvider(ProviderId.GOOGLE_VISION, ["   "])
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["Total S/ 20.00"])
        result = self._orchestrator(google, ocr_space).fetch_text(UrlSource(URL))
        assert result.provider == ProviderId.OCR_SPACE

    def test_skips_unconfigured_provider(self) -> None:
        google = FakeProvider(ProviderId.GOOGLE_VISION, ["unused"], configured=False)
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["Total S/ 20.00"])
        result = self._orchestrator(google, ocr_space).fetch_text(UrlSource(URL))

        assert result.provider == ProviderId.OCR_SPACE
        assert google.calls == 0

    def test_all_failed(self) -> None:
        google = FakeProvider(
            ProviderId.GOOGLE_VISION, [ProviderPermanentError("google_vision", "auth failure")]
        )
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, [""])
        with pytest.raises(AllProvidersFailedError) as exc_info:
            self._orchestrator(google, ocr_space).fetch_text(UrlSource(URL))

        reasons = [(a.provider, a.reason) for a in exc_info.value.attempts]
        assert reasons == [
            (ProviderId.GOOGLE_VISION, "auth failure"),
            (ProviderId.OCR_SPACE, "no text found"),
        ]
        assert self.metrics.count("ocr_all_failed") == 1

    def test_none_configured(self) -> None:
        google = FakeProvider(ProviderId.GOOGLE_VISION, ["x"], configured=False)
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["x"], configured=False)
        with pytest.raises(AllProvidersFailedError) as exc_info:
            self._orchestrator(google, ocr_space).fetch_text(UrlSource(URL))
        assert all(a.reason == "not configured" for a in exc_info.value.attempts)

    def test_cache_hit_returns_same_result(self) -> None:
        google = FakeProvider(ProviderId.GOOGLE_VISION, ["Total S/ 45.00"])
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["unused"])
        orchestrator = self._orchestrator(google, ocr_space)

        first = orchestrator.fetch_text(BufferSource(b"photo"))
        second = orchestrator.fetch_text(BufferSource(b"photo", "other-name.jpg"))

        assert second is first
        assert google.calls == 1
        assert self.metrics.count("ocr_cache_hit") == 1

    def test_cache_expires(self) -> None:
        google = FakeProvider(ProviderId.GOOGLE_VISION, ["Total S/ 45.00"])
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["unused"])
        orchestrator = self._orchestrator(google, ocr_space)

        orchestrator.fetch_text(UrlSource(URL))
        self.clock.advance(301)
        orchestrator.fetch_text(UrlSource(URL))
        assert google.calls == 2

    def test_rate_limited_provider_falls_back(self) -> None:
        google = FakeProvider(ProviderId.GOOGLE_VISION, ["Total S/ 45.00"])
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["Total S/ 45.00"])
        orchestrator = self._orchestrator(google, ocr_space)

        for i in range(3):
            result = orchestrator.fetch_text(UrlSource(f"{URL}?n={i}"))

        assert result.provider == ProviderId.OCR_SPACE
        assert google.calls == 2
        assert self.metrics.count("ocr_rate_limited") == 1

    def test_all_rate_limited(self) -> None:
        google = FakeProvider(ProviderId.GOOGLE_VISION, ["Total S/ 45.00"])
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["Total S/ 45.00"])
        orchestrator = self._orchestrator(google, ocr_space)

        for i in range(4):
            orchestrator.fetch_text(UrlSource(f"{URL}?n={i}"))
        self.clock.advance(10)
        with pytest.raises(RateLimitError) as exc_info:
            orchestrator.fetch_text(UrlSource(f"{URL}?n=last"))
        assert exc_info.value.retry_after == 50

    def test_custom_provider_order(self) -> None:
        google = FakeProvider(ProviderId.GOOGLE_VISION, ["Total S/ 45.00"])
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["Total S/ 30.00"])
        result = self._orchestrator(google, ocr_space).fetch_text(
            UrlSource(URL), provider_order=[ProviderId.OCR_SPACE]
        )
        assert result.provider == ProviderId.OCR_SPACE
        assert google.calls == 0

    def test_invalid_source(self) -> None:
        google = FakeProvider(ProviderId.GOOGLE_VISION, ["x"])
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["x"])
        with pytest.raises(ValidationError):
            self._orchestrator(google, ocr_space).fetch_text(URL)  # type: ignore[arg-type]

    def test_read_helpers_and_cache_management(self) -> None:
        google = FakeProvider(ProviderId.GOOGLE_VISION, ["Total S/ 45.00"])
        ocr_space = FakeProvider(ProviderId.OCR_SPACE, ["unused"])
        cache: ResultCache = ResultCache(60, clock=self.clock)
        orchestrator = self._orchestrator(google, ocr_space, cache=cache)

        orchestrator.read_url(URL)
        orchestrator.read_buffer(b"photo", "yape.jpg")
        assert orchestrator.cache_stats() == {"size": 2, "ttl_seconds": 60}

        orchestrator.clear_cache()
        assert orchestrator.cache_stats()["size"] == 0


class TestImageSources:
    """Tests for UrlSource and BufferSource validation."""

    @pytest.mark.parametrize("url", ["", "ftp://example.com/a.jpg", "not a url", "https://"])
    def test_invalid_urls(self, url: str) -> None:
        with pytest.raises(ValidationError):
            UrlSource(url)

    def test_empty_buffer(self) -> None:
        with pytest.raises(ValidationError):
            BufferSource(b"")

    def test_hash_depends_on_content_only(self) -> None:
        assert BufferSource(b"a", "x.jpg").content_hash() == BufferSource(b"a", "y.jpg").content_hash()
        assert BufferSource(b"a").content_hash() != BufferSource(b"b").content_hash()
        assert UrlSource(URL).content_hash().startswith("url:")
        assert BufferSource(b"a").content_hash().startswith("buffer:")
