"""Provider fallback, retry, rate limiting and caching around OCR calls.

Providers are tried one at a time in the configured order and the
first success wins, so paid quotas are never spent on racing calls.
"""

import time
from collections.abc import Callable, Mapping, Sequence

from receipt_recon.extraction.pipeline import build_ocr_result
from receipt_recon.utils.config import ExtractionConfig, OCRConfig
from receipt_recon.utils.errors import (
    AllProvidersFailedError,
    ProviderAttempt,
    ProviderError,
    ProviderPermanentError,
    RateLimitError,
    ValidationError,
)
from receipt_recon.utils.logger import get_logger, log_duration
from receipt_recon.utils.metrics import MetricsCollector

from .cache import ResultCache
from .models import BufferSource, ImageSource, OcrResult, ProviderId, ProviderOptions, UrlSource
from .providers import OcrProvider, build_providers
from .rate_limiter import SlidingWindowRateLimiter
from .retry import RetryPolicy, retry_call

logger = get_logger(__name__)


class ProviderOrchestrator:
    """Fetches receipt text from the first OCR provider that succeeds.

    Args:
        config: Provider order, credentials, limits, retry budget, TTL.
        providers: Provider clients by id. Built from ``config`` when omitted.
        cache: Result cache shared across calls.
        metrics: Collector for success, failure and cache-hit counters.
        extraction: Settings for turning provider text into a result.
        sleep: Backoff delay function, injectable for tests.
        clock: Monotonic time source for the cache and rate limiters.
    """

    def __init__(
        self,
        config: OCRConfig,
        providers: Mapping[ProviderId, OcrProvider] | None = None,
        cache: ResultCache[OcrResult] | None = None,
        metrics: MetricsCollector | None = None,
        extraction: ExtractionConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.providers = dict(providers) if providers is not None else build_providers(config)
        self.cache = cache if cache is not None else ResultCache(config.cache_ttl_seconds, clock)
        self.metrics = metrics or MetricsCollector()
        self.extraction = extraction or ExtractionConfig()
        self.retry_policy = RetryPolicy.from_config(config.retry)
        self._sleep = sleep
        self.rate_limiters = {
            provider_id: SlidingWindowRateLimiter(
                config.provider(provider_id).rate_limit_requests,
                config.provider(provider_id).rate_limit_window_seconds,
                clock,
            )
            for provider_id in ProviderId
        }

    def default_options(self) -> ProviderOptions:
        return ProviderOptions(
            language_hints=tuple(self.config.language_hints),
            language=self.config.ocr_space_language,
        )

    def fetch_text(
        self,
        source: ImageSource,
        provider_order: Sequence[ProviderId] | None = None,
        options: ProviderOptions | None = None,
    ) -> OcrResult:
        """Return the OCR result for ``source``.

        Args:
            source: Receipt image as a URL or an in-memory buffer.
            provider_order: Providers to try, first to last. Defaults to
                the configured order.
            options: Language hints forwarded to every provider.

        Returns:
            The cached result for identical content, or a fresh result
            from the first provider that succeeded.

        Raises:
            ValidationError: If ``source`` is not an image source.
            RateLimitError: If every attempted provider was rate limited.
            AllProvidersFailedError: If no provider produced text.
        """
        if not isinstance(source, (UrlSource, BufferSource)):
            raise ValidationError(
                f"Unsupported image source: {type(source).__name__}"
            )

        key = source.content_hash()
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Returning cached OCR result for %s", source.describe())
            self.metrics.record("ocr_cache_hit", 1, {"provider": cached.provider})
            return cached

        order = list(provider_order or self.config.provider_order)
        options = options or self.default_options()
        attempts: list[ProviderAttempt] = []
        rate_limit_errors: list[RateLimitError] = []

        logger.debug("Providers order: %s", ", ".join(order))
        for provider_id in order:
            provider = self.providers.get(provider_id)
            if provider is None or not provider.is_configured:
                logger.warning("Provider %s not configured, skipping", provider_id)
                attempts.append(ProviderAttempt(provider_id, "not configured"))
                continue

            start = time.perf_counter()
            try:
                result = self._call_provider(provider_id, provider, source, options)
            except RateLimitError as exc:
                logger.warning("Provider %s rate limited: %s", provider_id, exc)
                self.metrics.record("ocr_rate_limited", 1, {"provider": provider_id})
                attempts.append(ProviderAttempt(provider_id, exc.message))
                rate_limit_errors.append(exc)
                continue
            except ProviderError as exc:
                logger.warning("Provider %s failed: %s", provider_id, exc.reason)
                self.metrics.record(
                    "ocr_provider_failure",
                    1,
                    {"provider": provider_id, "error": exc.code},
                )
                attempts.append(ProviderAttempt(provider_id, exc.reason))
                continue

            duration_ms = (time.perf_counter() - start) * 1000
            self.cache.set(key, result)
            self.metrics.record("ocr_provider_success", duration_ms, {"provider": provider_id})
            logger.info("OCR succeeded with %s in %.0fms", provider_id, duration_ms)
            return result

        self.metrics.record("ocr_all_failed", 1)
        attempted = [a for a in attempts if a.reason != "not configured"]
        if rate_limit_errors and len(rate_limit_errors) == len(attempted):
            retry_after = max(e.retry_after for e in rate_limit_errors)
            raise RateLimitError(
                "All available OCR providers are rate limited", retry_after=retry_after
            )

        logger.error("OCR failed after trying providers: %s", ", ".join(order))
        raise AllProvidersFailedError(attempts)

    def _call_provider(
        self,
        provider_id: ProviderId,
        provider: OcrProvider,
        source: ImageSource,
        options: ProviderOptions,
    ) -> OcrResult:
        self.rate_limiters[provider_id].acquire(str(provider_id))

        with log_duration(logger, f"{provider_id} recognize"):
            response = retry_call(
                lambda: provider.recognize(source, options),
                self.retry_policy,
                sleep=self._sleep,
            )

        if not response.text or not response.text.strip():
            raise ProviderPermanentError(provider_id, "no text found")

        return build_ocr_result(
            provider_id,
            response.text,
            provider_confidence=response.confidence,
            raw=response.raw,
            config=self.extraction,
        )

    def read_url(self, url: str, **kwargs) -> OcrResult:
        """Shortcut for :meth:`fetch_text` with a :class:`UrlSource`."""
        return self.fetch_text(UrlSource(url), **kwargs)

    def read_buffer(self, data: bytes, filename: str = "upload.jpg", **kwargs) -> OcrResult:
        """Shortcut for :meth:`fetch_text` with a :class:`BufferSource`."""
        return self.fetch_text(BufferSource(data, filename), **kwargs)

    def clear_cache(self) -> None:
        logger.info("Clearing OCR cache")
        self.cache.clear()

    def cache_stats(self) -> dict[str, float]:
        return {"size": self.cache.size(), "ttl_seconds": self.cache.ttl_seconds}
