"""Exception hierarchy for OCR retrieval and receipt reconciliation.

Only structurally invalid input and provider failures are exceptions.
Receipts without a readable amount are a normal reconciliation outcome.
"""

from dataclasses import dataclass
from typing import Any


class ReconError(Exception):
    """Base class for all errors raised by this package.

    Args:
        message: Human-readable description.
        code: Stable machine-readable error code.
        details: Extra diagnostics for logs and API responses.
    """

    code = "RECON_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}


class ValidationError(ReconError):
    """Malformed input to a public entry point."""

    code = "VALIDATION_ERROR"


class RateLimitError(ReconError):
    """A sliding-window request limit was exceeded.

    Args:
        message: Human-readable description.
        retry_after: Seconds until the oldest request leaves the window.
    """

    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str, retry_after: float = 0.0) -> None:
        super().__init__(message, details={"retry_after": retry_after})
        self.retry_after = retry_after


class ProviderError(ReconError):
    """A call to an OCR provider failed.

    Args:
        provider: Identifier of the provider that failed.
        message: Description of the failure.
        status_code: HTTP status returned by the provider, if any.
    """

    code = "PROVIDER_ERROR"

    def __init__(
        self, provider: str, message: str, status_code: int | None = None
    ) -> None:
        super().__init__(
            f"{provider}: {message}",
            details={"provider": str(provider), "status_code": status_code},
        )
        self.provider = provider
        self.reason = message
        self.status_code = status_code


class ProviderTransientError(ProviderError):
    """Timeout, refused connection or 5xx response; safe to retry."""

    code = "PROVIDER_TRANSIENT"


class ProviderPermanentError(ProviderError):
    """Not configured, rejected credentials, or no text found; never retried."""

    code = "PROVIDER_PERMANENT"


@dataclass(frozen=True)
class ProviderAttempt:
    """One failed provider attempt inside a fallback sequence."""

    provider: str
    reason: str


class AllProvidersFailedError(ReconError):
    """Every provider in the fallback order failed or was unavailable.

    Args:
        attempts: Per-provider failure reasons, in the order tried.
    """

    code = "OCR_ALL_PROVIDERS_FAILED"

    def __init__(self, attempts: list[ProviderAttempt]) -> None:
        tried = ", ".join(str(a.provider) for a in attempts) or "none"
        super().__init__(
            f"No OCR provider succeeded. Providers tried: {tried}",
            details={
                "attempts": [
                    {"provider": str(a.provider), "reason": a.reason}
                    for a in attempts
                ]
            },
        )
        self.attempts = list(attempts)
