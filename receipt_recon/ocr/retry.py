"""Exponential backoff for transient provider failures."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from receipt_recon.utils.config import RetryConfig
from receipt_recon.utils.errors import ProviderTransientError
from receipt_recon.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry and how long to wait in between."""

    max_retries: int = 4
    initial_delay: float = 0.2
    backoff_multiplier: float = 2.0
    max_delay: float = 10.0

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            initial_delay=config.initial_delay_seconds,
            backoff_multiplier=config.backoff_multiplier,
            max_delay=config.max_delay_seconds,
        )


def is_transient(exc: Exception) -> bool:
    return isinstance(exc, ProviderTransientError)


def retry_call(
    fn: Callable[[], T],
    policy: RetryPolicy | None = None,
    should_retry: Callable[[Exception], bool] = is_transient,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it succeeds or the retry budget is spent.

    Args:
        fn: Zero-argument callable performing one attempt.
        policy: Retry budget and backoff shape.
        should_retry: Decides whether a raised error is worth retrying.
        sleep: Delay function, injectable for tests.

    Returns:
        The first successful result of ``fn``.

    Raises:
        Exception: The last error raised by ``fn`` once retries are
            exhausted, or the first error ``should_retry`` rejects.
    """
    policy = policy or RetryPolicy()
    delay = policy.initial_delay

    attempt = 0

    while True:
        try:
            return fn()
        except Exception as exc:
            if attempt >= policy.max_retries or not should_retry(exc):
                raise
            attempt += 1
            logger.warning(
                "Attempt %d/%d failed, retrying in %.2fs: %s",
                attempt,
                policy.max_retries + 1,
                delay,
                exc,
            )
            sleep(delay)
            delay = min(delay * policy.backoff_multiplier, policy.max_delay)
