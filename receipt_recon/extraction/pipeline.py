"""Turns raw provider text into a structured :class:`OcrResult`.

Chains normalization, amount extraction, scoring, total selection and
number classification. Every stage is a pure function, so the whole
pipeline can be exercised on plain strings.
"""

from datetime import UTC, datetime
from typing import Any

from receipt_recon.ocr.models import OcrResult, ProviderId, SelectedTotal
from receipt_recon.text.normalizer import normalize
from receipt_recon.utils.config import ExtractionConfig
from receipt_recon.utils.logger import get_logger

from .amounts import extract_amounts
from .numbers import extract_numbers
from .scoring import score_candidates
from .selector import select_total

logger = get_logger(__name__)


def build_ocr_result(
    provider: ProviderId,
    raw_text: str | None,
    provider_confidence: float | None = None,
    raw: Any = None,
    config: ExtractionConfig | None = None,
    timestamp: datetime | None = None,
) -> OcrResult:
    """Build a normalized OCR result from provider text.

    Args:
        provider: Provider that produced the text.
        raw_text: Unprocessed text returned by the provider.
        provider_confidence: Confidence reported by the provider, if any.
        raw: Provider payload kept for diagnostics.
        config: Extraction settings and scoring weights.
        timestamp: Result creation time. Defaults to now (UTC).

    Returns:
        Immutable OCR result whose selected total, when present, is one
        of its candidates.
    """
    config = config or ExtractionConfig()
    text = normalize(raw_text, config.max_text_length)

    amounts = extract_amounts(text, config.number_min_digits)
    candidates = score_candidates(text, amounts, config.scoring)
    best = select_total(candidates, config.scoring)
    numbers = extract_numbers(text, config)

    logger.info(
        "Extracted %d amount candidates from %s text, selected total: %s",
        len(candidates),
        provider,
        best.value if best else None,
    )

    return OcrResult(
        provider=provider,
        text=text,
        candidates=tuple(candidates),
        selected_total=SelectedTotal.from_candidate(best) if best else None,
        operation_numbers=numbers.operations,
        account_numbers=numbers.accounts,
        timestamp=timestamp or datetime.now(UTC),
        provider_confidence=provider_confidence,
        raw=raw,
    )
