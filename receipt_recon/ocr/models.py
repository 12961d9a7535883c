"""Data types exchanged between OCR providers, the orchestrator and callers."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any
from urllib.parse import urlparse

from receipt_recon.extraction.amounts import AmountCandidate, CurrencyHint
from receipt_recon.utils.errors import ValidationError


class ProviderId(StrEnum):
    """Supported external OCR providers."""

    GOOGLE_VISION = "google_vision"
    OCR_SPACE = "ocr_space"


@dataclass(frozen=True)
class UrlSource:
    """A receipt image reachable over HTTP(S)."""

    url: str

    def __post_init__(self) -> None:
        if not isinstance(self.url, str) or not self.url.strip():
            raise ValidationError("Image URL must be a non-empty string")
        parsed = urlparse(self.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(f"Invalid image URL: {self.url[:100]}")

    def content_hash(self) -> str:
        return "url:" + hashlib.sha256(self.url.encode("utf-8")).hexdigest()

    def describe(self) -> str:
        return self.url[:100]


@dataclass(frozen=True)
class BufferSource:
    """A receipt image held in memory, e.g. an uploaded WhatsApp photo."""

    data: bytes
    filename: str = "upload.jpg"

    def __post_init__(self) -> None:
        if not isinstance(self.data, (bytes, bytearray)):
            raise ValidationError(
                f"Image buffer must be bytes, got {type(self.data).__name__}"
            )
        if len(self.data) == 0:
            raise ValidationError("Empty image buffer")
        if not isinstance(self.filename, str) or not self.filename:
            raise ValidationError("Image filename must be a non-empty string")

    def content_hash(self) -> str:
        return "buffer:" + hashlib.sha256(self.data).hexdigest()

    def describe(self) -> str:
        return f"{self.filename} ({len(self.data)} bytes)"


ImageSource = UrlSource | BufferSource


@dataclass(frozen=True)
class ProviderOptions:
    """Per-call hints forwarded to every provider in the fallback order."""

    language_hints: tuple[str, ...] = ("es",)
    language: str = "spa"


@dataclass(frozen=True)
class ProviderResponse:
    """Raw text returned by one provider call."""

    text: str
    confidence: float | None = None
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class SelectedTotal:
    """The amount chosen as the receipt's paid total."""

    value: Decimal
    currency_hint: CurrencyHint
    confidence: float

    @classmethod
    def from_candidate(cls, candidate: AmountCandidate) -> "SelectedTotal":
        return cls(
            value=candidate.value,
            currency_hint=candidate.currency_hint,
            confidence=candidate.confidence,
        )


@dataclass(frozen=True)
class OcrResult:
    """Normalized OCR output for one receipt image."""

    provider: ProviderId
    text: str
    candidates: tuple[AmountCandidate, ...]
    selected_total: SelectedTotal | None
    operation_numbers: frozenset[str]
    account_numbers: frozenset[str]
    timestamp: datetime
    provider_confidence: float | None = None
    raw: Any = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation used by the API and CLI."""
        selected = self.selected_total
        return {
            "provider": str(self.provider),
            "text": self.text,
            "amounts": [
                {
                    "raw": c.raw_text,
                    "value": str(c.value),
                    "currency_hint": str(c.currency_hint),
                    "offset": c.source_offset,
                    "confidence": c.confidence,
                }
                for c in self.candidates
            ],
            "selected_total": (
                {
                    "value": str(selected.value),
                    "currency_hint": str(selected.currency_hint),
                    "confidence": selected.confidence,
                }
                if selected
                else None
            ),
            "operation_numbers": sorted(self.operation_numbers),
            "account_numbers": sorted(self.account_numbers),
            "provider_confidence": self.provider_confidence,
            "timestamp": self.timestamp.isoformat(),
        }
