"""Shared test fixtures for the receipt reconciliation test suite."""

from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

import pytest

from receipt_recon.extraction.amounts import AmountCandidate, CurrencyHint
from receipt_recon.ocr.models import OcrResult, ProviderId, SelectedTotal


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _ocr_result(
    value: str | None = "45.00",
    confidence: float = 0.9,
    provider: ProviderId = ProviderId.GOOGLE_VISION,
    text: str = "",
) -> OcrResult:
    """Build an OCR result with a single selected candidate."""
    candidates: tuple[AmountCandidate, ...] = ()
    selected = None
    if value is not None:
        candidate = AmountCandidate(
            raw_text=value,
            value=Decimal(value),
            currency_hint=CurrencyHint.PEN,
            source_offset=0,
            confidence=confidence,
        )
        candidates = (candidate,)
        selected = SelectedTotal.from_candidate(candidate)
    return OcrResult(
        provider=provider,
        text=text or (f"Total: S/ {value}" if value else ""),
        candidates=candidates,
        selected_total=selected,
        operation_numbers=frozenset(),
        account_numbers=frozenset(),
        timestamp=datetime(2024, 3, 15, 13, 45, tzinfo=UTC),
    )


@pytest.fixture
def clock() -> FakeClock:
    """Return a clock that only moves when advanced."""
    return FakeClock()


@pytest.fixture
def make_ocr_result() -> Callable[..., OcrResult]:
    """Return a factory for OCR results with one selected total."""
    return _ocr_result


@pytest.fixture
def yape_receipt() -> str:
    """Return the text of a Yape payment screenshot."""
    return (
        "¡Yapeaste!\n"
        "S/ 86.50\n"
        "Restaurante El Buen Sabor\n"
        "15 mar. 2024 | 01:45 p.m.\n"
        "Nro. de celular: 987654321\n"
        "Nro. de operación: 12345678901234"
    )


@pytest.fixture
def transfer_receipt() -> str:
    """Return a one-line transfer receipt with a total and a subtotal."""
    return "Total: S/ 45.00, Subtotal: S/40.00"


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
