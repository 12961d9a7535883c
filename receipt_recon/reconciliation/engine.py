"""Reconciliation of OCR-detected receipt totals against order totals.

Produces a verdict with human-readable notes that an agent can show to
staff. Missing or unreadable amounts are verdicts, not exceptions.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Any

from receipt_recon.ocr.models import OcrResult
from receipt_recon.utils.errors import ValidationError
from receipt_recon.utils.logger import get_logger

from .menu import Menu
from .money import CENT, to_decimal

logger = get_logger(__name__)


class Outcome(StrEnum):
    """Classification of a reconciliation."""

    MATCH = "match"
    CLOSE = "close"
    MISMATCH = "mismatch"
    DETECTED_ONLY = "detected_only"
    LOW_CONFIDENCE_DETECTED = "low_confidence_detected"
    NO_AMOUNT_DETECTED = "no_amount_detected"

    @property
    def ok(self) -> bool:
        return self not in (Outcome.MISMATCH, Outcome.NO_AMOUNT_DETECTED)


@dataclass(frozen=True)
class OrderItem:
    """One line of an order as supplied by the order store."""

    id: str
    unit_price: Decimal | None = None
    quantity: int = 1
    extras_price: Decimal = Decimal("0")
    variant: str | None = None

    def __post_init__(self) -> None:
        if self.unit_price is not None:
            object.__setattr__(
                self, "unit_price", to_decimal(self.unit_price, f"unit_price of {self.id}")
            )
        object.__setattr__(
            self, "extras_price", to_decimal(self.extras_price, f"extras_price of {self.id}")
        )
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValidationError(f"quantity of {self.id} must be an integer")
        if self.quantity < 0:
            raise ValidationError(f"quantity of {self.id} must not be negative")

    def priced_at(self, unit_price: Decimal) -> Decimal:
        return unit_price * self.quantity + self.extras_price

    @property
    def line_total(self) -> Decimal | None:
        if self.unit_price is None:
            return None
        return self.priced_at(self.unit_price)


@dataclass(frozen=True)
class OrderExpectation:
    """What the customer is expected to have paid."""

    expected_total: Decimal | None = None
    items: tuple[OrderItem, ...] = ()

    def __post_init__(self) -> None:
        if self.expected_total is not None:
            object.__setattr__(
                self, "expected_total", to_decimal(self.expected_total, "expected_total")
            )
        object.__setattr__(self, "items", tuple(self.items))


@dataclass(frozen=True)
class ReconciliationVerdict:
    """Result of comparing a receipt total with an order total."""

    ok: bool
    outcome: Outcome
    detected_total: Decimal | None = None
    expected_total: Decimal | None = None
    difference: Decimal | None = None
    absolute_difference: Decimal | None = None
    relative_difference: float | None = None
    notes: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        def fmt(value: Decimal | None) -> str | None:
            return str(value) if value is not None else None

        return {
            "ok": self.ok,
            "outcome": str(self.outcome),
            "detected_total": fmt(self.detected_total),
            "expected_total": fmt(self.expected_total),
            "difference": fmt(self.difference),
            "absolute_difference": fmt(self.absolute_difference),
            "relative_difference": self.relative_difference,
            "notes": list(self.notes),
        }


def _unit_price(item: OrderItem, menu: Menu | None) -> tuple[Decimal | None, bool]:
    if item.unit_price is not None:
        return item.unit_price, False
    product = menu.find(item.id) if menu is not None else None
    if product is None:
        return None, False
    price = product.price_for(item.variant)
    return price, price is not None


def resolve_expected_total(
    expectation: OrderExpectation, notes: list[str], menu: Menu | None = None
) -> Decimal | None:
    """Use the supplied total, or sum item prices when all are known.

    Items without a unit price are priced from ``menu`` by id or SKU,
    honouring the item's variant. If any item stays unpriced the
    expected total is undefined.

    Args:
        expectation: Order data from the order store.
        notes: Receives an explanation of how the total was resolved.
        menu: Optional restaurant menu for unpriced items.

    Returns:
        Expected total rounded to cents, or ``None`` if unknown.
    """
    if expectation.expected_total is not None:
        notes.append(f"Expected total S/{expectation.expected_total:.2f} supplied with the order.")
        return expectation.expected_total.quantize(CENT)

    if not expectation.items:
        notes.append("No expected total or order items were provided.")
        return None

    total = Decimal("0")
    missing: list[str] = []
    from_menu = 0
    for item in expectation.items:
        unit, menu_priced = _unit_price(item, menu)
        if unit is None:
            missing.append(item.id)
            continue
        total += item.priced_at(unit)
        from_menu += menu_priced

    if missing:
        notes.append(f"Unit price missing for items: {', '.join(missing)}.")
        return None

    total = total.quantize(CENT)
    notes.append(f"Expected total S/{total:.2f} computed from {len(expectation.items)} order items.")
    if from_menu:
        notes.append(f"{from_menu} item prices were taken from the menu.")
    return total


def reconcile(
    ocr_result: OcrResult,
    expectation: OrderExpectation,
    tolerance: float = 0.06,
    require_exact_match: bool = False,
    detected_only_min_confidence: float = 0.7,
    menu: Menu | None = None,
) -> ReconciliationVerdict:
    """Decide whether a receipt's detected total pays for an order.

    Args:
        ocr_result: Normalized OCR result of the receipt.
        expectation: Expected total and/or priced order items.
        tolerance: Accepted relative difference, between 0 and 1.
        require_exact_match: Reject anything but an exact match.
        detected_only_min_confidence: Confidence needed to report an
            uncompared total as ``detected_only``.
        menu: Restaurant menu used to price items without a unit price.

    Returns:
        Verdict with outcome, differences and explanatory notes.

    Raises:
        ValidationError: On wrong argument types or a tolerance outside [0, 1].
    """
    if not isinstance(ocr_result, OcrResult):
        raise ValidationError(f"ocr_result must be an OcrResult, got {type(ocr_result).__name__}")
    if not isinstance(expectation, OrderExpectation):
        raise ValidationError(
            f"expectation must be an OrderExpectation, got {type(expectation).__name__}"
        )
    if isinstance(tolerance, bool) or not isinstance(tolerance, (int, float)):
        raise ValidationError("tolerance must be a number")
    if not 0 <= tolerance <= 1:
        raise ValidationError(f"Tolerance must be between 0 and 1, got {tolerance}")
    if menu is not None and not isinstance(menu, Menu):
        raise ValidationError(f"menu must be a Menu, got {type(menu).__name__}")

    notes: list[str] = []
    expected = resolve_expected_total(expectation, notes, menu)
    selected = ocr_result.selected_total

    if selected is None:
        notes.append("No amount was detected on the receipt.")
        return _finish(Outcome.NO_AMOUNT_DETECTED, notes, expected_total=expected)

    detected = selected.value

    if expected is None:
        if selected.confidence >= detected_only_min_confidence:
            outcome = Outcome.DETECTED_ONLY
            notes.append(
                f"No expected total to compare; detected S/{detected:.2f} "
                f"with confidence {selected.confidence:.2f}."
            )
        else:
            outcome = Outcome.LOW_CONFIDENCE_DETECTED
            notes.append(
                f"No expected total to compare; detected S/{detected:.2f} "
                f"with low confidence {selected.confidence:.2f}, please review manually."
            )
        return _finish(outcome, notes, detected_total=detected)

    difference = (detected - expected).quantize(CENT)
    absolute = abs(difference)
    relative = float(absolute / expected) if expected > 0 else None

    if difference == 0:
        outcome = Outcome.MATCH
        notes.append("Detected amount matches the expected total exactly.")
    elif relative is not None and relative <= tolerance:
        outcome = Outcome.CLOSE
        notes.append(
            f"Detected S/{detected:.2f} is within {tolerance:.0%} of the expected "
            f"S/{expected:.2f} (difference S/{difference:.2f})."
        )
    else:
        outcome = Outcome.MISMATCH
        pct = f"{relative:.2%}" if relative is not None else "n/a"
        notes.append(
            f"Detected S/{detected:.2f} differs from the expected S/{expected:.2f} "
            f"by S/{difference:.2f} ({pct})."
        )

    if require_exact_match and outcome != Outcome.MATCH:
        outcome = Outcome.MISMATCH
        notes.append("An exact match is required by configuration.")

    return _finish(
        outcome,
        notes,
        detected_total=detected,
        expected_total=expected,
        difference=difference,
        absolute_difference=absolute,
        relative_difference=relative,
    )


def _finish(outcome: Outcome, notes: list[str], **values: Any) -> ReconciliationVerdict:
    verdict = ReconciliationVerdict(ok=outcome.ok, outcome=outcome, notes=tuple(notes), **values)
    logger.info("Receipt reconciliation: outcome=%s, ok=%s", verdict.outcome, verdict.ok)
    return verdict


def extract_most_likely_total(ocr_result: OcrResult) -> Decimal | None:
    """Return the selected total, else the largest candidate, else ``None``."""
    if ocr_result.selected_total is not None:
        return ocr_result.selected_total.value
    if ocr_result.candidates:
        return max(c.value for c in ocr_result.candidates)
    return None
