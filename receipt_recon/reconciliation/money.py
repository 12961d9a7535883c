"""Decimal helpers shared by order pricing and reconciliation."""

from decimal import Decimal, InvalidOperation
from typing import Any

from receipt_recon.utils.errors import ValidationError

CENT = Decimal("0.01")


def to_decimal(value: Any, name: str) -> Decimal:
    """Convert a price-like value to :class:`Decimal`.

    Raises:
        ValidationError: If ``value`` is not a finite non-negative number.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number, got bool")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{name} is not a number: {value!r}") from exc
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{name} must be a finite non-negative number: {value!r}")
    return amount
