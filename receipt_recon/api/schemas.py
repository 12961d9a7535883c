"""Pydantic request/response schemas for the FastAPI endpoints."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class OrderItemRequest(BaseModel):
    """A single order line supplied with a reconciliation request."""

    id: str
    unit_price: Decimal | None = None
    quantity: int = 1
    extras_price: Decimal = Decimal("0")
    variant: str | None = None


class ReconcileRequest(BaseModel):
    """Request body for reconciling a receipt image reachable by URL."""

    image_url: str
    expected_total: Decimal | None = None
    items: list[OrderItemRequest] = Field(default_factory=list)
    tolerance: float | None = None
    require_exact_match: bool | None = None


class AmountResponse(BaseModel):
    """A monetary amount found in the receipt text."""

    raw: str
    value: str
    currency_hint: str
    offset: int
    confidence: float


class SelectedTotalResponse(BaseModel):
    """The amount chosen as the receipt's total."""

    value: str
    currency_hint: str
    confidence: float


class OcrResponse(BaseModel):
    """Response schema for an OCR request."""

    provider: str
    text: str
    amounts: list[AmountResponse]
    selected_total: SelectedTotalResponse | None = None
    operation_numbers: list[str]
    account_numbers: list[str]
    provider_confidence: float | None = None
    timestamp: str
    processing_time_ms: float = 0.0


class VerdictResponse(BaseModel):
    """Response schema for a reconciliation verdict."""

    ok: bool
    outcome: str
    detected_total: str | None = None
    expected_total: str | None = None
    difference: str | None = None
    absolute_difference: str | None = None
    relative_difference: float | None = None
    notes: list[str]


class ReconcileResponse(BaseModel):
    """Response schema combining the OCR summary and the verdict."""

    ocr: OcrResponse
    verdict: VerdictResponse


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    configured_providers: list[str]
    cache_size: int


class MetricsResponse(BaseModel):
    """Aggregated counters and timings per metric series."""

    metrics: dict[str, Any]
    cache: dict[str, float]
