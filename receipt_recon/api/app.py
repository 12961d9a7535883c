"""FastAPI application for the receipt reconciliation API.

Provides REST endpoints for reading receipt images, reconciling them
against order totals, and inspecting cache and provider metrics.
"""

import time
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from receipt_recon import __version__
from receipt_recon.ocr.models import BufferSource, ImageSource, OcrResult, UrlSource
from receipt_recon.ocr.orchestrator import ProviderOrchestrator
from receipt_recon.reconciliation.engine import OrderExpectation, OrderItem, reconcile
from receipt_recon.reconciliation.menu import Menu, load_menu
from receipt_recon.utils.config import AppConfig, load_config
from receipt_recon.utils.errors import (
    AllProvidersFailedError,
    RateLimitError,
    ReconError,
    ValidationError,
)
from receipt_recon.utils.logger import get_logger

from .schemas import (
    HealthResponse,
    MetricsResponse,
    OcrResponse,
    ReconcileRequest,
    ReconcileResponse,
    VerdictResponse,
)

logger = get_logger(__name__)

app = FastAPI(
    title="Receipt Reconciliation API",
    description="Read payment receipts and reconcile them against order totals",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def _get_components() -> tuple[AppConfig, ProviderOrchestrator]:
    """Initialize and return the shared configuration and orchestrator.

    Returns:
        Tuple of (config, orchestrator).
    """
    config = load_config()
    orchestrator = ProviderOrchestrator(config.ocr, extraction=config.extraction)
    return config, orchestrator


@lru_cache(maxsize=4)
def _load_menu(path: str) -> Menu:
    return load_menu(Path(path))


def _get_menu(config: AppConfig) -> Menu | None:
    """Return the configured menu, or ``None`` when none is set."""
    menu_path = config.reconciliation.menu_path
    return _load_menu(str(menu_path)) if menu_path else None


_ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/webp",
    "image/heic",
    "application/octet-stream",
}


def _to_http_error(exc: Exception, config: AppConfig) -> HTTPException:
    """Map a package error onto an HTTP status code."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=exc.message)
    if isinstance(exc, RateLimitError):
        return HTTPException(
            status_code=429,
            detail=exc.message,
            headers={"Retry-After": str(max(1, round(exc.retry_after)))},
        )
    if isinstance(exc, AllProvidersFailedError):
        logger.warning("OCR failed for all providers: %s", exc.details["attempts"])
        return HTTPException(
            status_code=502, detail=config.reconciliation.resend_photo_message
        )
    logger.error("Request failed: %s", exc)
    return HTTPException(status_code=500, detail=str(exc))


async def _read_upload(file: UploadFile) -> BufferSource:
    if file.content_type and file.content_type not in _ALLOWED_CONTENT_TYPES:
        raise ValidationError(f"Unsupported file type: {file.content_type}")
    content = await file.read()
    return BufferSource(content, file.filename or "upload.jpg")


def _ocr_response(result: OcrResult, start_time: float) -> OcrResponse:
    return OcrResponse(
        **result.to_dict(), processing_time_ms=(time.time() - start_time) * 1000
    )


async def _reconcile_source(
    source: ImageSource,
    expectation: OrderExpectation,
    tolerance: float | None,
    require_exact_match: bool | None,
) -> ReconcileResponse:
    start_time = time.time()
    config, orchestrator = _get_components()
    defaults = config.reconciliation

    result = await run_in_threadpool(orchestrator.fetch_text, source)
    verdict = reconcile(
        result,
        expectation,
        tolerance=defaults.tolerance if tolerance is None else tolerance,
        require_exact_match=(
            defaults.require_exact_match
            if require_exact_match is None
            else require_exact_match
        ),
        detected_only_min_confidence=defaults.detected_only_min_confidence,
        menu=_get_menu(config),
    )
    return ReconcileResponse(
        ocr=_ocr_response(result, start_time),
        verdict=VerdictResponse(**verdict.to_dict()),
    )


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return service health and provider availability."""
    config, orchestrator = _get_components()
    configured = [
        str(provider_id)
        for provider_id in config.ocr.provider_order
        if config.ocr.provider(provider_id).is_configured
    ]
    return HealthResponse(
        status="healthy" if configured else "degraded",
        version=__version__,
        configured_providers=configured,
        cache_size=orchestrator.cache.size(),
    )


@app.post("/ocr", response_model=OcrResponse)
async def read_receipt(
    file: Annotated[UploadFile | None, File()] = None,
    image_url: Annotated[str | None, Query()] = None,
) -> OcrResponse:
    """Run OCR on an uploaded receipt image or an image URL.

    Args:
        file: Uploaded receipt photo.
        image_url: Public URL of the receipt photo.

    Returns:
        Normalized text, amount candidates, and the selected total.
    """
    start_time = time.time()
    config, orchestrator = _get_components()
    try:
        if (file is None) == (image_url is None):
            raise ValidationError("Provide exactly one of 'file' or 'image_url'")
        if image_url is not None:
            source = UrlSource(image_url)
        else:
            source = await _read_upload(file)
        result = await run_in_threadpool(orchestrator.fetch_text, source)
        return _ocr_response(result, start_time)
    except ReconError as exc:
        raise _to_http_error(exc, config) from exc


@app.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_url(request: ReconcileRequest) -> ReconcileResponse:
    """Reconcile a receipt reachable by URL against an order.

    Args:
        request: Image URL plus the expected total and/or order items.

    Returns:
        OCR summary and reconciliation verdict.
    """
    config, _ = _get_components()
    try:
        expectation = OrderExpectation(
            expected_total=request.expected_total,
            items=tuple(OrderItem(**item.model_dump()) for item in request.items),
        )
        return await _reconcile_source(
            UrlSource(request.image_url),
            expectation,
            request.tolerance,
            request.require_exact_match,
        )
    except ReconError as exc:
        raise _to_http_error(exc, config) from exc


@app.post("/reconcile/upload", response_model=ReconcileResponse)
async def reconcile_upload(
    file: Annotated[UploadFile, File(...)],
    expected_total: Annotated[Decimal | None, Query()] = None,
    tolerance: Annotated[float | None, Query()] = None,
    require_exact_match: Annotated[bool | None, Query()] = None,
) -> ReconcileResponse:
    """Reconcile an uploaded receipt photo against an expected total.

    Args:
        file: Uploaded receipt photo.
        expected_total: Amount the customer should have paid.
        tolerance: Accepted relative difference, 0 to 1.
        require_exact_match: Reject anything but an exact match.

    Returns:
        OCR summary and reconciliation verdict.
    """
    config, _ = _get_components()
    try:
        source = await _read_upload(file)
        return await _reconcile_source(
            source,
            OrderExpectation(expected_total=expected_total),
            tolerance,
            require_exact_match,
        )
    except ReconError as exc:
        raise _to_http_error(exc, config) from exc


@app.get("/metrics", response_model=MetricsResponse)
async def get_metrics() -> MetricsResponse:
    """Return provider and cache metrics."""
    _, orchestrator = _get_components()
    return MetricsResponse(
        metrics={"series": orchestrator.metrics.snapshot()},
        cache=orchestrator.cache_stats(),
    )


@app.delete("/cache")
async def clear_cache() -> dict[str, str]:
    """Drop every cached OCR result."""
    _, orchestrator = _get_components()
    orchestrator.clear_cache()
    return {"status": "cleared"}
