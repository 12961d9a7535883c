"""Configuration management for the receipt reconciliation engine.

Loads and validates YAML configuration with sensible defaults for OCR
providers, amount extraction heuristics, and reconciliation tolerance.
Provider credentials may also come from the environment, read once at
load time.
"""

import logging
import os
from collections.abc import Mapping
from decimal import Decimal
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from receipt_recon.ocr.models import ProviderId

logger = logging.getLogger(__name__)

_CREDENTIAL_ENV_VARS: dict[ProviderId, str] = {
    ProviderId.GOOGLE_VISION: "GOOGLE_API_KEY",
    ProviderId.OCR_SPACE: "OCR_API_KEY",
}


class ProviderConfig(BaseModel):
    """Credentials and limits for a single OCR provider."""

    api_key: str | None = None
    timeout_seconds: float = Field(default=12.0, gt=0)
    rate_limit_requests: int = Field(default=100, ge=1)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


class RetryConfig(BaseModel):
    """Exponential backoff budget for transient provider failures."""

    max_retries: int = Field(default=4, ge=0)
    initial_delay_seconds: float = Field(default=0.2, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    max_delay_seconds: float = Field(default=10.0, ge=0)


class OCRConfig(BaseModel):
    """Configuration for provider fallback, retries, and result caching."""

    provider_order: list[ProviderId] = Field(
        default_factory=lambda: [ProviderId.GOOGLE_VISION, ProviderId.OCR_SPACE]
    )
    google_vision: ProviderConfig = Field(
        default_factory=lambda: ProviderConfig(rate_limit_requests=100)
    )
    ocr_space: ProviderConfig = Field(
        default_factory=lambda: ProviderConfig(rate_limit_requests=50)
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)
    language_hints: list[str] = Field(default_factory=lambda: ["es"])
    ocr_space_language: str = "spa"
    cache_ttl_seconds: float = Field(default=300.0, gt=0)

    def provider(self, provider_id: ProviderId) -> ProviderConfig:
        """Return the settings block for ``provider_id``."""
        if provider_id == ProviderId.GOOGLE_VISION:
            return self.google_vision
        return self.ocr_space


class ScoringConfig(BaseModel):
    """Tunable weights for amount confidence scoring and total selection."""

    base_score: float = 0.5
    large_amount_threshold: Decimal = Decimal("50")
    large_amount_bonus: float = 0.2
    currency_bonus: float = 0.15
    keyword_bonus: float = 0.25
    subtotal_penalty: float = 0.15
    window_radius: int = Field(default=40, ge=0)
    total_keywords: list[str] = Field(
        default_factory=lambda: ["total", "importe", "monto", "pagado", "saldo"]
    )
    subtotal_keywords: list[str] = Field(default_factory=lambda: ["subtotal"])
    keyword_value_weight: float = 0.001
    fallback_confidence_offset: float = 0.5


class ExtractionConfig(BaseModel):
    """Configuration for text normalization and number classification."""

    max_text_length: int = Field(default=10_000, ge=1)
    number_min_digits: int = Field(default=6, ge=1)
    number_max_digits: int = Field(default=20, ge=1)
    account_min_digits: int = Field(default=9, ge=1)
    account_max_digits: int = Field(default=11, ge=1)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)


class ReconciliationConfig(BaseModel):
    """Defaults for comparing detected totals with expected order totals."""

    tolerance: float = Field(default=0.06, ge=0, le=1)
    require_exact_match: bool = False
    detected_only_min_confidence: float = Field(default=0.7, ge=0, le=1)
    menu_path: Path | None = None
    resend_photo_message: str = (
        "No pudimos leer el monto de tu comprobante. "
        "¿Puedes enviarnos una foto más clara?"
    )


class ServerConfig(BaseModel):
    """Bind address for the HTTP API."""

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)


class AppConfig(BaseModel):
    """Top-level application configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    reconciliation: ReconciliationConfig = Field(default_factory=ReconciliationConfig)
    log_level: str = "INFO"


def _apply_env_credentials(config: AppConfig, environ: Mapping[str, str]) -> None:
    """Fill missing provider API keys from environment variables."""
    for provider_id, var in _CREDENTIAL_ENV_VARS.items():
        provider_config = config.ocr.provider(provider_id)
        if not provider_config.is_configured and environ.get(var):
            provider_config.api_key = environ[var]
            logger.debug("Using %s for %s credentials", var, provider_id)


def load_config(
    path: Path | None = None, environ: Mapping[str, str] | None = None
) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.
        environ: Environment used for credential fallback.
            Defaults to ``os.environ``.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")
    if environ is None:
        environ = os.environ

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        config = AppConfig(**raw)
    else:
        logger.info("No config file found at %s, using defaults", path)
        config = AppConfig()

    _apply_env_credentials(config, environ)
    return config
