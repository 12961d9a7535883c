"""Application entry point for the receipt reconciliation API server."""

import uvicorn

from receipt_recon.api.app import app
from receipt_recon.utils.config import load_config
from receipt_recon.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def main() -> None:
    """Start the API server on the configured address."""
    config = load_config()
    setup_logging(config.log_level)

    configured = [
        str(p) for p in config.ocr.provider_order if config.ocr.provider(p).is_configured
    ]
    if not configured:
        logger.warning("No OCR provider credentials configured; every OCR call will fail")

    uvicorn.run(app, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
