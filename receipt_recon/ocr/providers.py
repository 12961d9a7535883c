"""HTTP clients for the external OCR providers.

Each client performs a single request and classifies failures as
transient (worth retrying) or permanent (move on to the next provider).
Retries, rate limiting and fallback belong to the orchestrator.
"""

import base64
from typing import Any, Protocol

import requests

from receipt_recon.utils.config import OCRConfig, ProviderConfig
from receipt_recon.utils.errors import ProviderPermanentError, ProviderTransientError
from receipt_recon.utils.logger import get_logger

from .models import BufferSource, ImageSource, ProviderId, ProviderOptions, ProviderResponse, UrlSource

logger = get_logger(__name__)

GOOGLE_VISION_ENDPOINT = "https://vision.googleapis.com/v1/images:annotate"
OCR_SPACE_ENDPOINT = "https://api.ocr.space/parse/image"

# OCR.Space exit codes: 1 parsed, 2 partially parsed, 3 parsed with warnings
_OCR_SPACE_SUCCESS_CODES = {1, 2, 3}


class OcrProvider(Protocol):
    """Interface every OCR provider client implements."""

    provider_id: ProviderId

    @property
    def is_configured(self) -> bool: ...

    def recognize(self, source: ImageSource, options: ProviderOptions) -> ProviderResponse: ...


def _post(
    provider: ProviderId,
    session: requests.Session,
    url: str,
    timeout: float,
    **kwargs: Any,
) -> dict[str, Any]:
    """POST to a provider and return its JSON body, classifying failures."""
    try:
        response = session.post(url, timeout=timeout, **kwargs)
    except requests.Timeout as exc:
        raise ProviderTransientError(provider, f"timeout: {exc}") from exc
    except requests.ConnectionError as exc:
        raise ProviderTransientError(provider, f"connection error: {exc}") from exc

    status = response.status_code
    if status >= 500:
        raise ProviderTransientError(provider, f"server error {status}", status)
    if status in (401, 403):
        raise ProviderPermanentError(provider, "auth failure", status)
    if status >= 400:
        raise ProviderPermanentError(provider, f"request rejected with {status}", status)

    try:
        data = response.json()
    except ValueError as exc:
        raise ProviderPermanentError(provider, "malformed JSON response", status) from exc
    if not isinstance(data, dict):
        raise ProviderPermanentError(provider, "unexpected response shape", status)
    return data


class GoogleVisionProvider:
    """Google Cloud Vision ``images:annotate`` client using an API key.

    Args:
        config: Credentials and timeout for this provider.
        session: HTTP session; a new one is created when omitted.
    """

    provider_id = ProviderId.GOOGLE_VISION

    def __init__(
        self, config: ProviderConfig, session: requests.Session | None = None
    ) -> None:
        self.config = config
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    def _build_request(self, source: ImageSource, options: ProviderOptions) -> dict:
        image: dict[str, Any]
        if isinstance(source, UrlSource):
            image = {"source": {"imageUri": source.url}}
        else:
            image = {"content": base64.b64encode(source.data).decode("ascii")}

        request: dict[str, Any] = {
            "image": image,
            "features": [{"type": "DOCUMENT_TEXT_DETECTION", "maxResults": 1}],
        }
        if options.language_hints:
            request["imageContext"] = {
                "languageHints": [h[:10] for h in options.language_hints]
            }
        return {"requests": [request]}

    def recognize(self, source: ImageSource, options: ProviderOptions) -> ProviderResponse:
        """Run document text detection on ``source``.

        Raises:
            ProviderPermanentError: Missing key, rejected key, or an
                error object in the annotation response.
            ProviderTransientError: Timeout, connection failure or 5xx.
        """
        if not self.is_configured:
            raise ProviderPermanentError(self.provider_id, "not configured")

        logger.info("Google Vision request for %s", source.describe())
        data = _post(
            self.provider_id,
            self.session,
            GOOGLE_VISION_ENDPOINT,
            self.config.timeout_seconds,
            params={"key": self.config.api_key},
            json=self._build_request(source, options),
        )

        responses = data.get("responses") or [{}]
        first = responses[0] or {}
        if first.get("error"):
            message = first["error"].get("message", "annotation error")
            raise ProviderPermanentError(self.provider_id, message)

        annotation = first.get("fullTextAnnotation") or {}
        text = annotation.get("text")
        if not text:
            text_annotations = first.get("textAnnotations") or [{}]
            text = text_annotations[0].get("description", "")

        page_confidences = [
            p["confidence"] for p in annotation.get("pages", []) if "confidence" in p
        ]
        confidence = (
            round(sum(page_confidences) / len(page_confidences), 3)
            if page_confidences
            else None
        )
        return ProviderResponse(text=text or "", confidence=confidence, raw=data)


class OcrSpaceProvider:
    """OCR.Space ``parse/image`` client.

    Args:
        config: Credentials and timeout for this provider.
        session: HTTP session; a new one is created when omitted.
    """

    provider_id = ProviderId.OCR_SPACE

    def __init__(
        self, config: ProviderConfig, session: requests.Session | None = None
    ) -> None:
        self.config = config
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    def recognize(self, source: ImageSource, options: ProviderOptions) -> ProviderResponse:
        """Parse the text of ``source`` with OCR engine 2.

        Raises:
            ProviderPermanentError: Missing or rejected key, or a
                processing error reported in the response body.
            ProviderTransientError: Timeout, connection failure or 5xx.
        """
        if not self.is_configured:
            raise ProviderPermanentError(self.provider_id, "not configured")

        form = {
            "apikey": self.config.api_key,
            "language": options.language[:10],
            "isOverlayRequired": "false",
            "OCREngine": "2",
            "detectOrientation": "true",
        }
        files = None
        if isinstance(source, BufferSource):
            files = {"file": (source.filename[:100], source.data)}
        else:
            form["url"] = source.url

        logger.info("OCR.Space request for %s", source.describe())
        data = _post(
            self.provider_id,
            self.session,
            OCR_SPACE_ENDPOINT,
            self.config.timeout_seconds,
            data=form,
            files=files,
        )

        if data.get("OCRExitCode") not in _OCR_SPACE_SUCCESS_CODES:
            message = data.get("ErrorMessage") or "processing failed"
            if isinstance(message, list):
                message = "; ".join(str(m) for m in message)
            raise ProviderPermanentError(self.provider_id, str(message))

        parsed = data.get("ParsedResults") or []
        text = "\n".join(p.get("ParsedText", "") for p in parsed if p)
        return ProviderResponse(text=text, confidence=None, raw=data)


def build_providers(
    config: OCRConfig, session: requests.Session | None = None
) -> dict[ProviderId, OcrProvider]:
    """Create every known provider client from configuration."""
    return {
        ProviderId.GOOGLE_VISION: GoogleVisionProvider(config.google_vision, session),
        ProviderId.OCR_SPACE: OcrSpaceProvider(config.ocr_space, session),
    }
