"""Text cleanup applied to raw OCR output before extraction."""

import re

from receipt_recon.utils.errors import ValidationError

DEFAULT_MAX_LENGTH = 10_000

# Control characters except newline, which separates receipt fields.
_CONTROL_CHARS = re.compile(r"[\x00-\x09\x0b-\x1f\x7f]")
_SPACE_RUNS = re.compile(r" {2,}")
_SPACE_AROUND_NEWLINE = re.compile(r" *\n *")


def normalize(raw: str | None, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Clean OCR text so that extraction sees a predictable layout.

    Longer input is truncated, never rejected. Carriage returns, tabs
    and other control characters become spaces, non-breaking spaces
    become regular spaces, angle brackets are dropped, and space runs
    collapse to one. Newlines are kept. ``normalize`` is idempotent.

    Args:
        raw: Text as returned by an OCR provider.
        max_length: Maximum number of characters kept from ``raw``.

    Returns:
        Normalized text.

    Raises:
        ValidationError: If ``raw`` is neither a string nor ``None``.
    """
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raise ValidationError(
            f"Text to normalize must be a string, got {type(raw).__name__}"
        )

    text = raw[:max_length]
    text = text.replace("\r", " ").replace("\t", " ").replace("\u00a0", " ")
    text = _CONTROL_CHARS.sub(" ", text)
    text = text.replace("<", "").replace(">", "")
    text = _SPACE_RUNS.sub(" ", text)
    text = _SPACE_AROUND_NEWLINE.sub("\n", text)
    return text.strip()
