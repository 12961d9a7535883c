"""Regex-based extraction of monetary amounts from receipt text.

Pattern families run from most to least specific so that a number
matched by several of them keeps the currency hint of the most
specific one.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import StrEnum

from receipt_recon.utils.logger import get_logger

logger = get_logger(__name__)


class CurrencyHint(StrEnum):
    """Currency implied by the text surrounding an amount."""

    PEN = "PEN"
    USD = "USD"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class AmountCandidate:
    """A number found in receipt text that may be the paid total."""

    raw_text: str
    value: Decimal
    currency_hint: CurrencyHint
    source_offset: int
    confidence: float = 0.0
    context: str = ""

    @property
    def end_offset(self) -> int:
        return self.source_offset + len(self.raw_text)


# Thousands-grouped numbers first so "1,234.50" is not cut at the comma.
_NUMBER = r"\d{1,3}(?:[.,]\d{3})+(?:[.,]\d{2})?|\d{1,6}(?:[.,]\d{1,2})?"
_DECIMAL_NUMBER = r"\d{1,3}(?:[.,]\d{3})*[.,]\d{2}|\d{1,6}[.,]\d{2}"
_CURRENCY_WORD = r"(?:\s*(?P<currency>soles\b|S/|PEN\b|USD\b|\$))?"

# Pattern definitions: (family name, compiled regex, fixed currency hint)
_PATTERN_FAMILIES: list[tuple[str, re.Pattern[str], CurrencyHint | None]] = [
    (
        "soles_prefix",
        re.compile(rf"(?:S/\.?|S\./)\s*(?P<number>{_NUMBER})(?!\d)", re.IGNORECASE),
        CurrencyHint.PEN,
    ),
    (
        "pen_code",
        re.compile(rf"\bPEN\.?\s*(?P<number>{_NUMBER})(?!\d)", re.IGNORECASE),
        CurrencyHint.PEN,
    ),
    (
        "usd",
        re.compile(rf"(?:\$|\bUSD\b)\s*(?P<number>{_NUMBER})(?!\d)", re.IGNORECASE),
        CurrencyHint.USD,
    ),
    (
        "bare_decimal",
        re.compile(
            rf"(?<![\d.,])(?P<number>{_DECIMAL_NUMBER})(?![\d]|[.,]\d){_CURRENCY_WORD}",
            re.IGNORECASE,
        ),
        None,
    ),
    (
        # Excludes pieces of dates, clock times and longer digit runs.
        "bare_integer",
        re.compile(
            rf"(?<![\d.,/:\-])(?P<number>\d{{1,6}})(?![\d/:\-]|[.,]\d){_CURRENCY_WORD}",
            re.IGNORECASE,
        ),
        None,
    ),
]

# Day or year next to a month name, e.g. "15 mar. 2024" or "3 de enero".
_MONTH = r"(?:ene|feb|mar|abr|may|jun|jul|ago|set|sep|oct|nov|dic|jan|apr|aug|dec)[a-z]*\.?"
_MONTH_AFTER = re.compile(rf"\s*(?:de\s+)?{_MONTH}(?![a-z])", re.IGNORECASE)
_MONTH_BEFORE = re.compile(rf"(?<![a-z]){_MONTH}\s*(?:de\s+)?$", re.IGNORECASE)

_CURRENCY_WORDS: dict[str, CurrencyHint] = {
    "soles": CurrencyHint.PEN,
    "s/": CurrencyHint.PEN,
    "pen": CurrencyHint.PEN,
    "usd": CurrencyHint.USD,
    "$": CurrencyHint.USD,
}


def parse_amount(raw: str) -> Decimal | None:
    """Parse a receipt number, accepting ``,`` or ``.`` as decimal mark.

    The last separator is the decimal mark when exactly one or two
    digits follow it; every other separator is a thousands separator.

    Args:
        raw: Numeric text such as ``"24,50"`` or ``"1.234,00"``.

    Returns:
        Parsed non-negative value, or ``None`` if ``raw`` is not a number.
    """
    cleaned = re.sub(r"[^\d.,]", "", raw or "")
    if not cleaned or not any(c.isdigit() for c in cleaned):
        return None

    last_sep = max(cleaned.rfind("."), cleaned.rfind(","))
    if last_sep != -1 and 1 <= len(cleaned) - last_sep - 1 <= 2:
        integer_part = re.sub(r"[.,]", "", cleaned[:last_sep]) or "0"
        normalized = f"{integer_part}.{cleaned[last_sep + 1:]}"
    else:
        normalized = re.sub(r"[.,]", "", cleaned)

    try:
        value = Decimal(normalized)
    except InvalidOperation:
        return None
    if not value.is_finite() or value < 0:
        return None
    return value


def _is_date_part(text: str, start: int, end: int) -> bool:
    if _MONTH_AFTER.match(text, end):
        return True
    return _MONTH_BEFORE.search(text[max(0, start - 16):start]) is not None


def _currency_for(match: re.Match[str], fixed: CurrencyHint | None) -> CurrencyHint:
    if fixed is not None:
        return fixed
    word = match.groupdict().get("currency")
    if word:
        return _CURRENCY_WORDS.get(word.lower(), CurrencyHint.UNKNOWN)
    return CurrencyHint.UNKNOWN


def extract_amounts(text: str, number_min_digits: int = 6) -> list[AmountCandidate]:
    """Find every monetary amount in ``text``.

    Each candidate keeps the character offset of its numeric text so
    that scoring can inspect the surrounding words. Candidates with the
    same value at the same offset are reported once, keeping the most
    specific pattern family. Unmarked integers long enough to be an
    account or operation number are not amounts.

    Args:
        text: Normalized OCR text.
        number_min_digits: Digit count from which a bare integer is
            treated as an account or operation number.

    Returns:
        Candidates sorted by value, largest first. Empty when the text
        holds no monetary figures.
    """
    if not text:
        return []

    candidates: list[AmountCandidate] = []
    seen: set[tuple[Decimal, int]] = set()

    for family, pattern, currency in _PATTERN_FAMILIES:
        found = 0
        for match in pattern.finditer(text):
            raw = match.group("number")
            value = parse_amount(raw)
            if value is None:
                continue
            offset = match.start("number")
            if family == "bare_integer" and (
                len(raw) >= number_min_digits
                or _is_date_part(text, offset, match.end("number"))
            ):
                continue
            key = (value.normalize(), offset)
            if key in seen:
                continue
            seen.add(key)
            candidates.append(
                AmountCandidate(
                    raw_text=raw,
                    value=value,
                    currency_hint=_currency_for(match, currency),
                    source_offset=offset,
                )
            )
            found += 1
        if found:
            logger.debug("Pattern family %s matched %d amounts", family, found)

    candidates.sort(key=lambda c: c.value, reverse=True)
    return candidates
