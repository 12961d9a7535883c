"""Extraction of long digit runs: wallet accounts and operation numbers.

Classification is by length only. Peruvian phone-linked wallets
(Yape, Plin) use 9-digit phone numbers as account identifiers, hence
the default 9-11 account range; every other run of 6-20 digits is
treated as an operation or reference number. No checksum is applied.
"""

import re
from dataclasses import dataclass

from receipt_recon.utils.config import ExtractionConfig
from receipt_recon.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExtractedNumbers:
    """Digit runs found in receipt text, split by kind."""

    operations: frozenset[str]
    accounts: frozenset[str]


@dataclass(frozen=True)
class WalletAccountMatch:
    """Account-like numbers in a receipt and those known to the restaurant."""

    matches: frozenset[str]
    matched_known: frozenset[str]


def extract_numbers(text: str, config: ExtractionConfig | None = None) -> ExtractedNumbers:
    """Classify long digit runs as account-like or operation-like.

    Args:
        text: Normalized OCR text.
        config: Digit-length ranges for runs and accounts.

    Returns:
        Disjoint sets of operation numbers and account numbers.
    """
    config = config or ExtractionConfig()
    if not text:
        return ExtractedNumbers(frozenset(), frozenset())

    pattern = re.compile(
        rf"(?<!\d)\d{{{config.number_min_digits},{config.number_max_digits}}}(?!\d)"
    )
    operations: set[str] = set()
    accounts: set[str] = set()

    for match in pattern.finditer(text):
        run = match.group(0)
        if config.account_min_digits <= len(run) <= config.account_max_digits:
            accounts.add(run)
        else:
            operations.add(run)

    return ExtractedNumbers(frozenset(operations), frozenset(accounts))


def detect_wallet_accounts(
    text: str,
    known_accounts: list[str] | None = None,
    config: ExtractionConfig | None = None,
) -> WalletAccountMatch:
    """Find wallet account numbers in a receipt and match known ones.

    Args:
        text: Normalized OCR text.
        known_accounts: The restaurant's own wallet numbers.
        config: Digit-length ranges.

    Returns:
        All account-like numbers and the subset that are known.
    """
    accounts = extract_numbers(text, config).accounts
    known = {a.strip() for a in known_accounts or [] if a and a.strip()}
    matched = accounts & known
    logger.info(
        "Detected %d account numbers, %d matched known accounts",
        len(accounts),
        len(matched),
    )
    return WalletAccountMatch(matches=accounts, matched_known=frozenset(matched))
