"""Contextual confidence scoring for amount candidates.

A candidate's confidence depends on its magnitude, on whether a
currency marker accompanied it, and on the keywords found in a small
window of text around it.
"""

import re
from bisect import bisect_left, bisect_right
from dataclasses import replace

from receipt_recon.utils.config import ScoringConfig

from .amounts import AmountCandidate, CurrencyHint

_FIELD_BREAK = re.compile(r"\n|[;|]|,\s")


def contains_keyword(window_text: str, keywords: list[str]) -> bool:
    """Case-insensitive substring test for any of ``keywords``."""
    lowered = window_text.lower()
    return any(keyword in lowered for keyword in keywords)


def score(
    candidate: AmountCandidate,
    window_text: str,
    config: ScoringConfig | None = None,
) -> float:
    """Assign a 0-1 confidence that ``candidate`` is the paid total.

    Args:
        candidate: Amount found by the extractor.
        window_text: Text surrounding the candidate.
        config: Scoring weights; defaults to :class:`ScoringConfig`.

    Returns:
        Confidence clamped to ``[0, 1]`` and rounded to 2 decimals.
    """
    config = config or ScoringConfig()
    value = config.base_score

    if candidate.value > config.large_amount_threshold:
        value += config.large_amount_bonus
    if candidate.currency_hint != CurrencyHint.UNKNOWN:
        value += config.currency_bonus
    if contains_keyword(window_text, config.total_keywords):
        value += config.keyword_bonus
    if contains_keyword(window_text, config.subtotal_keywords):
        value -= config.subtotal_penalty

    return round(max(0.0, min(1.0, value)), 2)


class _NeighbourIndex:
    """Candidate offsets sorted once for O(log n) neighbour lookups."""

    def __init__(self, candidates: list[AmountCandidate]) -> None:
        ordered = sorted(candidates, key=lambda c: c.source_offset)
        self.offsets = [c.source_offset for c in ordered]
        # reach[i]: furthest end offset among the first i + 1 candidates
        self.reach: list[int] = []
        furthest = 0
        for candidate in ordered:
            furthest = max(furthest, candidate.end_offset)
            self.reach.append(furthest)

    def window(self, text: str, candidate: AmountCandidate, radius: int) -> str:
        offset = candidate.source_offset
        start = max(0, offset - radius)
        end = min(len(text), offset + radius)

        before = bisect_left(self.offsets, offset)
        if before:
            start = max(start, min(self.reach[before - 1], offset))
        after = bisect_right(self.offsets, offset)
        if after < len(self.offsets):
            end = min(end, self.offsets[after])

        end = max(end, candidate.end_offset)
        brk = _FIELD_BREAK.search(text, candidate.end_offset, end)
        if brk:
            end = brk.start()

        return text[start:end]


def context_window(
    text: str,
    candidate: AmountCandidate,
    neighbours: list[AmountCandidate],
    radius: int = 40,
) -> str:
    """Return the text around ``candidate`` that may label it.

    The window spans ``radius`` characters on each side of the source
    offset but never reaches into another amount: backwards it stops at
    the end of the previous amount, forwards at the start of the next
    amount or at the first field break (newline, ``;``, ``|`` or a
    comma followed by a space).

    Args:
        text: Full normalized text the candidate was extracted from.
        candidate: Candidate whose window is wanted.
        neighbours: All candidates from the same text, in any order.
        radius: Characters inspected on each side of the offset.
    """
    return _NeighbourIndex(neighbours).window(text, candidate, radius)


def score_candidates(
    text: str,
    candidates: list[AmountCandidate],
    config: ScoringConfig | None = None,
) -> list[AmountCandidate]:
    """Score every candidate and record the window it was scored on.

    Args:
        text: Normalized text the candidates were extracted from.
        candidates: Output of :func:`extract_amounts`.
        config: Scoring weights.

    Returns:
        New candidates, in the same order, with ``confidence`` and
        ``context`` filled in.
    """
    config = config or ScoringConfig()
    index = _NeighbourIndex(candidates)
    scored: list[AmountCandidate] = []
    for candidate in candidates:
        window = index.window(text, candidate, config.window_radius)
        scored.append(
            replace(candidate, confidence=score(candidate, window, config), context=window)
        )
    return scored
