"""Selection of the single most likely paid total among scored amounts."""

from receipt_recon.utils.config import ScoringConfig

from .amounts import AmountCandidate
from .scoring import contains_keyword


def select_total(
    candidates: list[AmountCandidate], config: ScoringConfig | None = None
) -> AmountCandidate | None:
    """Pick the candidate most likely to be the receipt total.

    Receipts usually label the total with a keyword, so candidates whose
    context holds one are preferred, ranked by confidence with value as
    a tie-break (``confidence + value * keyword_value_weight``). Without
    any labelled candidate the largest plausible amount wins, ranked by
    ``value * (confidence + fallback_confidence_offset)``.

    Args:
        candidates: Scored candidates from :func:`score_candidates`.
        config: Scoring weights.

    Returns:
        One of the input candidates, or ``None`` when there are none.
        Ties go to the earlier candidate.
    """
    if not candidates:
        return None
    config = config or ScoringConfig()

    labelled = [
        c for c in candidates if contains_keyword(c.context, config.total_keywords)
    ]
    if labelled:
        return max(
            labelled,
            key=lambda c: c.confidence + float(c.value) * config.keyword_value_weight,
        )

    return max(
        candidates,
        key=lambda c: float(c.value) * (c.confidence + config.fallback_confidence_offset),
    )
