"""Dynamic-threshold relevance filtering for nearest-neighbour search hits."""
from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence

from .models import SearchCandidate

RELEVANCE_RATIO = 0.25
MIN_ABSOLUTE_SCORE = 0.02


def relevance_threshold(
    scores: Iterable[float],
    ratio: float = RELEVANCE_RATIO,
    min_score: float = MIN_ABSOLUTE_SCORE,
) -> Optional[float]:
    """Return the acceptance threshold for ``scores`` or ``None`` when empty.

    The threshold is anchored to the best score of the current query
    (``max_score * ratio``) and never drops below ``min_score``.
    """

    valid = [float(s) for s in scores if not math.isnan(s)]
    if not valid:
        return None
    return max(max(valid) * ratio, min_score)


def filter_relevant(
    candidates: Sequence[SearchCandidate],
    top_k: int,
    *,
    ratio: float = RELEVANCE_RATIO,
    min_score: float = MIN_ABSOLUTE_SCORE,
) -> List[SearchCandidate]:
    """Keep the candidates that clear the dynamic threshold.

    Args:
        candidates: Scored hits in any order. Hits with a NaN score are
            ignored.
        top_k: Maximum number of results; ``top_k <= 0`` yields ``[]``.
        ratio: Fraction of the best score a hit must reach.
        min_score: Absolute floor for the threshold.

    Returns:
        The passing candidates (the same objects) sorted by descending score.
        Ties keep their input order.
    """

    if not candidates or top_k <= 0:
        return []

    pool = [c for c in candidates if not math.isnan(c.score)]
    threshold = relevance_threshold((c.score for c in pool), ratio, min_score)
    if threshold is None:
        return []

    kept = [c for c in pool if c.score >= threshold]
    kept.sort(key=lambda c: c.score, reverse=True)
    return kept[:top_k]


__all__ = ["MIN_ABSOLUTE_SCORE", "RELEVANCE_RATIO", "filter_relevant", "relevance_threshold"]
