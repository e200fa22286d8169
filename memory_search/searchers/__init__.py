"""Scoring strategies that produce candidates for relevance filtering."""

from .base import ScoringStrategy, candidate_from_record
from .keyword_overlap import KeywordOverlapScorer

__all__ = [
    "KeywordOverlapScorer",
    "ScoringStrategy",
    "candidate_from_record",
]
