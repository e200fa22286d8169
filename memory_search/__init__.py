"""Semantic search and conversational answers over daily memories."""

from .models import SearchCandidate
from .relevance import MIN_ABSOLUTE_SCORE, RELEVANCE_RATIO, filter_relevant, relevance_threshold

__all__ = [
    "MIN_ABSOLUTE_SCORE",
    "RELEVANCE_RATIO",
    "SearchCandidate",
    "filter_relevant",
    "relevance_threshold",
]
