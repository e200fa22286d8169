"""Shared contract for everything that turns a query into scored candidates."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol

from ..models import SearchCandidate

PAYLOAD_FIELDS = ("text", "title", "date", "timestamp", "source", "user_id")


class ScoringStrategy(Protocol):
    """A scorer usable in front of :func:`memory_search.relevance.filter_relevant`.

    Implementations return comparable ``SearchCandidate`` values (higher score
    is more relevant) for at most ``limit`` records, optionally restricted to
    one user's memories. They may raise when their backing service is
    unavailable; callers decide how to fall back.
    """

    name: str

    def search(self, query: str, limit: int, *, user_id: Optional[str] = None) -> List[SearchCandidate]:
        ...


def candidate_from_record(record: Mapping[str, Any], score: float) -> SearchCandidate:
    payload: Dict[str, Any] = {k: record.get(k, "") for k in PAYLOAD_FIELDS}
    return SearchCandidate(id=str(record.get("id", "")), score=float(score), payload=payload)
