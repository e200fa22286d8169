# memory_search/searchers/keyword_overlap.py
from typing import List, Optional

from ..models import SearchCandidate
from ..store import MemoryStore
from ..utils.normalize import normalize_query, query_words
from .base import candidate_from_record


class KeywordOverlapScorer:
    """Lexical fallback: score = share of query words found in the memory text.

    Scores live in [0, 1] so they go through the same relevance filter as
    cosine similarities. Records without any matching word are dropped.
    """

    name = "keyword"

    def __init__(self, store: MemoryStore):
        self.store = store

    @staticmethod
    def overlap(words: List[str], text: str) -> float:
        if not words:
            return 0.0
        haystack = normalize_query(text)
        matches = sum(1 for w in words if w in haystack)
        return matches / len(words)

    def search(self, query: str, limit: int, *, user_id: Optional[str] = None) -> List[SearchCandidate]:
        words = query_words(query)
        if not words or limit <= 0:
            return []
        hits: List[SearchCandidate] = []
        for row in self.store.snapshot():
            if user_id is not None and row.get("user_id") != user_id:
                continue
            score = self.overlap(words, str(row.get("text", "")))
            if score > 0:
                hits.append(candidate_from_record(row, score))
        hits.sort(key=lambda c: c.score, reverse=True)
        return hits[:limit]
