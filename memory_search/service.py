"""Search and conversational answers over stored memories."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from . import llm
from .config import RelevanceSettings
from .models import SearchCandidate
from .relevance import filter_relevant
from .searchers.base import ScoringStrategy
from .store import in_date_range

logger = logging.getLogger(__name__)


@dataclass
class SearchOutcome:
    matches: List[SearchCandidate]
    strategy: str
    fallback: bool = False
    error: Optional[str] = None


@dataclass
class ChatOutcome:
    answer: str
    memories: List[str]
    fallback: bool = False
    fallback_reason: Optional[str] = None


@dataclass
class MemorySearchService:
    """Run the primary scorer, fall back to the secondary one, then filter.

    ``semantic`` is expected to be the embedding-based scorer and ``lexical``
    the keyword-overlap scorer; both feed the same relevance filter.
    """

    semantic: ScoringStrategy
    lexical: ScoringStrategy
    relevance: RelevanceSettings = field(default_factory=RelevanceSettings)
    candidate_pool_size: int = 100

    def candidates(self, query: str, *, user_id: Optional[str] = None) -> SearchOutcome:
        """Score the pool with the semantic scorer, or the lexical one if it fails."""
        try:
            hits = self.semantic.search(query, self.candidate_pool_size, user_id=user_id)
            return SearchOutcome(matches=hits, strategy=self.semantic.name)
        except Exception as exc:
            logger.warning("Semantic search failed, falling back to %s: %s", self.lexical.name, exc)
            hits = self.lexical.search(query, self.candidate_pool_size, user_id=user_id)
            return SearchOutcome(matches=hits, strategy=self.lexical.name, fallback=True, error=str(exc))

    def search(
        self,
        query: str,
        top_k: int = 5,
        *,
        user_id: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        require_text: bool = False,
    ) -> SearchOutcome:
        """Date range first, then the relevance filter; ``require_text`` drops empty memories before the cap."""
        outcome = self.candidates(query, user_id=user_id)
        pool = [c for c in outcome.matches
                if in_date_range(str(c.payload.get("date", "")), start_date, end_date)
                and (not require_text or c.payload.get("text"))]
        outcome.matches = filter_relevant(
            pool, top_k, ratio=self.relevance.ratio, min_score=self.relevance.min_score
        )
        logger.info(
            "Search %r via %s: %d candidates, %d relevant",
            query, outcome.strategy, len(pool), len(outcome.matches),
        )
        return outcome

    async def chat(
        self,
        question: str,
        max_memories: int = 5,
        *,
        user_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> ChatOutcome:
        outcome = self.search(question, max_memories, user_id=user_id,
                              start_date=start_date, end_date=end_date, require_text=True)
        memories = [str(c.payload["text"]) for c in outcome.matches]
        try:
            answer = await llm.answer_question(question, memories, start_date=start_date, end_date=end_date)
        except llm.LLMError as exc:
            logger.warning("Answer generation failed, using local response: %s", exc)
            return ChatOutcome(
                answer=llm.local_answer(question, memories),
                memories=memories,
                fallback=True,
                fallback_reason=f"{exc} - using local response generation",
            )
        return ChatOutcome(answer=answer, memories=memories, fallback=outcome.fallback,
                           fallback_reason="keyword search fallback" if outcome.fallback else None)
