from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SearchCandidate(BaseModel):
    id: str
    score: float
    payload: Dict[str, Any] = Field(default_factory=dict)


class MemoryIn(BaseModel):
    text: str
    date: str
    user_id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    sentiment: Optional[str] = None
    sentiment_confidence: Optional[float] = None


class MemoryUpdate(BaseModel):
    user_id: str
    text: Optional[str] = None
    title: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class SearchRequest(BaseModel):
    query: str
    top_k: int = 5
    user_id: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class MatchMetadata(BaseModel):
    chunk_text: str = ""
    title: str = ""
    date: str = ""
    timestamp: str = ""
    source: str = "unknown"


class Match(BaseModel):
    id: str
    score: float
    metadata: MatchMetadata


class SearchResponse(BaseModel):
    success: bool = True
    query: str
    matches: List[Match]
    strategy: str
    fallback: bool = False


class ChatRequest(BaseModel):
    question: str
    user_id: str
    max_memories: int = 5
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class ChatResponse(BaseModel):
    success: bool = True
    question: str
    answer: str
    memories_used: int
    memories: List[str]
    fallback: bool = False
    fallback_reason: Optional[str] = None


class TodoExtractRequest(BaseModel):
    user_id: str


class TodoToggle(BaseModel):
    user_id: str
    completed: bool
