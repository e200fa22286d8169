import asyncio
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from . import llm
from .config import get_settings
from .models import (
    ChatRequest,
    ChatResponse,
    Match,
    MatchMetadata,
    MemoryIn,
    MemoryUpdate,
    SearchCandidate,
    SearchRequest,
    SearchResponse,
    TodoExtractRequest,
    TodoToggle,
)
from .searchers.hnswlib_index import HNSWSearcher
from .searchers.keyword_overlap import KeywordOverlapScorer
from .service import MemorySearchService
from .store import MemoryNotFoundError, MemoryStore, MemoryValidationError
from .todos import TodoExtractor, TodoNotFoundError, TodoStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_store() -> MemoryStore:
    s = get_settings()
    return MemoryStore(s.data_file, max_per_day=s.max_memories_per_day, today_only=s.today_only)


@lru_cache()
def get_service() -> MemorySearchService:
    s = get_settings()
    store = get_store()
    return MemorySearchService(
        semantic=HNSWSearcher(store),
        lexical=KeywordOverlapScorer(store),
        relevance=s.relevance,
        candidate_pool_size=s.candidate_pool_size,
    )


@lru_cache()
def get_todo_store() -> TodoStore:
    return TodoStore(get_settings().todos_file)


@asynccontextmanager
async def lifespan(_: FastAPI):
    s = get_settings()
    if s.llm_configured:
        logger.info("LLM configured (%s) - conversational answers enabled", s.openai_model)
    else:
        logger.warning("OPENAI_API_KEY not set - answers and titles use local fallbacks")
    yield
    await llm.close_clients()


app = FastAPI(default_response_class=ORJSONResponse, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _to_match(c: SearchCandidate) -> Match:
    p = c.payload
    return Match(
        id=c.id,
        score=c.score,
        metadata=MatchMetadata(
            chunk_text=str(p.get("text") or ""),
            title=str(p.get("title") or ""),
            date=str(p.get("date") or ""),
            timestamp=str(p.get("timestamp") or ""),
            source=str(p.get("source") or "unknown"),
        ),
    )


def _bad_request(exc: MemoryValidationError) -> HTTPException:
    return HTTPException(status_code=400, detail={"error": str(exc), **exc.details})


@app.get("/health")
def health(store: MemoryStore = Depends(get_store)):
    return {
        "status": "ok",
        "memories": len(store),
        "llm_available": get_settings().llm_configured,
        "strategies": ["semantic", "keyword"],
    }


@app.post("/api/memories")
async def create_memory(body: MemoryIn, store: MemoryStore = Depends(get_store)):
    try:
        await asyncio.to_thread(store.validate_new, text=body.text, day=body.date, user_id=body.user_id)
    except MemoryValidationError as e:
        raise _bad_request(e)
    title = await llm.generate_title(body.text)
    if body.sentiment:
        sentiment, confidence = body.sentiment.upper(), body.sentiment_confidence or 0.0
    elif body.metadata.get("source") == "voice_file_upload":
        # transcribed uploads carry their own sentiment, if any
        sentiment, confidence = "NEUTRAL", 0.0
    else:
        sentiment, confidence = await llm.analyze_sentiment(body.text)
    try:
        record = await asyncio.to_thread(
            store.add, text=body.text, day=body.date, user_id=body.user_id,
            title=title, sentiment=sentiment, sentiment_confidence=confidence, metadata=body.metadata,
        )
    except MemoryValidationError as e:
        raise _bad_request(e)
    return {
        "success": True,
        "id": record["id"],
        "title": record["title"],
        "date": record["date"],
        "sentiment": record["sentiment"],
        "sentiment_confidence": record["sentiment_confidence"],
        "message": "Daily memory stored successfully",
    }


@app.get("/api/memories")
def list_memories(user_id: str = Query(...), start_date: Optional[str] = None,
                  end_date: Optional[str] = None, store: MemoryStore = Depends(get_store)):
    rows = store.list(user_id=user_id, start_date=start_date, end_date=end_date)
    return {"success": True, "count": len(rows), "memories": rows}


@app.get("/api/memories/week")
def week_memories(user_id: str = Query(...), date: str = Query(..., description="Any day in the week"),
                  store: MemoryStore = Depends(get_store)):
    try:
        grouped = store.week(date, user_id=user_id)
    except MemoryValidationError as e:
        raise _bad_request(e)
    return {"success": True, "week": grouped}


@app.post("/api/memories/search", response_model=SearchResponse)
async def search_memories(body: SearchRequest, service: MemorySearchService = Depends(get_service)):
    if not body.query.strip():
        raise HTTPException(status_code=400, detail={"error": "Query is required"})
    try:
        outcome = await asyncio.to_thread(
            service.search, body.query, body.top_k, user_id=body.user_id,
            start_date=body.start_date, end_date=body.end_date,
        )
    except Exception as e:
        logger.error(f"Memory search failed: {e}")
        raise HTTPException(status_code=500, detail={"error": "Failed to search memories", "details": str(e)})
    return SearchResponse(
        query=body.query,
        matches=[_to_match(c) for c in outcome.matches],
        strategy=outcome.strategy,
        fallback=outcome.fallback,
    )


@app.post("/api/chat", response_model=ChatResponse)
async def chat(body: ChatRequest, service: MemorySearchService = Depends(get_service)):
    if not body.question.strip():
        raise HTTPException(status_code=400, detail={"error": "Question is required"})
    try:
        outcome = await service.chat(
            body.question, body.max_memories, user_id=body.user_id,
            start_date=body.start_date, end_date=body.end_date,
        )
    except Exception as e:
        logger.error(f"Chat request failed: {e}")
        raise HTTPException(status_code=500, detail={"error": "Failed to process chat request", "details": str(e)})
    return ChatResponse(
        question=body.question,
        answer=outcome.answer,
        memories_used=len(outcome.memories),
        memories=outcome.memories,
        fallback=outcome.fallback,
        fallback_reason=outcome.fallback_reason,
    )


@app.put("/api/memories/{memory_id}")
async def update_memory(memory_id: str, body: MemoryUpdate, store: MemoryStore = Depends(get_store)):
    changes = dict(body.metadata or {})
    if body.text is not None:
        changes["text"] = body.text
        if body.title is None:
            changes["title"] = await llm.generate_title(body.text)
        changes["sentiment"], changes["sentiment_confidence"] = await llm.analyze_sentiment(body.text)
    if body.title is not None:
        changes["title"] = body.title
    try:
        record = await asyncio.to_thread(store.update, memory_id, user_id=body.user_id, changes=changes)
    except MemoryNotFoundError:
        raise HTTPException(status_code=404, detail={"error": "Memory not found", "id": memory_id})
    except MemoryValidationError as e:
        raise _bad_request(e)
    return {"success": True, "memory": record}


# registered before /api/memories/{memory_id} so "all" is not taken as an id
@app.delete("/api/memories/all")
def delete_all_memories(store: MemoryStore = Depends(get_store)):
    count = store.clear()
    return {"success": True, "deleted": count, "message": "All memories have been deleted"}


@app.delete("/api/memories/{memory_id}")
def delete_memory(memory_id: str, user_id: str = Query(...), store: MemoryStore = Depends(get_store)):
    try:
        store.delete(memory_id, user_id=user_id)
    except MemoryNotFoundError:
        raise HTTPException(status_code=404, detail={"error": "Memory not found", "id": memory_id})
    return {"success": True, "id": memory_id, "message": "Memory deleted successfully"}


@app.get("/api/stats")
def stats(store: MemoryStore = Depends(get_store), service: MemorySearchService = Depends(get_service)):
    index_stats = getattr(service.semantic, "stats", None)
    return {
        "success": True,
        "stats": {
            **store.stats(),
            "index": index_stats() if callable(index_stats) else None,
            "relevance": service.relevance.as_dict(),
        },
    }


@app.get("/api/todos")
def list_todos(user_id: str = Query(...), todos: TodoStore = Depends(get_todo_store)):
    rows = todos.list(user_id=user_id)
    pending = sum(1 for t in rows if not t.get("completed"))
    return {"success": True, "todos": rows, "count": len(rows), "pending": pending,
            "completed": len(rows) - pending}


@app.post("/api/todos/extract")
async def extract_todos(body: TodoExtractRequest, store: MemoryStore = Depends(get_store),
                        todos: TodoStore = Depends(get_todo_store)):
    counts = await TodoExtractor(store, todos).extract_for_user(body.user_id)
    return {"success": True, **counts}


@app.patch("/api/todos/{todo_id}/toggle")
def toggle_todo(todo_id: str, body: TodoToggle, todos: TodoStore = Depends(get_todo_store)):
    try:
        record = todos.toggle(todo_id, user_id=body.user_id, completed=body.completed)
    except TodoNotFoundError:
        raise HTTPException(status_code=404, detail={"error": "Todo not found", "id": todo_id})
    return {"success": True, "todo": record}
