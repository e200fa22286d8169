"""Action items pulled out of memories, kept in their own JSONL file."""
from __future__ import annotations

import logging
import re
import secrets
import string
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from . import llm
from .store import MemoryNotFoundError, MemoryStore
from .utils.data_loader import iter_records, write_records

logger = logging.getLogger(__name__)

KEYWORD_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"(?:I need to|I should|I have to|I want to|I must|Remember to|Don't forget to)\s+(.+?)(?:\.|$|,)",
        r"todo:\s*(.+?)(?:\.|$|,)",
        r"task:\s*(.+?)(?:\.|$|,)",
    )
]
ACTION_WORDS = ("should", "need", "want", "must", "remember", "todo", "task", "plan", "goal")
PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}
MIN_MEMORY_LEN = 10
SNIPPET_LEN = 200
_ID_ALPHABET = string.ascii_lowercase + string.digits


def keyword_todos(text: str) -> List[Dict[str, str]]:
    todos = []
    for pattern in KEYWORD_PATTERNS:
        for match in pattern.finditer(text):
            title = match.group(1).strip()
            if 5 < len(title) < 200:
                todos.append({"title": title, "priority": "medium", "category": "general", "method": "keyword"})
    return todos


async def extract_todos_from_text(text: str) -> List[Dict[str, str]]:
    """Keyword patterns first; the LLM only when they find nothing and the text sounds actionable."""
    todos = keyword_todos(text)
    if todos:
        logger.info("Found %d todos using keyword extraction", len(todos))
        return todos
    lowered = text.lower()
    if not any(word in lowered for word in ACTION_WORDS):
        return []
    return await llm.extract_todos(text)


class TodoNotFoundError(KeyError):
    """Raised when a todo id does not exist (or belongs to another user)."""


class TodoStore:
    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._lock = threading.RLock()
        self._records: Dict[str, Dict[str, Any]] = {}
        if path:
            for row in iter_records(path):
                if row.get("id"):
                    self._records[str(row["id"])] = dict(row)

    def _persist(self) -> None:
        if self.path:
            write_records(self.path, self._records.values())

    def list(self, *, user_id: str) -> List[Dict[str, Any]]:
        """Pending first, then by priority, then newest first."""
        with self._lock:
            rows = [dict(r) for r in self._records.values() if r.get("user_id") == user_id]
        rows.sort(key=lambda r: r.get("created_at", ""), reverse=True)
        rows.sort(key=lambda r: (bool(r.get("completed")), PRIORITY_ORDER.get(r.get("priority"), 1)))
        return rows

    def add(self, todo: Dict[str, str], *, user_id: str, memory: Dict[str, Any]) -> Dict[str, Any]:
        suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
        record = {
            "id": f"todo-{user_id}-{int(time.time() * 1000)}-{suffix}",
            "title": todo["title"],
            "completed": False,
            "priority": todo.get("priority") or "medium",
            "category": todo.get("category") or "general",
            "source_memory_id": memory.get("id"),
            "source_memory_date": memory.get("date"),
            "source_memory_text": str(memory.get("text", ""))[:SNIPPET_LEN],
            "created_at": datetime.now(timezone.utc).isoformat(),
            "completed_at": "",
            "user_id": user_id,
            "extraction_method": todo.get("method", "keyword"),
        }
        with self._lock:
            self._records[record["id"]] = record
            self._persist()
        return dict(record)

    def toggle(self, todo_id: str, *, user_id: str, completed: bool) -> Dict[str, Any]:
        with self._lock:
            record = self._records.get(todo_id)
            if record is None or record.get("user_id") != user_id:
                raise TodoNotFoundError(todo_id)
            record["completed"] = completed
            record["completed_at"] = datetime.now(timezone.utc).isoformat() if completed else ""
            self._persist()
            return dict(record)


@dataclass
class TodoExtractor:
    """Turn a user's unprocessed memories into todos, a small batch per call."""

    memories: MemoryStore
    todos: TodoStore
    batch_size: int = 5

    async def extract_for_user(self, user_id: str) -> Dict[str, int]:
        pending = [m for m in self.memories.list(user_id=user_id) if not m.get("todos_extracted")]
        batch = pending[: self.batch_size]
        created = skipped = 0
        for memory in batch:
            text = str(memory.get("text", ""))
            if len(text) < MIN_MEMORY_LEN:
                skipped += 1
                continue
            found = await extract_todos_from_text(text)
            for todo in found:
                self.todos.add(todo, user_id=user_id, memory=memory)
            created += len(found)
            try:
                self.memories.update(memory["id"], user_id=user_id, changes={
                    "todos_extracted": True,
                    "todos_extracted_at": datetime.now(timezone.utc).isoformat(),
                    "todos_extracted_count": len(found),
                })
            except MemoryNotFoundError:
                logger.warning("Memory %s vanished during todo extraction", memory["id"])
        logger.info("Todo extraction for %s: %d new, %d skipped", user_id, created, skipped)
        return {
            "new_todos_count": created,
            "total_todos_count": len(self.todos.list(user_id=user_id)),
            "skipped_memories_count": skipped,
            "processed_memories_count": len(batch),
        }
