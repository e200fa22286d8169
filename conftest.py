"""Pytest fixtures for offline testing without embedding models or an LLM service."""
from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Any, Dict, List

import numpy as np
import pytest

from memory_search.config import Settings
from memory_search.store import MemoryStore

TODAY = date.today()


def _day(offset: int) -> str:
    return (TODAY - timedelta(days=offset)).isoformat()


# --- Sample data used by fixtures -------------------------------------------------------
SAMPLE_MEMORIES: List[Dict[str, Any]] = [
    {
        "id": "memory-a",
        "text": "Walked the dog in the park before work",
        "title": "Morning walk",
        "date": _day(0),
        "timestamp": f"{_day(0)}T08:00:00+00:00",
        "source": "daily_memory",
        "user_id": "alice",
    },
    {
        "id": "memory-b",
        "text": "Cooked pasta with garlic for dinner",
        "title": "Pasta night",
        "date": _day(1),
        "timestamp": f"{_day(1)}T19:30:00+00:00",
        "source": "daily_memory",
        "user_id": "alice",
    },
    {
        "id": "memory-c",
        "text": "The dog barked at the mailman all morning",
        "title": "Noisy dog",
        "date": _day(3),
        "timestamp": f"{_day(3)}T10:00:00+00:00",
        "source": "voice_file_upload",
        "user_id": "alice",
    },
    {
        "id": "memory-d",
        "text": "Went to the park with my sister",
        "title": "Park with sister",
        "date": _day(0),
        "timestamp": f"{_day(0)}T15:00:00+00:00",
        "source": "daily_memory",
        "user_id": "bob",
    },
]


# --- Fake embedder ----------------------------------------------------------------------
class FakeEmbedder:
    """Bag-of-words embedder: each new word gets its own dimension."""

    dim = 64

    def __init__(self) -> None:
        self.vocab: Dict[str, int] = {}
        self.calls = 0

    def _slot(self, word: str) -> int:
        if word not in self.vocab:
            self.vocab[word] = 1 + len(self.vocab) % (self.dim - 1)
        return self.vocab[word]

    def encode(self, texts: List[str]) -> np.ndarray:
        self.calls += 1
        out = np.zeros((len(texts), self.dim), dtype=np.float32)
        for row, text in enumerate(texts):
            out[row, 0] = 0.1
            for word in re.findall(r"\w+", text.lower()):
                out[row, self._slot(word)] += 1.0
            out[row] /= np.linalg.norm(out[row])
        return out


class BrokenSearcher:
    name = "semantic"

    def search(self, query, limit, *, user_id=None):
        raise ConnectionError("embedding service unavailable")


# --- Fixtures ---------------------------------------------------------------------------


@pytest.fixture()
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture()
def store(tmp_path) -> MemoryStore:
    s = MemoryStore(str(tmp_path / "memories.jsonl"), max_per_day=5, today_only=True)
    s.extend(SAMPLE_MEMORIES)
    return s


@pytest.fixture()
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Settings without an LLM key, patched into every module that reads them."""
    for name in ["RELEVANCE_RATIO", "RELEVANCE_MIN_SCORE", "SCORE_CALIBRATION_PATH"]:
        monkeypatch.delenv(name, raising=False)
    s = Settings(openai_api_key="", score_calibration_path="")
    monkeypatch.setattr("memory_search.llm.get_settings", lambda: s)
    monkeypatch.setattr("memory_search.main.get_settings", lambda: s)
    return s
