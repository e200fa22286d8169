from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import httpx
import pytest

from memory_search import llm
from memory_search.config import Settings


class FakeAsyncClient:
    def __init__(self, status_code: int = 200, content: str = "ok") -> None:
        self.status_code = status_code
        self.content = content
        self.requests: List[Dict[str, Any]] = []

    async def post(self, url: str, json: Dict[str, Any], headers: Dict[str, str]) -> httpx.Response:
        self.requests.append({"url": url, "json": json, "headers": headers})
        request = httpx.Request("POST", f"https://llm.test{url}")
        body = {"choices": [{"message": {"content": self.content}}]}
        return httpx.Response(self.status_code, json=body, request=request)


@pytest.fixture()
def configured(monkeypatch: pytest.MonkeyPatch) -> Settings:
    s = Settings(openai_api_key="sk-test", openai_api_base="https://llm.test", openai_model="gpt-test",
                 score_calibration_path="")
    monkeypatch.setattr(llm, "get_settings", lambda: s)
    return s


def _use_client(monkeypatch: pytest.MonkeyPatch, client: FakeAsyncClient) -> None:
    async def fake_get_client(base_url: str, api_key: str):
        return client

    monkeypatch.setattr(llm, "_get_client", fake_get_client)


def test_answer_question_sends_numbered_memories(configured, monkeypatch) -> None:
    client = FakeAsyncClient(content="  You cooked pasta.  ")
    _use_client(monkeypatch, client)

    answer = asyncio.run(llm.answer_question("What did I eat?", ["Cooked pasta", "Walked the dog"],
                                             start_date="2024-05-01", end_date="2024-05-07"))

    assert answer == "You cooked pasta."
    sent = client.requests[0]
    assert sent["url"] == "/v1/chat/completions"
    assert sent["headers"]["Authorization"] == "Bearer sk-test"
    assert sent["json"]["model"] == "gpt-test"
    system = sent["json"]["messages"][0]["content"]
    assert "1. Cooked pasta\n2. Walked the dog" in system
    assert "from 2024-05-01 to 2024-05-07" in system


def test_rate_limit_raises_llm_error(configured, monkeypatch) -> None:
    _use_client(monkeypatch, FakeAsyncClient(status_code=429))
    with pytest.raises(llm.LLMError, match="rate limit"):
        asyncio.run(llm.answer_question("q", []))


def test_unconfigured_llm_raises(settings) -> None:
    with pytest.raises(llm.LLMError, match="not configured"):
        asyncio.run(llm.answer_question("q", []))


def test_prompt_without_memories() -> None:
    prompt = llm.build_answer_prompt([])
    assert "No relevant memories found." in prompt
    assert "Note:" not in prompt


@pytest.mark.parametrize(
    "start, end, expected",
    [
        ("2024-05-01", None, "from 2024-05-01 onwards"),
        (None, "2024-05-07", "up to 2024-05-07"),
        (None, None, ""),
    ],
)
def test_date_range_note(start, end, expected) -> None:
    assert expected in llm.date_range_note(start, end)


def test_local_answer_wording() -> None:
    assert llm.local_answer("q", ["Only one"]) == (
        "I found 1 relevant memory. Here's the most relevant one: Only one"
    )
    assert llm.local_answer("q", ["First", "Second", "Third"]).endswith("First (2 more found)")


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Went to the beach. It was sunny and warm all day long.", "Went to the beach"),
        ("Short one", "Short one"),
        ("  lots   of\nspace  ", "lots of space"),
        (
            "Spent the whole afternoon reorganising the garage shelves and sorting boxes",
            "Spent the whole afternoon reorganising the...",
        ),
        ("a" * 60, "a" * 47 + "..."),
    ],
)
def test_fallback_title(text, expected) -> None:
    assert llm.fallback_title(text) == expected


def test_generate_title_uses_llm_when_valid(configured, monkeypatch) -> None:
    _use_client(monkeypatch, FakeAsyncClient(content='"Beach day"'))
    assert asyncio.run(llm.generate_title("Went to the beach today")) == "Beach day"


def test_generate_title_rejects_bad_llm_output(configured, monkeypatch) -> None:
    _use_client(monkeypatch, FakeAsyncClient(content="Hi"))
    assert asyncio.run(llm.generate_title("Went to the beach today")) == "Went to the beach today"


def test_generate_title_on_error_falls_back(configured, monkeypatch) -> None:
    _use_client(monkeypatch, FakeAsyncClient(status_code=500))
    assert asyncio.run(llm.generate_title("Went to the beach today")) == "Went to the beach today"


def test_analyze_sentiment_parses_json(configured, monkeypatch) -> None:
    client = FakeAsyncClient(content='{"sentiment": "positive", "confidence": 0.92}')
    _use_client(monkeypatch, client)

    assert asyncio.run(llm.analyze_sentiment("Best day ever")) == ("POSITIVE", 0.92)
    assert client.requests[0]["json"]["response_format"] == {"type": "json_object"}


@pytest.mark.parametrize(
    "content, expected",
    [
        ('{"sentiment": "ecstatic", "confidence": 3}', ("NEUTRAL", 1.0)),
        ('{"sentiment": "NEGATIVE", "confidence": "high"}', ("NEGATIVE", 0.0)),
        ("not json", ("NEUTRAL", 0.0)),
        ('["POSITIVE"]', ("NEUTRAL", 0.0)),
    ],
)
def test_analyze_sentiment_tolerates_bad_output(configured, monkeypatch, content, expected) -> None:
    _use_client(monkeypatch, FakeAsyncClient(content=content))
    assert asyncio.run(llm.analyze_sentiment("Some day")) == expected


def test_analyze_sentiment_neutral_without_llm(settings) -> None:
    assert asyncio.run(llm.analyze_sentiment("Best day ever")) == ("NEUTRAL", 0.0)


def test_analyze_sentiment_neutral_on_error(configured, monkeypatch) -> None:
    _use_client(monkeypatch, FakeAsyncClient(status_code=429))
    assert asyncio.run(llm.analyze_sentiment("Best day ever")) == ("NEUTRAL", 0.0)


def test_extract_todos_validates_items(configured, monkeypatch) -> None:
    content = ('{"todos": [{"title": "Call mom", "priority": "HIGH", "category": "calls"},'
               ' {"title": "  "}, {"title": "Buy milk", "priority": "urgent"}]}')
    _use_client(monkeypatch, FakeAsyncClient(content=content))

    todos = asyncio.run(llm.extract_todos("I keep forgetting to call mom and buy milk"))

    assert todos == [
        {"title": "Call mom", "priority": "high", "category": "calls", "method": "ai"},
        {"title": "Buy milk", "priority": "medium", "category": "general", "method": "ai"},
    ]


def test_extract_todos_empty_without_llm(settings) -> None:
    assert asyncio.run(llm.extract_todos("plan the trip")) == []


def test_extract_todos_empty_on_error(configured, monkeypatch) -> None:
    _use_client(monkeypatch, FakeAsyncClient(status_code=500))
    assert asyncio.run(llm.extract_todos("plan the trip")) == []
