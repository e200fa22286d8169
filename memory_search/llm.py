import json
import logging
import re
from typing import Dict, List, Optional, Tuple

import httpx

from .config import get_settings

logger = logging.getLogger(__name__)

TITLE_PROMPT = (
    "Create a factual title (max 50 characters) for this personal memory. "
    "ONLY use information explicitly mentioned in the text. Do NOT add details, "
    "locations, or context not present in the original text. If the memory is "
    "vague, keep the title vague too."
)

ANSWER_INSTRUCTIONS = """Instructions:
- Answer the user's question conversationally and naturally
- Use the memories provided to give personalized, accurate responses
- If the memories don't contain enough information to answer the question, say so politely
- Reference specific details from the memories when relevant
- If no relevant memories are found, let the user know and suggest they add more information
- If a date range was specified, acknowledge that you're focusing on that time period"""

NO_ANSWER = "I'm sorry, I couldn't generate a response."

SENTIMENT_PROMPT = (
    "You are a sentiment analysis expert. Analyze the sentiment of the given text and respond with "
    "ONLY a JSON object containing \"sentiment\" (POSITIVE, NEGATIVE, or NEUTRAL) and "
    "\"confidence\" (0-1 score). No other text."
)

TODO_PROMPT = (
    "Extract actionable items from memory text. Return ONLY genuine tasks the person should do. "
    "Respond with a JSON object {\"todos\": [...]} whose items contain: title, priority "
    "(high/medium/low), category. Categories: work, personal, health, social, learning, shopping, "
    "calls, appointments. Maximum 5 items. If no actionable items, return an empty list."
)

SENTIMENTS = {"POSITIVE", "NEGATIVE", "NEUTRAL"}
PRIORITIES = {"high", "medium", "low"}
MAX_LLM_TODOS = 5

MAX_QUESTION_LEN = 1000
MAX_MEMORY_LEN = 1000
TITLE_MAX_LEN = 50
TITLE_MIN_LEN = 5

_client_pool: Dict[Tuple[str, str], httpx.AsyncClient] = {}


class LLMError(RuntimeError):
    """The chat-completion service is unconfigured or failed."""


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 1)] + "…"


async def _get_client(base_url: str, api_key: str) -> httpx.AsyncClient:
    key = (base_url, api_key)
    client = _client_pool.get(key)
    if client is None:
        timeout = httpx.Timeout(20.0)
        client = httpx.AsyncClient(base_url=base_url, timeout=timeout, http2=True)
        _client_pool[key] = client
    return client


async def close_clients() -> None:
    while _client_pool:
        _, client = _client_pool.popitem()
        await client.aclose()


async def chat_completion(messages: List[Dict[str, str]], *, max_tokens: int, temperature: float,
                          json_mode: bool = False) -> str:
    s = get_settings()
    if not s.llm_configured:
        raise LLMError("llm not configured")
    payload = {
        "model": s.openai_model,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}
    headers = {"Authorization": f"Bearer {s.openai_api_key}"}
    try:
        client = await _get_client(s.openai_api_base, s.openai_api_key)
        response = await client.post("/v1/chat/completions", json=payload, headers=headers)
        response.raise_for_status()
        data = response.json()
        content = data["choices"][0]["message"]["content"]
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        reason = "rate limit" if status == 429 else f"http {status}"
        raise LLMError(reason) from exc
    except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as exc:
        raise LLMError(f"llm error: {exc}") from exc
    return (content or "").strip()


def date_range_note(start_date: Optional[str], end_date: Optional[str]) -> str:
    if start_date and end_date:
        return f"Note: The user is asking about memories from {start_date} to {end_date}."
    if start_date:
        return f"Note: The user is asking about memories from {start_date} onwards."
    if end_date:
        return f"Note: The user is asking about memories up to {end_date}."
    return ""


def build_answer_prompt(memories: List[str], start_date: Optional[str] = None,
                        end_date: Optional[str] = None) -> str:
    if memories:
        listed = "\n".join(f"{i}. {_truncate(m, MAX_MEMORY_LEN)}" for i, m in enumerate(memories, 1))
    else:
        listed = "No relevant memories found."
    parts = [
        "You are a helpful AI assistant that answers questions based on the user's personal memories.",
        f"Here are the user's relevant memories:\n{listed}",
    ]
    note = date_range_note(start_date, end_date)
    if note:
        parts.append(note)
    parts.append(ANSWER_INSTRUCTIONS)
    return "\n\n".join(parts)


async def answer_question(question: str, memories: List[str], *, start_date: Optional[str] = None,
                          end_date: Optional[str] = None) -> str:
    messages = [
        {"role": "system", "content": build_answer_prompt(memories, start_date, end_date)},
        {"role": "user", "content": _truncate(question, MAX_QUESTION_LEN)},
    ]
    answer = await chat_completion(messages, max_tokens=500, temperature=0.7)
    return answer or NO_ANSWER


def local_answer(question: str, memories: List[str]) -> str:
    if not memories:
        return ("I couldn't find any relevant memories to answer your question. "
                "Try asking about something you've written in your daily memories.")
    count = len(memories)
    noun = "memory" if count == 1 else "memories"
    more = f" ({count - 1} more found)" if count > 1 else ""
    return f"I found {count} relevant {noun}. Here's the most relevant one: {memories[0]}{more}"


def fallback_title(text: str) -> str:
    cleaned = re.sub(r"\s+", " ", text.strip())
    first_sentence = re.split(r"[.!?]", cleaned)[0].strip()
    if 10 <= len(first_sentence) <= TITLE_MAX_LEN:
        return first_sentence
    if len(cleaned) <= TITLE_MAX_LEN:
        return cleaned
    truncated = cleaned[:47]
    last_space = truncated.rfind(" ")
    if last_space > 20:
        return truncated[:last_space] + "..."
    return truncated + "..."


async def generate_title(text: str) -> str:
    if not get_settings().llm_configured:
        return fallback_title(text)
    messages = [
        {"role": "system", "content": TITLE_PROMPT},
        {"role": "user", "content": f'Memory: "{_truncate(text, MAX_MEMORY_LEN)}"'},
    ]
    try:
        title = await chat_completion(messages, max_tokens=15, temperature=0.1)
    except LLMError as exc:
        logger.warning("Title generation failed, using fallback: %s", exc)
        return fallback_title(text)
    title = title.strip().strip('"')
    if TITLE_MIN_LEN <= len(title) <= TITLE_MAX_LEN:
        return title
    return fallback_title(text)


async def analyze_sentiment(text: str) -> Tuple[str, float]:
    """Return ``(label, confidence)``; ``("NEUTRAL", 0.0)`` when the LLM is unavailable."""
    if not get_settings().llm_configured:
        return "NEUTRAL", 0.0
    messages = [
        {"role": "system", "content": SENTIMENT_PROMPT},
        {"role": "user", "content": f'Analyze the sentiment of this text: "{_truncate(text, MAX_MEMORY_LEN)}"'},
    ]
    try:
        content = await chat_completion(messages, max_tokens=50, temperature=0, json_mode=True)
        out = json.loads(content)
    except (LLMError, ValueError) as exc:
        logger.warning("Sentiment analysis failed, defaulting to NEUTRAL: %s", exc)
        return "NEUTRAL", 0.0
    if not isinstance(out, dict):
        return "NEUTRAL", 0.0
    label = str(out.get("sentiment", "NEUTRAL")).upper()
    if label not in SENTIMENTS:
        label = "NEUTRAL"
    try:
        confidence = max(0.0, min(1.0, float(out.get("confidence", 0.0))))
    except (TypeError, ValueError):
        confidence = 0.0
    return label, confidence


async def extract_todos(text: str) -> List[Dict[str, str]]:
    """Ask the LLM for action items; an empty list on any failure."""
    if not get_settings().llm_configured:
        return []
    messages = [
        {"role": "system", "content": TODO_PROMPT},
        {"role": "user", "content": f'Memory: "{_truncate(text, MAX_MEMORY_LEN)}"'},
    ]
    try:
        content = await chat_completion(messages, max_tokens=300, temperature=0.1, json_mode=True)
        out = json.loads(content)
    except (LLMError, ValueError) as exc:
        logger.warning("Todo extraction failed: %s", exc)
        return []
    items = out.get("todos") if isinstance(out, dict) else out
    if not isinstance(items, list):
        return []
    todos = []
    for item in items[:MAX_LLM_TODOS]:
        if not isinstance(item, dict) or not str(item.get("title", "")).strip():
            continue
        priority = str(item.get("priority", "medium")).lower()
        todos.append({
            "title": _truncate(str(item["title"]).strip(), 200),
            "priority": priority if priority in PRIORITIES else "medium",
            "category": str(item.get("category") or "general"),
            "method": "ai",
        })
    return todos
