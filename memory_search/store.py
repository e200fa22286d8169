"""JSONL-backed storage for daily memories."""
from __future__ import annotations

import logging
import re
import secrets
import string
import threading
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .utils.data_loader import iter_records, write_records

logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ID_ALPHABET = string.ascii_lowercase + string.digits
_RESERVED_FIELDS = {
    "id", "text", "title", "date", "timestamp", "weekday", "user_id", "sentiment", "sentiment_confidence",
}


class MemoryValidationError(ValueError):
    """Raised when a memory cannot be stored as requested."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class MemoryNotFoundError(KeyError):
    """Raised when a memory id does not exist (or belongs to another user)."""


def parse_day(value: str) -> date:
    if not isinstance(value, str) or not DATE_RE.match(value):
        raise MemoryValidationError("Date must be in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise MemoryValidationError(f"Invalid date: {value}") from exc


def in_date_range(record_date: str, start_date: Optional[str], end_date: Optional[str]) -> bool:
    """ISO dates compare lexicographically; records without a date never match a range."""
    if not start_date and not end_date:
        return True
    if not record_date:
        return False
    if start_date and record_date < start_date:
        return False
    if end_date and record_date > end_date:
        return False
    return True


def new_memory_id(day: str) -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"memory-{day}-{suffix}"


class MemoryStore:
    """Keep memories in memory and mirror every change to a JSONL file.

    ``version`` increases on each write so that indexes built over the store
    can tell when they are stale.
    """

    def __init__(self, path: Optional[str] = None, *, max_per_day: int = 5, today_only: bool = True):
        self.path = path
        self.max_per_day = max_per_day
        self.today_only = today_only
        self.version = 0
        self._lock = threading.RLock()
        self._records: Dict[str, Dict[str, Any]] = {}
        if path:
            for row in iter_records(path):
                if row.get("id"):
                    self._records[str(row["id"])] = dict(row)
        logger.info("Loaded %d memories from %s", len(self._records), path or "<memory>")

    def __len__(self) -> int:
        return len(self._records)

    def _persist(self) -> None:
        self.version += 1
        if self.path:
            write_records(self.path, self._records.values())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def snapshot(self) -> List[Dict[str, Any]]:
        """Return copies of all records in insertion order."""
        with self._lock:
            return [dict(r) for r in self._records.values()]

    def get(self, memory_id: str, *, user_id: Optional[str] = None) -> Dict[str, Any]:
        with self._lock:
            record = self._records.get(memory_id)
            if record is None or (user_id is not None and record.get("user_id") != user_id):
                raise MemoryNotFoundError(memory_id)
            return dict(record)

    def list(
        self,
        *,
        user_id: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Records for ``user_id`` within the date range, newest first."""
        rows = [
            r for r in self.snapshot()
            if (user_id is None or r.get("user_id") == user_id)
            and in_date_range(r.get("date", ""), start_date, end_date)
        ]
        rows.sort(key=lambda r: (r.get("date", ""), r.get("timestamp", "")), reverse=True)
        return rows

    def week(self, day: str, *, user_id: str) -> Dict[str, List[Dict[str, Any]]]:
        """Group the Monday-Sunday week containing ``day`` by date."""
        anchor = parse_day(day)
        monday = anchor - timedelta(days=anchor.weekday())
        days = [(monday + timedelta(days=i)).isoformat() for i in range(7)]
        grouped: Dict[str, List[Dict[str, Any]]] = {d: [] for d in days}
        for row in self.list(user_id=user_id, start_date=days[0], end_date=days[-1]):
            bucket = grouped.get(row.get("date", ""))
            # imported rows can carry dates that sort inside the week but are not real days
            if bucket is not None:
                bucket.append(row)
        for rows in grouped.values():
            rows.sort(key=lambda r: r.get("timestamp", ""))
        return grouped

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            per_user: Dict[str, int] = {}
            for r in self._records.values():
                uid = r.get("user_id") or "UNKNOWN"
                per_user[uid] = per_user.get(uid, 0) + 1
            return {"total": len(self._records), "users": per_user, "version": self.version}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def validate_new(
        self,
        *,
        text: str,
        day: str,
        user_id: str,
        today: Optional[date] = None,
    ) -> date:
        """Check a new memory against the date rules and the daily limit."""
        if not text or not text.strip():
            raise MemoryValidationError("Text is required")
        if not user_id:
            raise MemoryValidationError("User ID is required")
        parsed = parse_day(day)
        today = today or date.today()
        if self.today_only and parsed != today:
            raise MemoryValidationError(
                "Can only create memories for today",
                details={"today": today.isoformat(), "received": day},
            )

        with self._lock:
            existing = [
                r for r in self._records.values()
                if r.get("user_id") == user_id and r.get("date") == day
            ]
        if len(existing) >= self.max_per_day:
            raise MemoryValidationError(
                f"You can only store up to {self.max_per_day} memories per day",
                details={
                    "existing_memories": [
                        {"id": r["id"], "text": r.get("text", ""), "date": r.get("date")}
                        for r in existing
                    ]
                },
            )
        return parsed

    def add(
        self,
        *,
        text: str,
        day: str,
        user_id: str,
        title: str,
        sentiment: str = "NEUTRAL",
        sentiment_confidence: float = 0.0,
        metadata: Optional[Mapping[str, Any]] = None,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        with self._lock:
            parsed = self.validate_new(text=text, day=day, user_id=user_id, today=today)
            extra = {k: v for k, v in (metadata or {}).items() if k not in _RESERVED_FIELDS}
            record: Dict[str, Any] = {
                "source": "daily_memory",
                **extra,
                "id": new_memory_id(day),
                "text": text,
                "title": title,
                "date": day,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "weekday": parsed.strftime("%A"),
                "sentiment": sentiment,
                "sentiment_confidence": float(sentiment_confidence),
                "user_id": user_id,
            }
            self._records[record["id"]] = record
            self._persist()
        logger.info("Stored memory %s for user %s", record["id"], user_id)
        return dict(record)

    def update(self, memory_id: str, *, user_id: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
        with self._lock:
            record = self.get(memory_id, user_id=user_id)
            for key, value in changes.items():
                if key in {"id", "user_id", "date", "weekday"} or value is None:
                    continue
                record[key] = value
            if not str(record.get("text", "")).strip():
                raise MemoryValidationError("Text is required")
            record["updated_at"] = datetime.now(timezone.utc).isoformat()
            self._records[memory_id] = record
            self._persist()
        logger.info("Updated memory %s", memory_id)
        return dict(record)

    def delete(self, memory_id: str, *, user_id: Optional[str] = None) -> Dict[str, Any]:
        with self._lock:
            record = self.get(memory_id, user_id=user_id)
            del self._records[memory_id]
            self._persist()
        logger.info("Deleted memory %s", memory_id)
        return record

    def clear(self) -> int:
        with self._lock:
            count = len(self._records)
            self._records.clear()
            self._persist()
        logger.info("Deleted all %d memories", count)
        return count

    def extend(self, records: Iterable[Mapping[str, Any]]) -> None:
        """Bulk load already-shaped records (imports and tests)."""
        with self._lock:
            for r in records:
                self._records[str(r["id"])] = dict(r)
            self._persist()
