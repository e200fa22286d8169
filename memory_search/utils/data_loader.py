# memory_search/utils/data_loader.py
import csv
import json
import os


def iter_records(path: str):
    if not os.path.exists(path):
        return

    # sniff the head to pick a format
    with open(path, "r", encoding="utf-8-sig") as f:
        head = f.read(2048)
        f.seek(0)

        stripped = head.lstrip()
        # JSON array
        if stripped.startswith("["):
            data = json.load(f)
            for obj in data:
                yield obj
            return

        # CSV: header line with commas and a text column
        first = f.readline()
        f.seek(0)
        if not first.lstrip().startswith("{") and "," in first and "text" in first.lower():
            reader = csv.DictReader(f)
            for row in reader:
                yield {
                    "id": row.get("id") or "",
                    "text": row.get("text") or "",
                    "title": row.get("title") or "",
                    "date": row.get("date") or "",
                    "timestamp": row.get("timestamp") or "",
                    "source": row.get("source") or "daily_memory",
                    "user_id": row.get("user_id") or row.get("userId") or "",
                }
            return

        # default: JSONL, one object per line
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                preview = line[:120]
                raise ValueError(f"{path}:{lineno} is not valid JSON/JSONL: {e.msg} (col {e.colno}); sample: {preview}")


def write_records(path: str, records) -> None:
    """Rewrite ``path`` as JSONL, one record per line."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        for record in records:
            f.write(json.dumps(record, ensure_ascii=False))
            f.write("\n")
    os.replace(tmp_path, path)
