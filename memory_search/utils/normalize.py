import re
from typing import List

_WORD_SPLIT = re.compile(r"\W+")


def fullwidth_to_halfwidth(s: str) -> str:
    res = []
    for ch in s:
        code = ord(ch)
        if code == 0x3000: code = 0x0020
        elif 0xFF01 <= code <= 0xFF5E: code -= 0xFEE0
        res.append(chr(code))
    return ''.join(res)


def normalize_query(q: str) -> str:
    q = q.strip()
    q = fullwidth_to_halfwidth(q)
    q = re.sub(r"\s+", ' ', q)
    return q.lower()


def query_words(q: str) -> List[str]:
    """Split a normalized query into non-empty word tokens."""
    return [w for w in _WORD_SPLIT.split(normalize_query(q)) if w]
