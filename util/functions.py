# util/functions.py
import hashlib
import math
from typing import Optional, Sequence


def clip_words(text: str, max_words: int = 30) -> str:
    """
    - Trim 'text' to at most `max_words` tokens separated by whitespace.
    - Adds an ellipsis when trimming occurs.
    """
    words = text.split()
    if len(words) <= max_words:
        return text
    return " ".join(words[:max_words]) + " …"


def clamp(value: float, low: float, high: float) -> float:
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def content_hash(text: str) -> str:
    # Same product typed with different casing/spacing must share one key
    normalized = " ".join((text or "").lower().split())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def normalize_packing_group(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    pg = str(value).strip().upper()
    if pg in ("I", "II", "III"):
        return pg
    return "NONE" if pg else None


def meta_str(meta: dict, *keys: str) -> str:
    """First non-empty string value among `keys`, else ''."""
    for key in keys:
        v = meta.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return ""


def join_labels(labels: Optional[Sequence[str]]) -> Optional[str]:
    if not labels:
        return None
    return ", ".join(str(x) for x in labels if x)
