# core/hybrid_search.py
import re
from functools import lru_cache
from typing import FrozenSet, List, Optional, Sequence
import numpy as np
from core.entities import CandidateEntry, SearchHit
from util.types import MetadataFilters

STOPWORDS: FrozenSet[str] = frozenset(
    {"the", "is", "at", "which", "on", "a", "an", "and", "or", "but", "in", "with",
     "to", "for", "of", "as", "by", "not", "than", "more", "less", "per"}
)

# Index metadata uses both spellings for a few fields
FIELD_ALIASES = {
    "class": ("class", "class_or_division", "hazardClass"),
    "base_name": ("base_name", "baseName", "name"),
    "id_number": ("id_number", "unNumber"),
}

_TOKEN = re.compile(r"[a-z0-9][a-z0-9%.\-]*")


def tokenize(text: str) -> List[str]:
    """Lower-cased word tokens, stopwords removed, order preserved."""
    out = []
    for tok in _TOKEN.findall((text or "").lower()):
        tok = tok.rstrip(".-")
        if tok and tok not in STOPWORDS:
            out.append(tok)
    return out


@lru_cache(maxsize=4096)
def _token_set(text: str) -> FrozenSet[str]:
    return frozenset(tokenize(text))


def keyword_score(query_tokens: Sequence[str], candidate_text: str) -> float:
    """Share of query tokens (repeats counted) present in the candidate text."""
    if not query_tokens:
        return 0.0
    present = _token_set(candidate_text)
    return sum(1 for t in query_tokens if t in present) / len(query_tokens)


def _field_values(meta: dict, field: str) -> List[str]:
    out = []
    for key in FIELD_ALIASES.get(field, (field,)):
        v = meta.get(key)
        if v is None:
            continue
        if isinstance(v, (list, tuple)):
            out.extend(str(x) for x in v)
        else:
            out.append(str(v))
    return out


def passes_filters(entry: CandidateEntry, filters: Optional[MetadataFilters]) -> bool:
    """All filters must hold (AND); each holds if any aliased value matches."""
    if not filters:
        return True
    for field, cond in filters.items():
        values = _field_values(entry.metadata, field)
        if "equals" in cond:
            want = str(cond["equals"]).lower()
            if not any(v.lower() == want for v in values):
                return False
        if "regex" in cond:
            rx = re.compile(cond["regex"], re.IGNORECASE)
            if not any(rx.search(v) for v in values):
                return False
    return True


def hybrid_score(vector_score: float, kw_score: float, alpha: float) -> float:
    return alpha * vector_score + (1.0 - alpha) * kw_score


def search(
    query_vector: np.ndarray,
    query_text: str,
    candidates: Sequence[CandidateEntry],
    k: int = 50,
    alpha: float = 0.5,
    filters: Optional[MetadataFilters] = None,
    matrix: Optional[np.ndarray] = None,
) -> List[SearchHit]:
    """
    Rank `candidates` by alpha*dot(q, e) + (1-alpha)*keyword overlap.

    Embeddings are pre-normalized so the dot product is cosine similarity.
    `matrix` (rows aligned with `candidates`) skips re-stacking per call.
    Ties break on candidate id so repeated calls order identically.
    """
    if not candidates or k <= 0:
        return []
    alpha = min(1.0, max(0.0, float(alpha)))
    q = np.asarray(query_vector, dtype=np.float32)
    if matrix is None:
        matrix = np.vstack([c.embedding for c in candidates]).astype(np.float32, copy=False)
    sims = (matrix @ q).astype(float)
    q_tokens = tokenize(query_text)

    hits: List[SearchHit] = []
    for i, cand in enumerate(candidates):
        if not passes_filters(cand, filters):
            continue
        vec = float(sims[i])
        kw = keyword_score(q_tokens, cand.text)
        hs = hybrid_score(vec, kw, alpha)
        hits.append(
            SearchHit(entry=cand, vector_score=vec, keyword_score=kw, hybrid_score=hs, score=hs)
        )
    hits.sort(key=lambda h: (-h.hybrid_score, h.entry.id))
    return hits[:k]
