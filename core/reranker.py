# core/reranker.py
import math
import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence
from core.entities import QueryContext, SearchHit
from core.query_processor import parse_percentages
from util.enums import CandidateSource
from util.functions import meta_str
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RerankWeights:
    numeric: float = 0.15
    interval: float = 0.35
    exact_name: float = 0.5
    un_literal: float = 0.3


SOURCE_BOOSTS: Dict[str, float] = {
    CandidateSource.PRODUCTS.value: 0.2,
    CandidateSource.HMT.value: 0.1,
    CandidateSource.HISTORICAL.value: 0.05,
    CandidateSource.ERG.value: -0.1,
}


@dataclass(frozen=True)
class Interval:
    low: float
    high: float
    low_inclusive: bool
    high_inclusive: bool

    def contains(self, v: float) -> bool:
        above = v >= self.low if self.low_inclusive else v > self.low
        below = v <= self.high if self.high_inclusive else v < self.high
        return above and below

    def distance(self, v: float) -> float:
        if self.contains(v):
            return 0.0
        # Sitting on an open bound is the wrong band, not a near miss
        if (not self.low_inclusive and v == self.low) or (not self.high_inclusive and v == self.high):
            return 40.0
        if v < self.low:
            return self.low - v
        return v - self.high


_NUM = r"(\d{1,3}(?:\.\d+)?)\s*(?:%|percent\b)"
_AT_LEAST_NOT_MORE = re.compile(rf"(?:at least|not less than)\s*{_NUM}[^%]*?not more than\s*{_NUM}")
_NOT_MORE = re.compile(rf"not more than\s*{_NUM}")
_MORE = re.compile(rf"(?<!not )more than\s*{_NUM}")
_LESS = re.compile(rf"(?<!not )less than\s*{_NUM}")
_EXACT = re.compile(rf"(?:exactly|with)\s*{_NUM}")


def extract_intervals(text: str) -> List[Interval]:
    """Concentration bands stated in a regulatory entry's wording."""
    s = (text or "").lower()
    out: List[Interval] = []
    m = _AT_LEAST_NOT_MORE.search(s)
    if m:
        out.append(Interval(float(m.group(1)), float(m.group(2)), True, True))
    m = _NOT_MORE.search(s)
    if m:
        out.append(Interval(-math.inf, float(m.group(1)), False, True))
    m = _MORE.search(s)
    if m:
        out.append(Interval(float(m.group(1)), math.inf, False, False))
    m = _LESS.search(s)
    if m and not _AT_LEAST_NOT_MORE.search(s):
        out.append(Interval(-math.inf, float(m.group(1)), False, False))
    m = _EXACT.search(s)
    if m:
        v = float(m.group(1))
        out.append(Interval(v, v, True, True))
    return out


def numeric_affinity(query_percents: Sequence[float], text: str) -> float:
    """1.0 for an exact percentage match, falling to 0 at 50 points apart."""
    cand = parse_percentages((text or "").lower())
    if not query_percents or not cand:
        return 0.0
    return max(max(0.0, 1.0 - abs(q - t) / 50.0) for q in query_percents for t in cand)


def interval_affinity(query_percents: Sequence[float], text: str) -> float:
    intervals = extract_intervals(text)
    if not query_percents or not intervals:
        return 0.0
    best = 0.0
    for q in query_percents:
        for iv in intervals:
            if iv.contains(q):
                return 1.0
            best = max(best, max(0.0, 1.0 - iv.distance(q) / 50.0))
    return best


def _canonical_name(hit: SearchHit) -> str:
    meta = hit.entry.metadata
    name = meta_str(meta, "base_name", "baseName", "name", "product_name")
    return " ".join(name.lower().replace(",", " ").split())


def _confusable_adjustment(q: str, cand_text: str, un: str) -> float:
    t = cand_text.lower()
    delta = 0.0
    if re.search(r"red\s+fuming|\brfna\b", q):
        if re.search(r"red\s+fuming", t):
            delta += 0.6
        if "other than red fuming" in t:
            delta -= 0.5
    if re.search(r"\boleum\b|fuming\s+sulfuric", q):
        if re.search(r"\boleum\b|fuming", t):
            delta += 0.4
        if re.search(r"not\s+fuming|not more than 51", t):
            delta -= 0.2
    if re.search(r"\bkerosene\b", q) and not re.search(r"petroleum\s+ether", q):
        if re.search(r"petroleum\s+ether", t):
            delta -= 0.4
        if re.search(r"\bkerosene\b", t):
            delta += 0.2
    if re.search(r"\bn-?hexanes?\b|\bhexanes?\b", q):
        if un == "UN1208":
            delta += 0.3
        elif re.search(r"petroleum\s+ether|petroleum\s+distillates", t):
            delta -= 0.2
    if re.search(r"ethyl\s+acetate|\betoac\b", q):
        if un == "UN1173":
            delta += 0.3
        elif re.search(r"acetic\s+acid", t):
            delta -= 0.3
    if re.search(r"sulfuric", q) and re.search(r"\bdrain\b", q):
        if un == "UN1830":
            delta += 0.3
        elif un == "UN2796":
            delta -= 0.2
    return delta


def rerank(
    ctx: QueryContext,
    hits: Sequence[SearchHit],
    top_n: Optional[int] = None,
    weights: RerankWeights = RerankWeights(),
) -> List[SearchHit]:
    """
    Re-score the head of a hybrid result list with domain features.

    Each hit keeps its hybrid score; `score` becomes hybrid + adjustments
    and `rerank_bonus` records the adjustment. Ordering is by score, then
    candidate id.
    """
    head = list(hits[:top_n] if top_n else hits)
    q = ctx.raw.lower()
    percents = ctx.percent_signals
    chemical = " ".join(ctx.chemical_only.replace(",", " ").split())
    query_uns = set(ctx.entities.un_numbers)

    out: List[SearchHit] = []
    for hit in head:
        text = hit.entry.text or ""
        un = hit.un_number
        delta = weights.numeric * numeric_affinity(percents, text)
        delta += weights.interval * interval_affinity(percents, text)
        name = _canonical_name(hit)
        if name and name == chemical:
            delta += weights.exact_name
        delta += SOURCE_BOOSTS.get(hit.entry.source, 0.0)
        if un and un in query_uns:
            delta += weights.un_literal
        delta += _confusable_adjustment(q, text, un)
        out.append(replace(hit, score=hit.hybrid_score + delta, rerank_bonus=delta))

    out.sort(key=lambda h: (-h.score, h.entry.id))
    if out:
        logger.debug(
            "rerank.top id=%s score=%.3f bonus=%.3f", out[0].entry.id, out[0].score, out[0].rerank_bonus
        )
    return out
