# core/confidence.py
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
from core.entities import QueryContext, SearchHit
from model.classification import ClassificationResult, ValidationReport
from util.constants import HAZARD_CLASSES, Confidence
from util.enums import Outcome
from util.functions import clamp


@dataclass(frozen=True)
class FamilyFloor:
    """Minimum confidence when the query and the chosen UN agree on a family."""

    name: str
    query: re.Pattern
    un_numbers: frozenset
    floor: float


def _rx(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


FAMILY_FLOORS: List[FamilyFloor] = [
    FamilyFloor("ethyl_acetate", _rx(r"ethyl\s+acetate|\betoac\b"), frozenset({"UN1173"}), 0.8),
    FamilyFloor("proof_ethanol", _rx(r"\d{2,3}\s*proof\b"), frozenset({"UN1170", "UN1987"}), 0.8),
    FamilyFloor("sulfuric_drain_cleaner", _rx(r"sulfuric.*\bdrain\b|\bdrain\b.*sulfuric"), frozenset({"UN1830"}), 0.75),
    FamilyFloor("hexane", _rx(r"\bn-?hexanes?\b|\bhexanes?\b"), frozenset({"UN1208"}), 0.8),
]


def agreement_count(hits: Sequence[SearchHit], top_k: int = 5) -> int:
    """How many of the top `top_k` hits resolve to the leader's UN number."""
    if not hits:
        return 0
    lead = hits[0].un_number
    if not lead:
        return 1
    return sum(1 for h in hits[:top_k] if h.un_number == lead)


def family_floor(query_text: str, un_number: str, floors: Optional[List[FamilyFloor]] = None) -> float:
    best = 0.0
    for f in floors if floors is not None else FAMILY_FLOORS:
        if un_number in f.un_numbers and f.query.search(query_text or ""):
            best = max(best, f.floor)
    return best


def calculate(
    ctx: QueryContext,
    hits: Sequence[SearchHit],
    top_k: int = 5,
    floors: Optional[List[FamilyFloor]] = None,
) -> float:
    """
    clamp(base + agreement, 0.3, 0.99), base being the reranked top score
    clamped to [0, 1] and agreement +0.1 per extra top-k hit sharing the
    leader's UN number. Family floors then apply with max.
    """
    if not hits:
        return Confidence.NO_MATCH
    base = clamp(hits[0].score, 0.0, 1.0)
    n = agreement_count(hits, top_k)
    bonus = Confidence.AGREEMENT_STEP * max(0, n - 1)
    conf = clamp(base + bonus, Confidence.FLOOR, Confidence.CEILING)
    floor = family_floor(ctx.raw, hits[0].un_number, floors)
    return min(Confidence.CEILING, max(conf, floor))


def with_history(confidence: float, agreeing: int) -> float:
    if agreeing <= 0:
        return confidence
    return min(Confidence.CEILING, confidence + Confidence.HISTORY_BONUS)


def confidence_factors(result: ClassificationResult) -> Dict[str, float]:
    """
    Weighted quality score: base 0.4, source 0.3, completeness 0.2,
    verification (ERG guide present) 0.1.
    """
    source = result.source.lower()
    if "verified" in source:
        src = 1.0
    elif "database" in source:
        src = 0.8
    elif "cfr" in source:
        src = 0.7
    elif "historical" in source:
        src = 0.6
    else:
        src = 0.4
    fields = (result.un_number, result.proper_shipping_name, result.hazard_class, result.packing_group)
    completeness = sum(1 for f in fields if f) / len(fields)
    verification = 1.0 if result.erg_guide else 0.0
    score = result.confidence * 0.4 + src * 0.3 + completeness * 0.2 + verification * 0.1
    return {
        "score": round(score, 4),
        "base": result.confidence,
        "source": src,
        "completeness": completeness,
        "verification": verification,
    }


_UN_FORMAT = re.compile(r"^UN\d{4}$")


def validate_classification(result: ClassificationResult) -> ValidationReport:
    errors: List[str] = []
    warnings: List[str] = []

    if result.exemption_reason or result.outcome == Outcome.NON_HAZARDOUS:
        return ValidationReport(is_valid=True, errors=[], warnings=[])

    if result.un_number:
        if not _UN_FORMAT.match(result.un_number):
            errors.append(f"Invalid UN number format: {result.un_number}")
        if not result.hazard_class:
            errors.append("Hazard class is required for hazmat shipments")
        elif result.hazard_class not in HAZARD_CLASSES:
            warnings.append(f"Unusual hazard class: {result.hazard_class}")
        if not result.proper_shipping_name:
            errors.append("Proper shipping name is required for hazmat shipments")
        if result.packing_group and result.packing_group not in ("I", "II", "III", "NONE"):
            errors.append(f"Invalid packing group: {result.packing_group}")

    if result.confidence < Confidence.LOW_WARNING:
        warnings.append(f"Low confidence classification: {round(result.confidence * 100)}%")

    return ValidationReport(is_valid=not errors, errors=errors, warnings=warnings)
