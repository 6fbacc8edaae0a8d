# core/query_processor.py
import re
from typing import Dict, List, Optional, Tuple
from core.entities import QueryContext, QueryEntities
from core.gating import detect_family
from util.enums import QueryIntent

# Synonym clusters keyed by canonical chemical name
SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "nitric acid": ("aqua fortis", "rfna", "red fuming nitric acid", "hno3"),
    "sulfuric acid": ("oil of vitriol", "oleum", "fuming sulfuric acid", "battery acid", "h2so4"),
    "hydrochloric acid": ("muriatic acid", "hcl"),
    "sodium hydroxide": ("caustic soda", "lye", "naoh"),
    "potassium hydroxide": ("caustic potash", "koh"),
    "ammonia": ("spirits of ammonia",),
    "acetic acid": ("vinegar",),
    "ethanol": ("ethyl alcohol", "denatured alcohol"),
    "isopropyl alcohol": ("isopropanol", "2-propanol", "ipa"),
    "kerosene": ("k-1", "k1"),
    "hexane": ("hexanes", "n-hexane"),
    "sodium hypochlorite": ("bleach", "hypochlorite solution", "liquid bleach"),
    "methyl ethyl ketone": ("mek", "2-butanone", "ethyl methyl ketone"),
    "ethyl acetate": ("ethyl ethanoate", "etoac"),
}

_PERCENT = re.compile(r"(\d{1,3}(?:\.\d+)?)\s*(?:%|percent\b)", re.IGNORECASE)
_UN = re.compile(r"\bUN\s?-?(\d{3,4})\b", re.IGNORECASE)
_PROOF = re.compile(r"(\d{2,3})\s*proof\b", re.IGNORECASE)
_CAS = re.compile(r"\b(\d{2,7}-\d{2}-\d)\b")
_PACKING_GROUP = re.compile(r"\b(?:packing\s+group|pg)\s*(iii|ii|i)\b", re.IGNORECASE)
_HAZARD_CLASS = re.compile(r"\b(?:class|division)\s+([1-9](?:\.\d)?)\b", re.IGNORECASE)
_QUANTITY = re.compile(
    r"(\d+(?:\.\d+)?)\s*(kg|mg|g|lbs?|oz|ml|l|gal|gallons?|liters?|litres?|qt|quarts?)\b",
    re.IGNORECASE,
)

# Container / size tokens removed for the chemical-only variant
_MULTIPACK = re.compile(r"\b\d+\s*[x×]\s*(?=\d)")
_SIZE = re.compile(
    r"\b\d+(?:\.\d+)?\s*-?\s*(?:gallons?|gal|liters?|litres?|ml|l|fl\s*oz|oz|lbs?|pounds?|kg|g|qt|quarts?|pints?)\b"
)
_CONTAINER = re.compile(
    r"\b(?:drums?|pails?|totes?|ibcs?|bottles?|jugs?|carboys?|cases?|bags?|boxes|containers?|"
    r"cubes?|jerricans?|buckets?|cans?|packs?)\b"
)

_INTENT_PATTERNS: List[Tuple[QueryIntent, re.Pattern]] = [
    (QueryIntent.CLASSIFICATION, re.compile(r"\b(classify|classification|class|hazard|category|nmfc|freight class)\b")),
    (QueryIntent.EMERGENCY_RESPONSE, re.compile(r"\b(emergency|spill|leak|accident|response|erg|guide|cleanup|contain)\b")),
    (QueryIntent.SHIPPING_REQUIREMENTS, re.compile(r"\b(ship|transport|requirements|regulations|rules|allowed|prohibited)\b")),
    (QueryIntent.PACKAGING, re.compile(r"\b(package|packing|container|drum|tote|ibc|bulk|non-bulk)\b")),
    (QueryIntent.DOCUMENTATION, re.compile(r"\b(document|paper|manifest|bol|label|placard|marking|declaration)\b")),
    (QueryIntent.COMPLIANCE, re.compile(r"\b(comply|compliance|violation|requirement|regulation|legal|dot|cfr)\b")),
    (QueryIntent.PRODUCT_LOOKUP, re.compile(r"\b(product|sku|cas|un\d{4}|lookup|find|search)\b")),
]


def normalize(text: str) -> str:
    """
    Lower-case, strip punctuation except percent signs, collapse whitespace.
    Decimal points and intra-word hyphens survive ("12.5%", "n-hexane").
    """
    s = (text or "").lower()
    s = re.sub(r"[^\w\s%.\-]", " ", s)
    s = re.sub(r"(?<!\d)\.|\.(?!\d)", " ", s)
    s = re.sub(r"(?<!\w)-|-(?!\w)", " ", s)
    return re.sub(r"\s+", " ", s).strip()


def _to_float(raw: str) -> Optional[float]:
    try:
        return float(raw)
    except ValueError:
        return None


def parse_percentages(text: str) -> List[float]:
    out = []
    for m in _PERCENT.finditer(text or ""):
        v = _to_float(m.group(1))
        if v is not None:
            out.append(v)
    return out


def parse_percent(text: str) -> Optional[float]:
    pcts = parse_percentages(text)
    return pcts[0] if pcts else None


def parse_proof(text: str) -> Optional[int]:
    m = _PROOF.search(text or "")
    return int(m.group(1)) if m else None


def proof_to_percent(proof: int) -> float:
    return round(proof / 2, 1)


def detect_entities(text: str) -> QueryEntities:
    s = text or ""
    return QueryEntities(
        percentages=parse_percentages(s),
        un_numbers=[f"UN{m.group(1).zfill(4)}" for m in _UN.finditer(s)],
        proofs=[int(m.group(1)) for m in _PROOF.finditer(s)],
        cas_numbers=[m.group(1) for m in _CAS.finditer(s)],
        packing_groups=[m.group(1).upper() for m in _PACKING_GROUP.finditer(s)],
        hazard_classes=[m.group(1) for m in _HAZARD_CLASS.finditer(s)],
        quantities=[(float(m.group(1)), m.group(2).lower()) for m in _QUANTITY.finditer(s)],
    )


def detect_intent(text: str) -> QueryIntent:
    s = (text or "").lower()
    best, best_hits = QueryIntent.GENERAL, 0
    for intent, pattern in _INTENT_PATTERNS:
        hits = len(pattern.findall(s))
        if hits > best_hits:
            best, best_hits = intent, hits
    return best


def strip_packaging(normalized: str) -> str:
    """'sulfuric acid 98% 55 gallon drum' -> 'sulfuric acid 98%'."""
    s = _MULTIPACK.sub(" ", normalized)
    s = _SIZE.sub(" ", s)
    s = _CONTAINER.sub(" ", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s or normalized


def synonym_terms(text: str) -> List[str]:
    s = (text or "").lower()
    extra: List[str] = []
    for canon, alts in SYNONYMS.items():
        if canon in s or any(re.search(rf"(?<![\w-]){re.escape(a)}(?![\w-])", s) for a in alts):
            extra.append(" ".join((canon,) + alts))
    return extra


def expand(text: str) -> Tuple[str, List[str]]:
    """
    Append synonym clusters and a proof-derived percentage ("190 proof" ->
    "95.0%") so lexical and numeric matching can fire. Returns
    (expanded_text, added_terms).
    """
    terms: List[str] = []
    proof = parse_proof(text)
    if proof is not None:
        terms.append(f"{proof_to_percent(proof)}%")
    terms.extend(synonym_terms(text))
    expanded = " ".join([text] + terms) if terms else text
    return expanded, terms


def build_context(product_name: str) -> QueryContext:
    normalized = normalize(product_name)
    chemical_only = strip_packaging(normalized)
    expanded, terms = expand(chemical_only)
    family = detect_family(expanded)
    return QueryContext(
        raw=product_name,
        normalized=normalized,
        chemical_only=chemical_only,
        expanded=expanded,
        entities=detect_entities(product_name),
        intent=detect_intent(product_name),
        family=family.name if family else None,
        filters=family.filters() if family else None,
        expansion_terms=terms,
    )
