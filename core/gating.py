# core/gating.py
import re
from dataclasses import dataclass
from typing import List, Optional
from util.types import MetadataFilters


@dataclass(frozen=True)
class FamilyRule:
    """Query pattern -> structural pre-filter on base_name (and class)."""

    name: str
    match: re.Pattern
    base_regex: str
    class_regex: Optional[str] = None

    def filters(self) -> MetadataFilters:
        out: MetadataFilters = {"base_name": {"regex": self.base_regex}}
        if self.class_regex:
            out["class"] = {"regex": self.class_regex}
        return out


def _rx(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


# Ordered: first match wins. Ethyl acetate sits above acetic acid so
# "acetic acid ethyl ester" is not gated to the acid family.
FAMILIES: List[FamilyRule] = [
    FamilyRule("ethyl_acetate", _rx(r"ethyl\s+acetate|ethyl\s+ethanoate|\betoac\b|acetic\s+acid\s+ethyl\s+ester"), "ethyl acetate", "^3"),
    FamilyRule("nitric", _rx(r"\bnitric\b|aqua\s+fortis|\brfna\b|red\s+fuming"), "nitric acid|nitrating acid"),
    FamilyRule("sulfuric", _rx(r"\bsulfuric\b|\boleum\b|fuming\s+sulfuric|oil\s+of\s+vitriol"), r"sulfuric acid|\boleum\b"),
    FamilyRule("hydrochloric", _rx(r"\bhydrochloric\b|\bmuriatic\b"), "hydrochloric acid"),
    FamilyRule("acetic", _rx(r"\bacetic\b|\bvinegar\b"), "acetic acid"),
    FamilyRule("sodium_hydroxide", _rx(r"\bsodium\s+hydroxide\b|\blye\b|caustic\s+soda"), "sodium hydroxide"),
    FamilyRule("potassium_hydroxide", _rx(r"\bpotassium\s+hydroxide\b|caustic\s+potash"), "potassium hydroxide"),
    FamilyRule("hydrogen_peroxide", _rx(r"\bhydrogen\s+peroxide\b"), "hydrogen peroxide"),
    FamilyRule("hypochlorite", _rx(r"\bhypochlorite\b|\bbleach\b"), "hypochlorite solutions"),
    FamilyRule("ethanol", _rx(r"denatured\s+alcohol|\bethanol\b|ethyl\s+alcohol"), r"ethanol|ethyl alcohol|alcohols, n\.o\.s\.", "^3"),
    FamilyRule("isopropanol", _rx(r"isopropyl\s+alcohol|\bisopropanol\b|2-propanol|\bipa\b"), "isopropyl alcohol|isopropanol", "^3"),
    FamilyRule("methanol", _rx(r"\bmethanol\b|methyl\s+alcohol"), "methanol", "^3"),
    FamilyRule(
        "petroleum",
        _rx(r"petroleum|mineral\s+spirits|white\s+spirit|\bnaph?tha\b|vm\s*&?\s*p|ligroin|hydrocarbon|paint\s+thinner"),
        "petroleum distillates|hydrocarbons, liquid|naphtha|white spirits|petroleum ether",
        "^3",
    ),
    FamilyRule("hexane", _rx(r"\bn-?hexane\b|\bhexanes?\b|\bheptane\b|\bpentane\b"), "hexane|hexanes|n-hexane|heptane|pentane", "^3"),
    FamilyRule("kerosene", _rx(r"\bkerosene\b|\bk-?1\b"), "kerosene", "^3"),
    FamilyRule("acetone", _rx(r"\bacetone\b"), "acetone", "^3"),
    FamilyRule("toluene", _rx(r"\btoluene\b|\btoluol\b"), "toluene", "^3"),
    FamilyRule("xylene", _rx(r"\bxylenes?\b|\bxylol\b"), "xylenes?", "^3"),
]


def detect_family(text: str, families: Optional[List[FamilyRule]] = None) -> Optional[FamilyRule]:
    s = (text or "").lower()
    for fam in families if families is not None else FAMILIES:
        if fam.match.search(s):
            return fam
    return None
