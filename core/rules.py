# core/rules.py
"""
Ordered rule tables consulted before retrieval.

Both tables are first-match-wins. A rule whose pattern matches but whose
concentration bounds do not hold is skipped, so a more specific rule can
sit above a generic one for the same substance. Keep specific patterns
(drain cleaner, anhydrous, "EE acetate") above their generic siblings.
"""

import re
from dataclasses import dataclass
from typing import List, Optional
from core.query_processor import parse_percent, parse_proof, proof_to_percent


def _rx(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


@dataclass(frozen=True)
class ConcentrationBand:
    min_percent: Optional[float] = None  # exclusive
    max_percent: Optional[float] = None  # inclusive
    requires_percent: bool = False

    def admits(self, pct: Optional[float]) -> bool:
        if pct is None:
            return not self.requires_percent
        if self.min_percent is not None and pct <= self.min_percent:
            return False
        if self.max_percent is not None and pct > self.max_percent:
            return False
        return True


@dataclass(frozen=True)
class DirectRule:
    name: str
    pattern: re.Pattern
    un_number: str
    hazard_class: str
    packing_group: str
    proper_shipping_name: str
    band: ConcentrationBand = ConcentrationBand()
    labels: Optional[str] = None

    def matches(self, text: str, pct: Optional[float]) -> bool:
        return bool(self.pattern.search(text)) and self.band.admits(pct)


@dataclass(frozen=True)
class NonHazardRule:
    name: str
    pattern: re.Pattern
    reason: str  # may reference {pct}
    band: ConcentrationBand = ConcentrationBand()

    def matches(self, text: str, pct: Optional[float]) -> bool:
        return bool(self.pattern.search(text)) and self.band.admits(pct)

    def explain(self, pct: Optional[float]) -> str:
        return self.reason.format(pct=_fmt_pct(pct))


@dataclass(frozen=True)
class RuleMatch:
    rule: DirectRule
    percent: Optional[float]

    @property
    def note(self) -> str:
        if self.percent is None:
            return self.rule.name
        return f"{self.rule.name} {_fmt_pct(self.percent)}%"


def _fmt_pct(pct: Optional[float]) -> str:
    if pct is None:
        return ""
    return f"{pct:g}"


def _band(lo: Optional[float] = None, hi: Optional[float] = None, required: bool = False) -> ConcentrationBand:
    return ConcentrationBand(min_percent=lo, max_percent=hi, requires_percent=required)


NON_HAZARD_RULES: List[NonHazardRule] = [
    NonHazardRule(
        "ethylene_glycol",
        _rx(r"ethylene\s+glycol\b(?![\w\s]*\bether)"),
        "Ethylene glycol is typically not regulated for DOT",
    ),
    NonHazardRule(
        "propylene_glycol",
        _rx(r"propylene\s+glycol\b(?![\w\s]*\bether)"),
        "Propylene glycol is typically not regulated for DOT",
    ),
    NonHazardRule("castor_oil", _rx(r"castor\s+oil"), "Castor oil is typically not regulated for DOT"),
    NonHazardRule(
        "glycerin",
        _rx(r"vegetable\s+glycerin|\bglycerine?\b|\bglycerol\b"),
        "Glycerin is typically not regulated for DOT",
    ),
    NonHazardRule(
        "magnesium_chloride",
        _rx(r"magnesium\s+chloride"),
        "Magnesium chloride (incl. hexahydrate) is typically not regulated for DOT",
    ),
    NonHazardRule(
        "magnesium_hydroxide",
        _rx(r"magnesium\s+hydroxide"),
        "Magnesium hydroxide is typically not regulated for DOT",
    ),
    NonHazardRule(
        "dilute_acetic_acid",
        _rx(r"acetic\s+acid\b(?!\s+\w+\s+ester)"),
        "Acetic acid {pct}% is not regulated for DOT (≤10% exemption)",
        _band(hi=10, required=True),
    ),
    NonHazardRule(
        "vinegar",
        _rx(r"\bvinegar\b"),
        "Vinegar is typically not regulated for DOT (≤10% acetic acid)",
        _band(hi=10),
    ),
    NonHazardRule(
        "dilute_hypochlorite",
        _rx(r"\bhypochlorite\b|\bbleach\b"),
        "Hypochlorite solution {pct}% is not regulated for DOT (≤10% available chlorine)",
        _band(hi=10, required=True),
    ),
    NonHazardRule(
        "dilute_hydrogen_peroxide",
        _rx(r"hydrogen\s+peroxide"),
        "Hydrogen peroxide {pct}% is not regulated for DOT (<8% exemption)",
        _band(hi=7.99, required=True),
    ),
]


DIRECT_RULES: List[DirectRule] = [
    # Ester first: "acetic acid ethyl ester" must not reach the acid bands
    DirectRule("Ethyl acetate", _rx(r"\bethyl\s+acetate\b|ethyl\s+ethanoate|\betoac\b|acetic\s+acid\s+ethyl\s+ester"),
               "UN1173", "3", "II", "Ethyl acetate"),
    # Sulfuric acid: drain cleaners are concentrated even when unlabeled
    DirectRule("Sulfuric acid drain cleaner", _rx(r"sulfuric.*\bdrain|\bdrain\b.*sulfuric"), "UN1830", "8", "II",
               "Sulfuric acid with more than 51 percent acid"),
    DirectRule("Sulfuric acid", _rx(r"sulfuric\s+acid"), "UN1830", "8", "II",
               "Sulfuric acid with more than 51 percent acid", _band(lo=51, required=True)),
    DirectRule("Sulfuric acid", _rx(r"sulfuric\s+acid"), "UN2796", "8", "II",
               "Sulfuric acid with not more than 51 percent acid", _band(hi=51, required=True)),
    # Hydrochloric acid: PG by concentration
    DirectRule("Hydrochloric acid", _rx(r"(hydrochloric|muriatic)\s+acid"), "UN1789", "8", "III",
               "Hydrochloric acid", _band(hi=20, required=True)),
    DirectRule("Hydrochloric acid", _rx(r"(hydrochloric|muriatic)\s+acid"), "UN1789", "8", "II",
               "Hydrochloric acid", _band(lo=20)),
    # Nitric acid (red fuming is left to retrieval + reranker)
    DirectRule("Nitric acid", _rx(r"nitric\s+acid(?!.*(red\s+fuming|rfna))"), "UN2031", "8", "I",
               "Nitric acid other than red fuming, with more than 70 percent nitric acid", _band(lo=70, required=True)),
    DirectRule("Nitric acid", _rx(r"nitric\s+acid(?!.*(red\s+fuming|rfna))"), "UN2031", "8", "II",
               "Nitric acid other than red fuming, with not more than 70 percent nitric acid", _band(hi=70, required=True)),
    # Acetic acid above the 10% exemption
    DirectRule("Acetic acid, glacial", _rx(r"acetic\s+acid.*\bglacial\b|\bglacial\b.*acetic\s+acid"), "UN2789", "8", "II",
               "Acetic acid, glacial or Acetic acid solution, more than 80 percent acid, by mass", labels="8, 3"),
    DirectRule("Acetic acid", _rx(r"acetic\s+acid"), "UN2789", "8", "II",
               "Acetic acid, glacial or Acetic acid solution, more than 80 percent acid, by mass",
               _band(lo=80, required=True), labels="8, 3"),
    DirectRule("Acetic acid solution", _rx(r"acetic\s+acid"), "UN2790", "8", "II",
               "Acetic acid solution, not less than 50 percent but not more than 80 percent acid, by mass",
               _band(lo=50, hi=80, required=True)),
    DirectRule("Acetic acid solution", _rx(r"acetic\s+acid"), "UN2790", "8", "III",
               "Acetic acid solution, more than 10 percent and less than 50 percent acid, by mass",
               _band(lo=10, hi=50, required=True)),
    # Caustics: solids before solutions
    DirectRule("Sodium hydroxide, solid", _rx(r"(sodium\s+hydroxide|caustic\s+soda|\blye\b).*\b(flakes?|beads?|pellets?|solid|micropearls?|prills?)\b"),
               "UN1823", "8", "II", "Sodium hydroxide, solid"),
    DirectRule("Sodium hydroxide solution", _rx(r"sodium\s+hydroxide|caustic\s+soda"), "UN1824", "8", "II",
               "Sodium hydroxide solution", _band(required=True)),
    DirectRule("Sodium hydroxide solution", _rx(r"(sodium\s+hydroxide|caustic\s+soda).*\bsolution\b"), "UN1824", "8", "II",
               "Sodium hydroxide solution"),
    DirectRule("Potassium hydroxide, solid", _rx(r"(potassium\s+hydroxide|caustic\s+potash).*\b(flakes?|pellets?|solid)\b"),
               "UN1813", "8", "II", "Potassium hydroxide, solid"),
    DirectRule("Potassium hydroxide solution", _rx(r"potassium\s+hydroxide|caustic\s+potash"), "UN1814", "8", "II",
               "Potassium hydroxide, solution", _band(required=True)),
    # Hydrogen peroxide bands
    DirectRule("Hydrogen peroxide", _rx(r"hydrogen\s+peroxide"), "UN2015", "5.1", "I",
               "Hydrogen peroxide, aqueous solutions, stabilized, with more than 60 percent hydrogen peroxide",
               _band(lo=60, required=True), labels="5.1, 8"),
    DirectRule("Hydrogen peroxide", _rx(r"hydrogen\s+peroxide"), "UN2014", "5.1", "II",
               "Hydrogen peroxide, aqueous solutions with not less than 20 percent but not more than 60 percent hydrogen peroxide",
               _band(lo=20, hi=60, required=True), labels="5.1, 8"),
    DirectRule("Hydrogen peroxide", _rx(r"hydrogen\s+peroxide"), "UN2984", "5.1", "III",
               "Hydrogen peroxide, aqueous solutions with not less than 8 percent but less than 20 percent hydrogen peroxide",
               _band(hi=20, required=True)),
    # Hypochlorite above the 10% exemption
    DirectRule("Hypochlorite solution", _rx(r"\bhypochlorite\b|\bbleach\b"), "UN1791", "8", "II",
               "Hypochlorite solutions", _band(lo=20, required=True)),
    DirectRule("Hypochlorite solution", _rx(r"\bhypochlorite\b|\bbleach\b"), "UN1791", "8", "III",
               "Hypochlorite solutions", _band(lo=10, required=True)),
    # Ferric chloride: anhydrous before solution
    DirectRule("Ferric chloride, anhydrous", _rx(r"ferric\s+chloride.*\banhydrous\b|\banhydrous\b.*ferric\s+chloride"),
               "UN1773", "8", "III", "Ferric chloride, anhydrous"),
    DirectRule("Ferric chloride solution", _rx(r"ferric\s+chloride"), "UN2582", "8", "III", "Ferric chloride, solution"),
    # Flammable solvents
    DirectRule("Hexanes", _rx(r"\bn-?hexanes?\b|\bhexanes?\b"), "UN1208", "3", "II", "Hexanes"),
    DirectRule("Heptanes", _rx(r"\b(?:n-?)?heptanes?\b"), "UN1206", "3", "II", "Heptanes"),
    DirectRule("Pentane", _rx(r"\b(?:n-?)?pentanes?\b"), "UN1265", "3", "I", "Pentanes, liquid"),
    DirectRule("Denatured alcohol", _rx(r"denatured\s+(ethyl\s+)?alcohol|denatured\s+ethanol"),
               "UN1987", "3", "II", "Alcohols, n.o.s."),
    DirectRule("Ethanol", _rx(r"\bethanol\b|ethyl\s+alcohol"), "UN1170", "3", "II", "Ethanol or Ethyl alcohol",
               _band(lo=24)),
    DirectRule("Methanol", _rx(r"\bmethanol\b|methyl\s+alcohol"), "UN1230", "3", "II", "Methanol", labels="3, 6.1"),
    DirectRule("Methyl ethyl ketone", _rx(r"methyl\s+ethyl\s+ketone|\bmek\b|2-butanone|ethyl\s+methyl\s+ketone"),
               "UN1193", "3", "II", "Ethyl methyl ketone or Methyl ethyl ketone"),
    DirectRule("Isopropyl alcohol", _rx(r"isopropyl\s+alcohol|\bisopropanol\b|2-propanol|\bipa\b"),
               "UN1219", "3", "II", "Isopropanol or Isopropyl alcohol"),
    DirectRule("Kerosene", _rx(r"\bkerosene\b|\bk-?1\b"), "UN1223", "3", "III", "Kerosene"),
    # EE acetate first: the bare EE pattern would otherwise mask it
    DirectRule("Glycol Ether EE Acetate", _rx(r"glycol\s+ether\s+ee\s+acetate|ethylene\s+glycol\s+monoethyl\s+ether\s+acetate"),
               "UN1172", "3", "III", "Ethylene glycol monoethyl ether acetate"),
    DirectRule("Glycol Ether EE", _rx(r"glycol\s+ether\s+ee\b|ethylene\s+glycol\s+monoethyl\s+ether"),
               "UN1171", "3", "III", "Ethylene glycol monoethyl ether"),
]


def effective_percent(text: str) -> Optional[float]:
    """Explicit percentage, else the proof-derived one."""
    pct = parse_percent(text)
    if pct is not None:
        return pct
    proof = parse_proof(text)
    return proof_to_percent(proof) if proof is not None else None


def match_non_hazard(product_name: str, rules: Optional[List[NonHazardRule]] = None) -> Optional[NonHazardRule]:
    s = (product_name or "").lower()
    pct = parse_percent(s)
    for rule in rules if rules is not None else NON_HAZARD_RULES:
        if rule.matches(s, pct):
            return rule
    return None


def match_direct(product_name: str, rules: Optional[List[DirectRule]] = None) -> Optional[RuleMatch]:
    s = (product_name or "").lower()
    pct = effective_percent(s)
    for rule in rules if rules is not None else DIRECT_RULES:
        if rule.matches(s, pct):
            return RuleMatch(rule=rule, percent=pct)
    return None
