# core/entities.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import numpy as np
from util.enums import QueryIntent
from util.types import MetadataFilters


@dataclass(frozen=True)
class CandidateEntry:
    """
    One row of the regulatory knowledge base with an L2-normalized embedding.
    """

    id: str
    source: str
    text: str
    embedding: np.ndarray  # (d,) float32
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CandidateIndex:
    entries: List[CandidateEntry]
    dim: int
    model: str
    matrix: np.ndarray  # (n, d) float32, rows aligned with `entries`


@dataclass(frozen=True)
class CachedEmbedding:
    vector: np.ndarray
    model: str
    hit_count: int = 0


@dataclass
class QueryEntities:
    percentages: List[float] = field(default_factory=list)
    un_numbers: List[str] = field(default_factory=list)
    proofs: List[int] = field(default_factory=list)
    cas_numbers: List[str] = field(default_factory=list)
    packing_groups: List[str] = field(default_factory=list)
    hazard_classes: List[str] = field(default_factory=list)
    quantities: List[tuple] = field(default_factory=list)

    @property
    def proof_percentages(self) -> List[float]:
        return [round(p / 2, 1) for p in self.proofs]


@dataclass
class QueryContext:
    raw: str
    normalized: str
    chemical_only: str  # packaging/size tokens stripped
    expanded: str
    entities: QueryEntities
    intent: QueryIntent = QueryIntent.GENERAL
    family: Optional[str] = None
    filters: Optional[MetadataFilters] = None
    expansion_terms: List[str] = field(default_factory=list)

    @property
    def percent_signals(self) -> List[float]:
        """Explicit percentages followed by proof-derived ones."""
        return list(self.entities.percentages) + self.entities.proof_percentages


@dataclass
class SearchHit:
    entry: CandidateEntry
    vector_score: float
    keyword_score: float
    hybrid_score: float
    score: float  # hybrid score plus rerank adjustments
    rerank_bonus: float = 0.0

    @property
    def un_number(self) -> str:
        v = self.entry.metadata.get("id_number") or self.entry.metadata.get("unNumber")
        return str(v).upper() if v else ""
