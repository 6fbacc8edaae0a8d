# model/classification.py
from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from util.enums import Outcome
from util.types import PackingGroupValue


class CitationEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id_number: Optional[str] = None
    base_name: Optional[str] = None
    qualifier: Optional[str] = None


class Citation(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["CFR", "ERG", "VERIFIED"]
    ref: str
    entry: Optional[CitationEntry] = None
    guide: Optional[str] = None


class ClassificationResult(BaseModel):
    """
    Immutable output of one classify() call.

    A null UN number means "not classified" or "explicitly non-hazardous";
    `outcome`, `source` and `explanation` tell the two apart.
    """

    model_config = ConfigDict(frozen=True)

    un_number: Optional[str] = None
    proper_shipping_name: Optional[str] = None
    hazard_class: Optional[str] = None
    packing_group: Optional[PackingGroupValue] = None
    labels: Optional[str] = None
    erg_guide: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)
    source: str
    outcome: Outcome
    explanation: str = ""
    exemption_reason: Optional[str] = None
    citations: tuple[Citation, ...] = ()

    # Full HMT cell passthrough
    packaging: Optional[Any] = None
    quantity_limitations: Optional[Any] = None
    vessel_stowage: Optional[Any] = None
    special_provisions: Optional[Any] = None

    search_time_ms: Optional[int] = None

    @model_validator(mode="after")
    def _null_pattern(self) -> "ClassificationResult":
        if self.un_number is None:
            if self.hazard_class is not None or self.packing_group is not None:
                raise ValueError(
                    "hazard_class and packing_group must be null when un_number is null"
                )
            if self.outcome == Outcome.CLASSIFIED:
                raise ValueError("a classified result needs a UN number")
        elif self.outcome != Outcome.CLASSIFIED:
            raise ValueError("only classified results carry a UN number")
        elif self.hazard_class is None and self.packing_group is None:
            raise ValueError("a UN number needs a hazard_class or packing_group")
        return self


class ValidationReport(BaseModel):
    is_valid: bool
    errors: list[str] = []
    warnings: list[str] = []


class ProductRequest(BaseModel):
    sku: Optional[str] = None
    name: str = Field(min_length=1)
