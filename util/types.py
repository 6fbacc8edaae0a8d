# util/types.py
from typing import Dict, Literal, Optional, TypedDict


PackingGroupValue = Literal["I", "II", "III", "NONE"]


class FieldFilter(TypedDict, total=False):
    # Exactly one of the two is expected; `regex` is searched case-insensitively.
    regex: str
    equals: str


# Flow: gating filters are AND-ed per metadata field.
MetadataFilters = Dict[str, FieldFilter]


class HistoricalRecord(TypedDict, total=False):
    sku: Optional[str]
    product_name: Optional[str]
    chosen_un: Optional[str]
