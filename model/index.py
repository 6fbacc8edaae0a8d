# model/index.py
from typing import Any
from pydantic import BaseModel, Field


class IndexDocument(BaseModel):
    id: str
    source: str
    text: str
    embedding: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)


class IndexFile(BaseModel):
    """On-disk knowledge base written by the offline indexing job."""

    dim: int | None = None
    model: str = "local-hash"
    docs: list[IndexDocument] = Field(default_factory=list)
