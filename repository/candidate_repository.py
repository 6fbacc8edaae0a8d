# repository/candidate_repository.py
import asyncio
from pathlib import Path
from typing import List, Optional
import numpy as np
from pydantic import ValidationError
from core.entities import CandidateEntry
from model.index import IndexFile
from util.enums import ErrorMessage
from util.errors import IndexUnavailableError
import logging

logger = logging.getLogger(__name__)


class CandidateRepository:
    """
    Read-only accessor for the regulatory knowledge base.

    Flow:
    - load_candidates() returns every entry with its precomputed embedding.
    - query_by_exact_field() serves lookups for records kept outside the
      loaded index (e.g. verified products in a relational store).
    """

    model: str = "local-hash"

    async def load_candidates(self) -> List[CandidateEntry]:
        raise NotImplementedError

    async def query_by_exact_field(
        self, source: str, field: str, value: str
    ) -> Optional[CandidateEntry]:
        return None


class JsonCandidateRepository(CandidateRepository):
    """Index file written by the offline indexing job: {dim, model, docs[]}."""

    def __init__(self, path: str) -> None:
        self._path = Path(path)
        self.declared_dim: Optional[int] = None

    def _read(self) -> IndexFile:
        try:
            raw = self._path.read_bytes()
        except OSError as e:
            logger.error("index.read.error path=%s", self._path)
            raise IndexUnavailableError.from_info(
                ErrorMessage.INDEX_UNAVAILABLE, str(self._path)
            ) from e
        try:
            return IndexFile.model_validate_json(raw)
        except ValidationError as e:
            logger.error("index.parse.error path=%s errors=%d", self._path, e.error_count())
            raise IndexUnavailableError.from_info(
                ErrorMessage.INDEX_UNAVAILABLE, f"{self._path} is not a valid index"
            ) from e

    async def load_candidates(self) -> List[CandidateEntry]:
        index = await asyncio.to_thread(self._read)
        self.declared_dim = index.dim
        self.model = index.model
        out = [
            CandidateEntry(
                id=d.id,
                source=d.source,
                text=d.text,
                embedding=np.asarray(d.embedding, dtype=np.float32),
                metadata=dict(d.metadata),
            )
            for d in index.docs
        ]
        logger.info("index.read path=%s docs=%d model=%s", self._path, len(out), index.model)
        return out


class InMemoryCandidateRepository(CandidateRepository):
    """Entries handed over directly, e.g. by a freshly built index."""

    def __init__(
        self,
        entries: List[CandidateEntry],
        model: str = "local-hash",
        declared_dim: Optional[int] = None,
    ) -> None:
        self._entries = list(entries)
        self.model = model
        self.declared_dim = declared_dim

    async def load_candidates(self) -> List[CandidateEntry]:
        return list(self._entries)
