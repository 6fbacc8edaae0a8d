# core/candidate_store.py
from typing import Any, Dict, List, Optional, Sequence, Tuple
import asyncio
import numpy as np
from core.embeddings import EmbeddingService
from core.entities import CandidateEntry, CandidateIndex
from repository.candidate_repository import CandidateRepository
from util.enums import ErrorMessage
from util.errors import AppError, IndexUnavailableError
from util.timing import timed
import logging

logger = logging.getLogger(__name__)


def _assemble(entries: List[CandidateEntry], model: str, declared_dim: Optional[int]) -> CandidateIndex:
    if not entries:
        raise IndexUnavailableError.from_info(ErrorMessage.INDEX_UNAVAILABLE, "index is empty")
    dims = {int(e.embedding.shape[0]) for e in entries}
    if len(dims) != 1 or (declared_dim and declared_dim not in dims):
        logger.error("index.dims.mixed dims=%s declared=%s", sorted(dims), declared_dim)
        raise IndexUnavailableError.from_info(
            ErrorMessage.INDEX_DIMENSION_MISMATCH, f"found {sorted(dims)}"
        )
    dim = dims.pop()
    matrix = np.vstack([e.embedding for e in entries]).astype(np.float32, copy=False)
    return CandidateIndex(entries=entries, dim=dim, model=model, matrix=matrix)


class CandidateStore:
    """
    Process-wide, read-only view of the knowledge base.

    Loaded lazily on first use; the lock makes concurrent cold starts share
    one load instead of racing.
    """

    def __init__(self, repository: CandidateRepository) -> None:
        self._repository = repository
        self._index: Optional[CandidateIndex] = None
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._index is not None

    async def ensure_loaded(self) -> CandidateIndex:
        if self._index is not None:
            return self._index
        async with self._lock:
            if self._index is None:
                with timed(logger, "index.load"):
                    try:
                        entries = await self._repository.load_candidates()
                    except AppError:
                        raise
                    except Exception as e:
                        logger.error("index.load.error", exc_info=True)
                        raise IndexUnavailableError.from_info(
                            ErrorMessage.INDEX_UNAVAILABLE, repr(e)
                        ) from e
                    self._index = _assemble(
                        entries,
                        getattr(self._repository, "model", "local-hash"),
                        getattr(self._repository, "declared_dim", None),
                    )
                logger.info(
                    "index.ready n=%d d=%d model=%s",
                    len(self._index.entries),
                    self._index.dim,
                    self._index.model,
                )
        return self._index

    async def find_by_field(
        self, source: str, field: str, value: Any
    ) -> Optional[CandidateEntry]:
        """Exact match on `metadata[field]` among entries of `source`."""
        index = await self.ensure_loaded()
        want = str(value).strip().lower()
        for e in index.entries:
            if e.source != source:
                continue
            got = e.metadata.get(field)
            if got is not None and str(got).strip().lower() == want:
                return e
        return await self._repository.query_by_exact_field(source, field, str(value))


async def build_index(
    rows: Sequence[Dict[str, Any]],
    embeddings: EmbeddingService,
    dim: Optional[int] = None,
    provider: Optional[str] = None,
) -> Tuple[List[CandidateEntry], str]:
    """
    Embed `rows` ({id, source, text, metadata}) into CandidateEntries with
    L2-normalized vectors of one dimension. Also returns the model id of
    the provider that produced the vectors.
    """
    texts = [str(r.get("text") or "") for r in rows]
    with timed(logger, "index.build", n=len(texts)):
        vecs, model = await embeddings.embed_with_model(texts, provider=provider, dim=dim)
    logger.info("index.build.model model=%s", model)
    entries = [
        CandidateEntry(
            id=str(r.get("id") or f"doc-{i}"),
            source=str(r.get("source") or "hmt"),
            text=texts[i],
            embedding=vecs[i],
            metadata=dict(r.get("metadata") or {}),
        )
        for i, r in enumerate(rows)
    ]
    return entries, model
