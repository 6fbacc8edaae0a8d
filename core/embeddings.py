# core/embeddings.py
from typing import Dict, List, Optional, Sequence, Tuple
import asyncio
import numpy as np
from config.settings import Settings
from core.embedding_providers import (
    REMOTE_PRIORITY,
    EmbeddingProvider,
    LocalHashProvider,
    SentenceTransformerProvider,
    l2_normalize,
)
from repository.embedding_cache_repository import EmbeddingCacheRepository
from util.constants import LOCAL_HASH_PROVIDER
from util.errors import ProviderUnavailableError
from util.timing import timed
import logging

logger = logging.getLogger(__name__)


class EmbeddingService:
    """
    Ordered provider strategies behind one `embed` call.

    Resolution: explicit provider -> EMBED_PROVIDER -> credentialed remote
    providers in priority order -> local hashing (always last, never fails).
    """

    def __init__(
        self,
        settings: Settings,
        cache: Optional[EmbeddingCacheRepository] = None,
        providers: Optional[Sequence[EmbeddingProvider]] = None,
    ) -> None:
        self._settings = settings
        self._cache = cache
        model = settings.EMBED_MODEL
        if providers is None:
            providers = [cls(settings) for cls in REMOTE_PRIORITY]
            providers.append(SentenceTransformerProvider(settings))
        self._remote: Dict[str, EmbeddingProvider] = {p.name: p for p in providers}
        self._remote_order: List[str] = [p.name for p in providers]
        self._local = LocalHashProvider(settings)
        # EMBED_MODEL applies to the provider picked by EMBED_PROVIDER only
        configured = (settings.EMBED_PROVIDER or "auto").lower()
        if model and configured in self._remote:
            self._remote[configured].model = model

    def resolve_chain(self, provider: Optional[str] = None) -> List[EmbeddingProvider]:
        requested = (provider or "auto").lower()
        if requested == "auto":
            requested = (self._settings.EMBED_PROVIDER or "auto").lower()

        chain: List[EmbeddingProvider] = []
        if requested == LOCAL_HASH_PROVIDER:
            pass
        elif requested != "auto":
            picked = self._remote.get(requested)
            if picked is None:
                logger.warning("embed.provider.unknown name=%s", requested)
            else:
                chain.append(picked)
        else:
            for name in self._remote_order:
                p = self._remote[name]
                if p.name != SentenceTransformerProvider.name and p.available():
                    chain.append(p)
        chain.append(self._local)
        return chain

    async def embed(
        self,
        texts: Sequence[str],
        provider: Optional[str] = None,
        dim: Optional[int] = None,
    ) -> List[np.ndarray]:
        """
        One L2-normalized vector per text. When `dim` is given every vector
        has exactly that dimension. Never raises.
        """
        items = [t or "" for t in texts]
        if not items:
            return []

        out: List[Optional[np.ndarray]] = [None] * len(items)
        if self._cache is not None:
            for i, t in enumerate(items):
                hit = await self._cache.get(t)
                if hit is not None and (dim is None or hit.vector.shape[0] == dim):
                    out[i] = l2_normalize(hit.vector)

        missing = [i for i, v in enumerate(out) if v is None]
        if missing:
            logger.debug("embed.cache hits=%d misses=%d", len(items) - len(missing), len(missing))
            vectors, used = await self._embed_uncached([items[i] for i in missing], provider, dim)
            for i, v in zip(missing, vectors):
                out[i] = v
            if self._cache is not None and used != LOCAL_HASH_PROVIDER:
                for i, v in zip(missing, vectors):
                    await self._cache.put(items[i], v, used)
        return [v for v in out if v is not None]

    async def embed_with_model(
        self,
        texts: Sequence[str],
        provider: Optional[str] = None,
        dim: Optional[int] = None,
    ) -> Tuple[List[np.ndarray], str]:
        """
        Like `embed`, but skips the cache so every vector comes from one
        provider, and returns that provider's model id alongside them.
        """
        items = [t or "" for t in texts]
        if not items:
            return [], LOCAL_HASH_PROVIDER
        return await self._embed_uncached(items, provider, dim)

    async def _embed_uncached(
        self, texts: List[str], provider: Optional[str], dim: Optional[int]
    ) -> Tuple[List[np.ndarray], str]:
        for p in self.resolve_chain(provider):
            if p.name == LOCAL_HASH_PROVIDER:
                return self._local.embed_sync(texts, dim), LOCAL_HASH_PROVIDER
            try:
                with timed(logger, "embed.remote", logging.DEBUG, provider=p.name, n=len(texts)):
                    vecs = await asyncio.wait_for(
                        p.embed(texts, dim), timeout=self._settings.EMBED_TIMEOUT_SECONDS
                    )
                if len(vecs) != len(texts):
                    raise ProviderUnavailableError(p.name, "vector count mismatch")
                if dim is not None and any(v.shape[0] != dim for v in vecs):
                    raise ProviderUnavailableError(p.name, f"dimension is not {dim}")
                return [l2_normalize(v) for v in vecs], p.model_id
            except asyncio.TimeoutError:
                logger.warning("embed.provider.timeout provider=%s", p.name)
            except ProviderUnavailableError as e:
                logger.warning("embed.provider.fail provider=%s reason=%s", p.name, e.reason)
            except Exception as e:
                # network, auth, quota, malformed payloads: all advance the chain
                logger.warning("embed.provider.fail provider=%s error=%r", p.name, e)
        # resolve_chain always ends with local hashing
        return self._local.embed_sync(texts, dim), LOCAL_HASH_PROVIDER
