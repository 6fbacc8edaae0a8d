# repository/embedding_cache_repository.py
import asyncio
import time
from typing import Dict, Final, Optional
import numpy as np
from redis.asyncio import Redis
from config.cache import get_redis
from config.settings import settings
from core.entities import CachedEmbedding
from repository.namespaces import EMBEDDINGS
from util.functions import content_hash
import logging

KEY_PREFIX: Final[str] = EMBEDDINGS
logger = logging.getLogger(__name__)


class EmbeddingCacheRepository:
    """
    Content-hash keyed embedding cache.

    Flow:
    - get(text) -> vector on hit; bumps hit_count and last_accessed.
    - put(text, vector, model) on miss, after a remote provider answered.
    - Not authoritative: any backend failure is logged and reads as a miss.
    """

    async def get(self, text: str) -> Optional[CachedEmbedding]:
        raise NotImplementedError

    async def put(self, text: str, vector: np.ndarray, model: str) -> None:
        raise NotImplementedError


class RedisEmbeddingCacheRepository(EmbeddingCacheRepository):
    """
    One Redis hash per text hash: embedding (float32 bytes), model,
    hit_count, last_accessed. Eviction is left to Redis policy / optional TTL.
    """

    def __init__(self, ttl_seconds: Optional[int] = settings.EMBEDDING_CACHE_TTL_SECONDS) -> None:
        self._ttl = int(ttl_seconds) if ttl_seconds else None

    @staticmethod
    async def _client() -> Redis:
        return await get_redis()

    @staticmethod
    def _key(text: str) -> str:
        return f"{KEY_PREFIX}:{content_hash(text)}"

    async def get(self, text: str) -> Optional[CachedEmbedding]:
        key = self._key(text)
        try:
            r = await self._client()
            h = await r.hgetall(key)
            if not h:
                return None
            raw = h.get(b"embedding")
            if not raw:
                return None
            hits = await r.hincrby(key, "hit_count", 1)
            await r.hset(key, "last_accessed", str(int(time.time())))
            if self._ttl:
                await r.expire(key, self._ttl)
            model = h.get(b"model", b"").decode("utf-8")
            vec = np.frombuffer(raw, dtype=np.float32).copy()
            return CachedEmbedding(vector=vec, model=model, hit_count=int(hits))
        except Exception:
            logger.warning("embed.cache.get.error", exc_info=True)
            return None

    async def put(self, text: str, vector: np.ndarray, model: str) -> None:
        key = self._key(text)
        mapping = {
            "embedding": np.asarray(vector, dtype=np.float32).tobytes(),
            "model": model,
            "last_accessed": str(int(time.time())),
        }
        try:
            r = await self._client()
            # Last writer wins on the vector; hit_count only initialized once
            await r.hset(key, mapping=mapping)
            await r.hsetnx(key, "hit_count", 0)
            if self._ttl:
                await r.expire(key, self._ttl)
        except Exception:
            logger.warning("embed.cache.put.error", exc_info=True)


class InMemoryEmbeddingCacheRepository(EmbeddingCacheRepository):
    """Process-local backend used when REDIS_URL is not configured."""

    def __init__(self) -> None:
        self._entries: Dict[str, dict] = {}
        self._lock = asyncio.Lock()

    async def get(self, text: str) -> Optional[CachedEmbedding]:
        key = content_hash(text)
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            entry["hit_count"] += 1
            entry["last_accessed"] = time.time()
            return CachedEmbedding(
                vector=entry["embedding"].copy(),
                model=entry["model"],
                hit_count=entry["hit_count"],
            )

    async def put(self, text: str, vector: np.ndarray, model: str) -> None:
        key = content_hash(text)
        async with self._lock:
            prev = self._entries.get(key)
            self._entries[key] = {
                "embedding": np.asarray(vector, dtype=np.float32).copy(),
                "model": model,
                "hit_count": prev["hit_count"] if prev else 0,
                "last_accessed": time.time(),
            }

    def __len__(self) -> int:
        return len(self._entries)
