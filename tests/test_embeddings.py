"""Unit tests for the embedding provider chain and embedding caches.

Tests:
- Local hashing determinism and normalization
- Provider resolution order and fallback on failure / timeout / bad dimension
- Cache writes for remote vectors only, hit counters
- Redis cache repository against a mocked client
"""

import asyncio
from typing import List, Optional
from unittest.mock import AsyncMock, patch

import numpy as np
import pytest

from conftest import DIM
from core.embedding_providers import (
    EmbeddingProvider,
    LocalHashProvider,
    fnv_gram_hash,
    hashing_vector,
    l2_normalize,
)
from core.embeddings import EmbeddingService
from repository.embedding_cache_repository import (
    InMemoryEmbeddingCacheRepository,
    RedisEmbeddingCacheRepository,
)
from util.errors import ProviderUnavailableError


class FakeProvider(EmbeddingProvider):
    """Remote stand-in with a scripted behaviour."""

    def __init__(self, settings, name: str, mode: str = "ok", out_dim: int = DIM) -> None:
        super().__init__(settings)
        self.name = name
        self.mode = mode
        self.out_dim = out_dim
        self.calls = 0

    def available(self) -> bool:
        return True

    async def embed(self, texts: List[str], dim: Optional[int]) -> List[np.ndarray]:
        self.calls += 1
        if self.mode == "fail":
            raise ProviderUnavailableError(self.name, "http 500")
        if self.mode == "boom":
            raise RuntimeError("connection reset")
        if self.mode == "slow":
            await asyncio.sleep(5)
        if self.mode == "short":
            return []
        return [np.full(self.out_dim, 2.0, dtype=np.float32) for _ in texts]


@pytest.fixture
def auto_settings(test_settings):
    return test_settings.model_copy(update={"EMBED_PROVIDER": "auto"})


# ---------------------------------------------------------------------------
# Local hashing
# ---------------------------------------------------------------------------


class TestHashingVector:
    def test_same_text_same_vector(self):
        a = hashing_vector("Sulfuric Acid 98%", 512)
        b = hashing_vector("Sulfuric Acid 98%", 512)
        assert a.dtype == np.float32
        assert np.array_equal(a, b)

    def test_case_insensitive(self):
        assert np.array_equal(hashing_vector("ACETONE"), hashing_vector("acetone"))

    @pytest.mark.parametrize("dim", [64, 384, 512, 1536])
    def test_unit_norm(self, dim):
        v = hashing_vector("isopropyl alcohol 99%", dim)
        assert v.shape == (dim,)
        assert float(np.linalg.norm(v)) == pytest.approx(1.0, abs=1e-5)

    def test_text_shorter_than_a_trigram_is_zero(self):
        assert not np.any(hashing_vector("", 128))

    def test_zero_vector_stays_zero(self):
        v = l2_normalize(np.zeros(8, dtype=np.float32))
        assert not np.any(v)

    def test_fnv_hash_is_stable(self):
        units = [ord(c) for c in " ac"]
        assert fnv_gram_hash(units) == fnv_gram_hash(list(units))
        assert fnv_gram_hash(units) != fnv_gram_hash([ord(c) for c in "ace"])


# ---------------------------------------------------------------------------
# Provider chain
# ---------------------------------------------------------------------------


class TestProviderChain:
    def test_local_hash_is_always_last(self, auto_settings):
        service = EmbeddingService(
            auto_settings, providers=[FakeProvider(auto_settings, "openai")]
        )
        chain = service.resolve_chain()
        assert [p.name for p in chain] == ["openai", "local-hash"]
        assert isinstance(chain[-1], LocalHashProvider)

    def test_explicit_provider_wins(self, auto_settings):
        service = EmbeddingService(
            auto_settings,
            providers=[FakeProvider(auto_settings, "openai"), FakeProvider(auto_settings, "cohere")],
        )
        assert [p.name for p in service.resolve_chain("cohere")] == ["cohere", "local-hash"]

    def test_unknown_provider_falls_to_local(self, auto_settings):
        service = EmbeddingService(auto_settings, providers=[])
        assert [p.name for p in service.resolve_chain("nope")] == ["local-hash"]

    def test_sentence_transformers_not_auto_detected(self, auto_settings):
        service = EmbeddingService(
            auto_settings, providers=[FakeProvider(auto_settings, "sentence-transformers")]
        )
        assert [p.name for p in service.resolve_chain()] == ["local-hash"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", ["fail", "boom", "slow", "short"])
    async def test_failures_fall_back_to_local(self, auto_settings, mode):
        bad = FakeProvider(auto_settings, "openai", mode=mode)
        service = EmbeddingService(auto_settings, providers=[bad])

        vecs = await service.embed(["acetone"], dim=DIM)

        assert bad.calls == 1
        assert len(vecs) == 1
        assert np.array_equal(vecs[0], hashing_vector("acetone", DIM))

    @pytest.mark.asyncio
    async def test_dimension_mismatch_advances_chain(self, auto_settings):
        wrong = FakeProvider(auto_settings, "openai", out_dim=DIM * 2)
        right = FakeProvider(auto_settings, "google", out_dim=DIM)
        service = EmbeddingService(auto_settings, providers=[wrong, right])

        vecs = await service.embed(["toluene"], dim=DIM)

        assert wrong.calls == 1 and right.calls == 1
        assert vecs[0].shape == (DIM,)
        assert float(np.linalg.norm(vecs[0])) == pytest.approx(1.0, abs=1e-5)

    @pytest.mark.asyncio
    async def test_first_failure_then_second_provider(self, auto_settings):
        first = FakeProvider(auto_settings, "openai", mode="fail")
        second = FakeProvider(auto_settings, "voyage")
        service = EmbeddingService(auto_settings, providers=[first, second])

        vecs = await service.embed(["a", "b"], dim=DIM)

        assert len(vecs) == 2
        assert second.calls == 1
        # constant vector normalized
        assert float(vecs[0][0]) == pytest.approx(1.0 / np.sqrt(DIM), rel=1e-5)

    @pytest.mark.asyncio
    async def test_empty_input(self, auto_settings):
        service = EmbeddingService(auto_settings, providers=[])
        assert await service.embed([]) == []


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


class TestEmbeddingCache:
    @pytest.mark.asyncio
    async def test_remote_vectors_are_cached(self, auto_settings):
        cache = InMemoryEmbeddingCacheRepository()
        remote = FakeProvider(auto_settings, "openai")
        service = EmbeddingService(auto_settings, cache=cache, providers=[remote])

        first = await service.embed(["Methanol 99%"], dim=DIM)
        second = await service.embed(["methanol   99%"], dim=DIM)

        assert remote.calls == 1
        assert len(cache) == 1
        assert np.allclose(first[0], second[0])

    @pytest.mark.asyncio
    async def test_embed_with_model_reports_provider_and_skips_cache(self, auto_settings):
        cache = InMemoryEmbeddingCacheRepository()
        remote = FakeProvider(auto_settings, "openai")
        service = EmbeddingService(auto_settings, cache=cache, providers=[remote])

        vecs, model = await service.embed_with_model(["Methanol 99%", "Acetone"], dim=DIM)

        assert model == "openai"
        assert len(vecs) == 2
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_embed_with_model_names_local_fallback(self, auto_settings):
        remote = FakeProvider(auto_settings, "openai", mode="fail")
        service = EmbeddingService(auto_settings, providers=[remote])

        vecs, model = await service.embed_with_model(["Methanol 99%"], dim=DIM)

        assert model == "local-hash"
        assert np.array_equal(vecs[0], hashing_vector("Methanol 99%", DIM))

    @pytest.mark.asyncio
    async def test_local_vectors_are_not_cached(self, test_settings):
        cache = InMemoryEmbeddingCacheRepository()
        service = EmbeddingService(test_settings, cache=cache, providers=[])

        await service.embed(["Methanol 99%"], dim=DIM)

        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_cached_vector_of_other_dim_is_ignored(self, auto_settings):
        cache = InMemoryEmbeddingCacheRepository()
        await cache.put("xylene", np.ones(DIM * 2, dtype=np.float32), "openai")
        service = EmbeddingService(auto_settings, cache=cache, providers=[])

        vecs = await service.embed(["xylene"], dim=DIM)

        assert vecs[0].shape == (DIM,)

    @pytest.mark.asyncio
    async def test_hit_count_increments(self):
        cache = InMemoryEmbeddingCacheRepository()
        await cache.put("acetone", np.ones(4, dtype=np.float32), "openai:text-embedding-3-large")

        first = await cache.get("acetone")
        second = await cache.get("ACETONE")

        assert first.hit_count == 1
        assert second.hit_count == 2
        assert second.model == "openai:text-embedding-3-large"
        assert await cache.get("toluene") is None

    @pytest.mark.asyncio
    async def test_put_keeps_hit_count(self):
        cache = InMemoryEmbeddingCacheRepository()
        await cache.put("acetone", np.ones(4, dtype=np.float32), "m1")
        await cache.get("acetone")
        await cache.put("acetone", np.zeros(4, dtype=np.float32), "m2")

        hit = await cache.get("acetone")

        assert hit.hit_count == 2
        assert hit.model == "m2"


class TestRedisEmbeddingCache:
    @pytest.mark.asyncio
    async def test_hit_bumps_counter(self):
        vec = np.arange(4, dtype=np.float32)
        client = AsyncMock()
        client.hgetall.return_value = {b"embedding": vec.tobytes(), b"model": b"cohere", b"hit_count": b"3"}
        client.hincrby.return_value = 4
        repo = RedisEmbeddingCacheRepository(ttl_seconds=60)

        with patch.object(RedisEmbeddingCacheRepository, "_client", AsyncMock(return_value=client)):
            hit = await repo.get("Toluene")

        assert hit is not None
        assert hit.hit_count == 4
        assert hit.model == "cohere"
        assert np.array_equal(hit.vector, vec)
        key = client.hgetall.call_args.args[0]
        assert key.startswith("hazmat:embeddings:")
        client.hincrby.assert_awaited_once_with(key, "hit_count", 1)
        client.expire.assert_awaited_once_with(key, 60)

    @pytest.mark.asyncio
    async def test_miss_returns_none(self):
        client = AsyncMock()
        client.hgetall.return_value = {}
        repo = RedisEmbeddingCacheRepository(ttl_seconds=None)

        with patch.object(RedisEmbeddingCacheRepository, "_client", AsyncMock(return_value=client)):
            assert await repo.get("Toluene") is None

        client.hincrby.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_backend_error_reads_as_miss(self):
        repo = RedisEmbeddingCacheRepository(ttl_seconds=None)
        failing = AsyncMock(side_effect=ConnectionError("redis down"))

        with patch.object(RedisEmbeddingCacheRepository, "_client", failing):
            assert await repo.get("Toluene") is None
            await repo.put("Toluene", np.ones(4, dtype=np.float32), "openai")

    @pytest.mark.asyncio
    async def test_put_initializes_counter_once(self):
        client = AsyncMock()
        repo = RedisEmbeddingCacheRepository(ttl_seconds=None)

        with patch.object(RedisEmbeddingCacheRepository, "_client", AsyncMock(return_value=client)):
            await repo.put("Toluene", np.ones(4, dtype=np.float32), "openai")

        mapping = client.hset.call_args.kwargs["mapping"]
        assert mapping["model"] == "openai"
        assert np.frombuffer(mapping["embedding"], dtype=np.float32).shape == (4,)
        client.hsetnx.assert_awaited_once()
        client.expire.assert_not_awaited()
