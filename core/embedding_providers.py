# core/embedding_providers.py
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence
import asyncio
import httpx
import numpy as np
from config.settings import Settings
from util.constants import LOCAL_HASH_PROVIDER
from util.errors import ProviderUnavailableError
import logging

logger = logging.getLogger(__name__)

FNV_OFFSET_BASIS = 2166136261


def _int32(x: int) -> int:
    x &= 0xFFFFFFFF
    return x - 0x100000000 if x & 0x80000000 else x


def _utf16_units(text: str) -> List[int]:
    raw = text.encode("utf-16-le")
    return [int.from_bytes(raw[i : i + 2], "little") for i in range(0, len(raw), 2)]


def fnv_gram_hash(units: Sequence[int]) -> int:
    """
    FNV-1a-style mix over UTF-16 code units, reproducing int32 shift/xor
    wrap-around so buckets match indexes built by the JavaScript indexer.
    The running sum itself is not wrapped between xor steps.
    """
    h = FNV_OFFSET_BASIS
    for u in units:
        h = _int32(_int32(h) ^ u)
        h = h + (
            _int32(h << 1)
            + _int32(h << 4)
            + _int32(h << 7)
            + _int32(h << 8)
            + _int32(h << 24)
        )
    return h


def l2_normalize(vec: np.ndarray) -> np.ndarray:
    v = np.asarray(vec, dtype=np.float64)
    norm = float(np.sqrt(np.dot(v, v))) or 1.0
    return (v / norm).astype(np.float32)


def hashing_vector(text: str, dim: int = 512, ngram: int = 3) -> np.ndarray:
    """
    Deterministic character n-gram hashing embedding. Never fails; the same
    (text, dim) always yields a bit-identical vector.
    """
    vec = np.zeros(dim, dtype=np.float32)
    units = _utf16_units(f" {(text or '').lower()} ")
    for i in range(len(units) - ngram + 1):
        idx = abs(fnv_gram_hash(units[i : i + ngram])) % dim
        vec[idx] += 1.0
    return l2_normalize(vec)


async def _post_json(
    url: str,
    headers: Dict[str, str],
    payload: Dict[str, Any],
    timeout: float,
    provider: str,
) -> Dict[str, Any]:
    """
    Make a JSON POST to `url`. Non-2xx and unparsable bodies surface as
    ProviderUnavailableError so the chain can move on.
    """
    async with httpx.AsyncClient(timeout=timeout) as client:
        r = await client.post(url, headers=headers, json=payload)
        if r.status_code >= 400:
            raise ProviderUnavailableError(provider, f"http {r.status_code}")
        try:
            return r.json()
        except ValueError as e:
            raise ProviderUnavailableError(provider, "invalid json body") from e


class EmbeddingProvider:
    """One strategy in the fallback chain: `embed(texts, dim) -> vectors`."""

    name: str = ""
    default_model: str = ""

    def __init__(self, settings: Settings, model: Optional[str] = None) -> None:
        self._settings = settings
        self.model = model or self.default_model

    @property
    def model_id(self) -> str:
        return f"{self.name}:{self.model}" if self.model else self.name

    def available(self) -> bool:
        return True

    async def embed(self, texts: List[str], dim: Optional[int]) -> List[np.ndarray]:
        raise NotImplementedError

    def _require_key(self, key: Optional[str]) -> str:
        if not key:
            raise ProviderUnavailableError(self.name, "credentials not set")
        return key

    @property
    def _timeout(self) -> float:
        return float(self._settings.EMBED_TIMEOUT_SECONDS)


class OpenAIProvider(EmbeddingProvider):
    name = "openai"
    default_model = "text-embedding-3-large"

    def available(self) -> bool:
        return bool(self._settings.OPENAI_API_KEY)

    async def embed(self, texts: List[str], dim: Optional[int]) -> List[np.ndarray]:
        key = self._require_key(self._settings.OPENAI_API_KEY)
        payload: Dict[str, Any] = {"input": texts, "model": self.model}
        # text-embedding-3 models can be shortened server-side
        if dim and self.model.startswith("text-embedding-3"):
            payload["dimensions"] = dim
        data = await _post_json(
            self._settings.OPENAI_EMBED_URL,
            {"Content-Type": "application/json", "Authorization": f"Bearer {key}"},
            payload,
            self._timeout,
            self.name,
        )
        return [np.asarray(d["embedding"], dtype=np.float32) for d in data["data"]]


class GoogleProvider(EmbeddingProvider):
    name = "google"
    default_model = "text-embedding-004"

    def available(self) -> bool:
        return bool(self._settings.GEMINI_API_KEY)

    async def embed(self, texts: List[str], dim: Optional[int]) -> List[np.ndarray]:
        key = self._require_key(self._settings.GEMINI_API_KEY)
        url = f"{self._settings.GOOGLE_EMBED_URL}/{self.model}:batchEmbedContents?key={key}"
        payload = {
            "requests": [
                {"model": f"models/{self.model}", "content": {"parts": [{"text": t}]}}
                for t in texts
            ]
        }
        data = await _post_json(
            url, {"Content-Type": "application/json"}, payload, self._timeout, self.name
        )
        return [np.asarray(e["values"], dtype=np.float32) for e in data["embeddings"]]


class VoyageProvider(EmbeddingProvider):
    name = "voyage"
    default_model = "voyage-large-2"

    def available(self) -> bool:
        return bool(self._settings.VOYAGE_API_KEY)

    async def embed(self, texts: List[str], dim: Optional[int]) -> List[np.ndarray]:
        key = self._require_key(self._settings.VOYAGE_API_KEY)
        data = await _post_json(
            self._settings.VOYAGE_EMBED_URL,
            {"Content-Type": "application/json", "Authorization": f"Bearer {key}"},
            {"input": texts, "model": self.model},
            self._timeout,
            self.name,
        )
        return [np.asarray(d["embedding"], dtype=np.float32) for d in data["data"]]


class CohereProvider(EmbeddingProvider):
    name = "cohere"
    default_model = "embed-english-v3.0"

    def available(self) -> bool:
        return bool(self._settings.COHERE_API_KEY)

    async def embed(self, texts: List[str], dim: Optional[int]) -> List[np.ndarray]:
        key = self._require_key(self._settings.COHERE_API_KEY)
        data = await _post_json(
            self._settings.COHERE_EMBED_URL,
            {"Content-Type": "application/json", "Authorization": f"Bearer {key}"},
            {"texts": texts, "model": self.model, "input_type": "search_query"},
            self._timeout,
            self.name,
        )
        return [np.asarray(v, dtype=np.float32) for v in data["embeddings"]]


@lru_cache(maxsize=2)
def _load_model(name: str):
    """
    Lazy-load the sentence embedding model (CPU). Imported here so the
    remote-only and hashing paths never pay for torch.
    """
    from sentence_transformers import SentenceTransformer

    logger.info("embed.model.load model=%s", name)
    return SentenceTransformer(name, device="cpu")


class SentenceTransformerProvider(EmbeddingProvider):
    name = "sentence-transformers"

    def __init__(self, settings: Settings, model: Optional[str] = None) -> None:
        super().__init__(settings, model or settings.EMBEDDING_MODEL_NAME)

    async def embed(self, texts: List[str], dim: Optional[int]) -> List[np.ndarray]:
        def _encode() -> np.ndarray:
            return _load_model(self.model).encode(
                list(texts),
                batch_size=64,
                convert_to_numpy=True,
                normalize_embeddings=True,
            )

        vecs = await asyncio.to_thread(_encode)
        return [row.astype(np.float32, copy=False) for row in vecs]


class LocalHashProvider(EmbeddingProvider):
    name = LOCAL_HASH_PROVIDER

    @property
    def model_id(self) -> str:
        return self.name

    async def embed(self, texts: List[str], dim: Optional[int]) -> List[np.ndarray]:
        return self.embed_sync(texts, dim)

    def embed_sync(self, texts: Sequence[str], dim: Optional[int]) -> List[np.ndarray]:
        d = int(dim or self._settings.EMBED_DIM)
        return [hashing_vector(t, d) for t in texts]


REMOTE_PRIORITY = (
    OpenAIProvider,
    GoogleProvider,
    VoyageProvider,
    CohereProvider,
)
