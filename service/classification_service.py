# service/classification_service.py
import asyncio
from typing import List, Optional, Sequence
from config.cache import close_redis, redis_enabled
from config.settings import Settings, settings as default_settings
from core.candidate_store import CandidateStore
from core.classifier import HazmatClassifier
from core.confidence import confidence_factors, validate_classification
from core.embeddings import EmbeddingService
from model.classification import ClassificationResult, ProductRequest, ValidationReport
from repository.candidate_repository import CandidateRepository, JsonCandidateRepository
from repository.embedding_cache_repository import (
    EmbeddingCacheRepository,
    InMemoryEmbeddingCacheRepository,
    RedisEmbeddingCacheRepository,
)
from repository.history_repository import HistoryRepository, JsonHistoryRepository
import logging

logger = logging.getLogger(__name__)


def build_classifier(
    settings: Settings = default_settings,
    candidates: Optional[CandidateRepository] = None,
    cache: Optional[EmbeddingCacheRepository] = None,
    history: Optional[HistoryRepository] = None,
) -> HazmatClassifier:
    """
    Wire repositories -> store/embeddings -> classifier. Anything not passed
    in comes from settings: JSON index and history files, Redis cache when
    REDIS_URL is set (in-process otherwise).
    """
    if candidates is None:
        candidates = JsonCandidateRepository(settings.INDEX_PATH)
    if cache is None:
        if redis_enabled():
            cache = RedisEmbeddingCacheRepository(settings.EMBEDDING_CACHE_TTL_SECONDS)
        else:
            cache = InMemoryEmbeddingCacheRepository()
    if history is None:
        history = JsonHistoryRepository(settings.HISTORY_PATH)
    logger.info(
        "service.wire index=%s cache=%s provider=%s",
        getattr(candidates, "_path", type(candidates).__name__),
        type(cache).__name__,
        settings.EMBED_PROVIDER,
    )
    return HazmatClassifier(
        store=CandidateStore(candidates),
        embeddings=EmbeddingService(settings, cache=cache),
        settings=settings,
        history=history,
    )


class ClassificationService:
    """
    Constructed once per process and passed to callers. The store and cache
    inside are shared by every call made through this object.
    """

    def __init__(self, classifier: HazmatClassifier) -> None:
        self._classifier = classifier

    @classmethod
    def from_settings(cls, settings: Settings = default_settings) -> "ClassificationService":
        return cls(build_classifier(settings))

    async def aclassify(self, sku: Optional[str], product_name: str) -> ClassificationResult:
        return await self._classifier.classify(sku, product_name)

    async def aclassify_many(
        self, products: Sequence[ProductRequest], concurrency: Optional[int] = None
    ) -> List[ClassificationResult]:
        return await self._classifier.classify_many(products, concurrency)

    def classify(self, sku: Optional[str], product_name: str) -> ClassificationResult:
        """Blocking wrapper for callers without an event loop."""
        return asyncio.run(self._run(self.aclassify(sku, product_name)))

    def classify_many(
        self, products: Sequence[ProductRequest], concurrency: Optional[int] = None
    ) -> List[ClassificationResult]:
        return asyncio.run(self._run(self.aclassify_many(products, concurrency)))

    @staticmethod
    def validate(result: ClassificationResult) -> ValidationReport:
        return validate_classification(result)

    @staticmethod
    def quality(result: ClassificationResult) -> dict:
        return confidence_factors(result)

    @staticmethod
    async def _run(coro):
        # asyncio.run closes its loop; the Redis client is bound to it
        try:
            return await coro
        finally:
            if redis_enabled():
                await close_redis()
