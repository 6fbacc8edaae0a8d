"""Tests for service wiring, the blocking facade and the history file reader."""

import json

import pytest

from conftest import DIM, sample_entries
from model.classification import ProductRequest
from repository.candidate_repository import InMemoryCandidateRepository
from repository.embedding_cache_repository import InMemoryEmbeddingCacheRepository
from repository.history_repository import HistoryRepository, JsonHistoryRepository
from service.classification_service import ClassificationService, build_classifier
from util.errors import IndexUnavailableError


@pytest.fixture
def service(test_settings, history):
    classifier = build_classifier(
        test_settings,
        candidates=InMemoryCandidateRepository(sample_entries(), declared_dim=DIM),
        cache=InMemoryEmbeddingCacheRepository(),
        history=history,
    )
    return ClassificationService(classifier)


class TestClassificationService:
    def test_blocking_classify(self, service):
        result = service.classify(None, "Sulfuric Acid 98%")
        assert result.un_number == "UN1830"

    def test_blocking_batch_keeps_order(self, service):
        results = service.classify_many(
            [ProductRequest(name="Castor Oil"), ProductRequest(name="Acetone 5 gallon pail")]
        )
        assert [r.un_number for r in results] == [None, "UN1090"]

    def test_validate_and_quality(self, service):
        result = service.classify(None, "Acetone 5 gallon pail")
        assert service.validate(result).is_valid
        assert 0.0 <= service.quality(result)["score"] <= 1.0

    @pytest.mark.asyncio
    async def test_async_entry_points(self, service):
        result = await service.aclassify("SKU-NAOH-50", "Mystery Cleaner")
        assert result.source == "database-verified"

    def test_missing_index_file_raises(self, test_settings, tmp_path):
        settings = test_settings.model_copy(
            update={"INDEX_PATH": str(tmp_path / "nope.json"), "HISTORY_PATH": str(tmp_path / "h.json")}
        )
        service = ClassificationService(
            build_classifier(settings, cache=InMemoryEmbeddingCacheRepository())
        )
        with pytest.raises(IndexUnavailableError):
            service.classify(None, "Acetone")


class TestHistoryRepository:
    @pytest.mark.asyncio
    async def test_counts_by_sku_or_name(self):
        repo = HistoryRepository(
            [
                {"sku": "S1", "product_name": "Blue drum cleaner", "chosen_un": "UN1760"},
                {"sku": None, "product_name": "Acetone 5 gallon pail", "chosen_un": "un1090"},
                {"sku": None, "product_name": "Acetone 1 gallon", "chosen_un": "UN1091"},
            ]
        )
        assert await repo.count_agreeing("whatever", "UN1760", sku="S1") == 1
        assert await repo.count_agreeing("acetone", "UN1090") == 1
        assert await repo.count_agreeing("acetone", "") == 0

    @pytest.mark.asyncio
    async def test_json_file(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text(json.dumps([{"product_name": "Kerosene", "chosen_un": "UN1223"}, "junk"]))
        repo = JsonHistoryRepository(str(path))
        assert await repo.count_agreeing("kerosene", "UN1223") == 1

    @pytest.mark.asyncio
    async def test_missing_or_broken_file_means_no_history(self, tmp_path):
        assert await JsonHistoryRepository(str(tmp_path / "none.json")).count_agreeing("x", "UN1") == 0
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        assert await JsonHistoryRepository(str(bad)).count_agreeing("x", "UN1") == 0
