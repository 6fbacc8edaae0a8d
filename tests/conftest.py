"""Pytest configuration and shared fixtures."""

from typing import List

import pytest

from config.settings import Settings, settings as base_settings
from core.candidate_store import CandidateStore
from core.classifier import HazmatClassifier
from core.embedding_providers import hashing_vector
from core.embeddings import EmbeddingService
from core.entities import CandidateEntry
from repository.candidate_repository import InMemoryCandidateRepository
from repository.embedding_cache_repository import InMemoryEmbeddingCacheRepository
from repository.history_repository import HistoryRepository

DIM = 512


def make_entry(id: str, source: str, text: str, **metadata) -> CandidateEntry:
    """Build an index row embedded with the local hashing model."""
    return CandidateEntry(
        id=id,
        source=source,
        text=text,
        embedding=hashing_vector(text, DIM),
        metadata=metadata,
    )


def sample_entries() -> List[CandidateEntry]:
    return [
        make_entry(
            "hmt-1830", "hmt",
            "UN1830 Sulfuric acid with more than 51 percent acid; Class 8; PG II; Labels 8",
            id_number="UN1830", base_name="Sulfuric acid",
            qualifier="with more than 51 percent acid", **{"class": "8"}, packing_group="II",
            label_codes=["8"],
        ),
        make_entry(
            "hmt-2796", "hmt",
            "UN2796 Sulfuric acid with not more than 51 percent acid; Class 8; PG II; Labels 8",
            id_number="UN2796", base_name="Sulfuric acid",
            qualifier="with not more than 51 percent acid", **{"class": "8"}, packing_group="II",
            label_codes=["8"],
        ),
        make_entry(
            "hmt-1090", "hmt",
            "UN1090 Acetone; Class 3; PG II; Labels 3",
            id_number="UN1090", base_name="Acetone", **{"class": "3"}, packing_group="II",
            label_codes=["3"], packaging={"exceptions": "150", "non_bulk": "202", "bulk": "242"},
            special_provisions=["IB2", "T4", "TP1"],
        ),
        make_entry(
            "hmt-1223", "hmt",
            "UN1223 Kerosene; Class 3; PG III; Labels 3",
            id_number="UN1223", base_name="Kerosene", **{"class": "3"}, packing_group="III",
            label_codes=["3"],
        ),
        make_entry(
            "hmt-1271", "hmt",
            "UN1271 Petroleum ether; Class 3; PG II; Labels 3",
            id_number="UN1271", base_name="Petroleum ether", **{"class": "3"}, packing_group="II",
            label_codes=["3"],
        ),
        make_entry(
            "hmt-1307", "hmt",
            "UN1307 Dimethylbenzene isomers (xylene); Class 3; PG III; Labels 3",
            id_number="UN1307", base_name="Dimethylbenzene isomers", **{"class": "3"},
            packing_group="III", label_codes=["3"],
        ),
        make_entry("erg-1090", "erg", "ERG guide 127 for UN1090", id_number="UN1090", guide="127"),
        make_entry(
            "prod-naoh", "products",
            "Verified product SKU-NAOH-50 Sodium hydroxide solution",
            sku="SKU-NAOH-50", is_verified=True, id_number="UN1824",
            base_name="Sodium hydroxide solution", **{"class": "8"}, packing_group="II",
            label_codes=["8"],
        ),
        make_entry(
            "prod-unverified", "products",
            "Product SKU-DRAFT-1 Acetone technical grade",
            sku="SKU-DRAFT-1", is_verified=False, id_number="UN1090",
            base_name="Acetone technical grade", **{"class": "3"}, packing_group="II",
        ),
    ]


@pytest.fixture
def test_settings() -> Settings:
    """Settings pinned to the local hashing provider so tests never call out."""
    return base_settings.model_copy(
        update={
            "EMBED_PROVIDER": "local-hash",
            "EMBED_DIM": DIM,
            "EMBED_TIMEOUT_SECONDS": 0.2,
            "SEARCH_K": 50,
            "SEARCH_ALPHA": 0.5,
            "MIN_MATCH_SCORE": 0.3,
            "RERANK_TOP_N": 10,
            "AGREEMENT_TOP_K": 5,
            "CLASSIFY_CONCURRENCY": 3,
        }
    )


@pytest.fixture
def entries() -> List[CandidateEntry]:
    return sample_entries()


@pytest.fixture
def store(entries) -> CandidateStore:
    return CandidateStore(InMemoryCandidateRepository(entries, declared_dim=DIM))


@pytest.fixture
def history() -> HistoryRepository:
    return HistoryRepository(
        [
            {"sku": "SKU-ACE-5", "product_name": "Acetone 5 gallon pail", "chosen_un": "UN1090"},
            {"sku": None, "product_name": "Kerosene K-1 heater fuel", "chosen_un": "UN1223"},
        ]
    )


@pytest.fixture
def classifier(store, test_settings, history) -> HazmatClassifier:
    embeddings = EmbeddingService(
        test_settings, cache=InMemoryEmbeddingCacheRepository(), providers=[]
    )
    return HazmatClassifier(store=store, embeddings=embeddings, settings=test_settings, history=history)
