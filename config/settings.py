# config/settings.py
import os
import sys
from typing import Optional
from dotenv import load_dotenv
from pydantic import AliasChoices, ValidationError, Field
from pydantic_settings import BaseSettings
from util.enums import Environment
import logging


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()

_log = logging.getLogger("config.settings")


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(default=Environment.DEV.value, validation_alias="APP_ENV")
    REDIS_URL: Optional[str] = Field(default=None, validation_alias="REDIS_URL")
    EMBEDDING_CACHE_TTL_SECONDS: Optional[int] = Field(
        default=None, validation_alias="EMBEDDING_CACHE_TTL_SECONDS"
    )

    # Knowledge base files (built offline by the indexing job)
    INDEX_PATH: str = Field(
        default="data/index-hmt-local.json", validation_alias="INDEX_PATH"
    )
    HISTORY_PATH: str = Field(
        default="data/historical-shipping.json", validation_alias="HISTORY_PATH"
    )

    # Embedding Engine
    EMBED_PROVIDER: str = Field(default="auto", validation_alias="EMBED_PROVIDER")
    EMBED_MODEL: Optional[str] = Field(default=None, validation_alias="EMBED_MODEL")
    EMBED_DIM: int = Field(default=512, validation_alias="EMBED_DIM")
    EMBED_TIMEOUT_SECONDS: float = Field(
        default=10.0, validation_alias="EMBED_TIMEOUT_SECONDS"
    )
    EMBEDDING_MODEL_NAME: str = "sentence-transformers/all-MiniLM-L6-v2"

    # Remote providers (credentials are optional; auto-detect skips missing ones)
    OPENAI_API_KEY: Optional[str] = Field(default=None, validation_alias="OPENAI_API_KEY")
    GEMINI_API_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE_GEMINI_API_KEY", "GEMINI_API_KEY"),
    )
    VOYAGE_API_KEY: Optional[str] = Field(default=None, validation_alias="VOYAGE_API_KEY")
    COHERE_API_KEY: Optional[str] = Field(default=None, validation_alias="COHERE_API_KEY")

    # External URLS:
    OPENAI_EMBED_URL: str = "https://api.openai.com/v1/embeddings"
    GOOGLE_EMBED_URL: str = "https://generativelanguage.googleapis.com/v1/models"
    VOYAGE_EMBED_URL: str = "https://api.voyageai.com/v1/embeddings"
    COHERE_EMBED_URL: str = "https://api.cohere.ai/v1/embed"

    # Retrieval knobs
    SEARCH_K: int = Field(default=50, validation_alias="SEARCH_K")
    SEARCH_ALPHA: float = Field(default=0.5, validation_alias="SEARCH_ALPHA")
    RERANK_TOP_N: int = Field(default=10, validation_alias="RERANK_TOP_N")
    AGREEMENT_TOP_K: int = Field(default=5, validation_alias="AGREEMENT_TOP_K")
    MIN_MATCH_SCORE: float = Field(default=0.3, validation_alias="MIN_MATCH_SCORE")
    CLASSIFY_CONCURRENCY: int = Field(default=5, validation_alias="CLASSIFY_CONCURRENCY")

    # Logging knobs
    LOGGER_NAME: str = "hazmat-classifier"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="classifier.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)
