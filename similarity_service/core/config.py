"""Application configuration from environment variables."""
import logging
from typing import Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App Configuration
    APP_NAME: str = "doc-similarity-service"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_VERSION: str = "v1"

    # FastAPI
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "docshare"
    POSTGRES_USER: str = "docshare_user"
    POSTGRES_PASSWORD: str = "docshare_password"
    DATABASE_URL: Optional[str] = None

    # Redis (embedding cache)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_URL: Optional[str] = None
    EMBEDDING_CACHE_TTL_SECONDS: int = 86400

    def get_database_url(self) -> str:
        """Get or construct database URL from components."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def get_redis_url(self) -> str:
        """Get or construct Redis URL from components."""
        if self.REDIS_URL:
            return self.REDIS_URL
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # OpenAI
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"
    VECTOR_DIMENSION: int = 1536

    # Object storage (S3 compatible)
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    S3_BUCKET: str = "shared-documents"
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: Optional[str] = None

    # Combined score weights (must sum to 1.0)
    SIMILARITY_WEIGHT_HASH: float = 0.4
    SIMILARITY_WEIGHT_TEXT: float = 0.3
    SIMILARITY_WEIGHT_EMBEDDING: float = 0.3

    # Lexical sub-weights (must sum to 1.0)
    TEXT_WEIGHT_JACCARD: float = 0.6
    TEXT_WEIGHT_EDIT: float = 0.4

    # Thresholds
    THRESHOLD_HASH_MATCH: float = 0.95
    THRESHOLD_HASH_INCLUDE: float = 0.6
    THRESHOLD_SIMILARITY_DETECTION: float = 0.85
    THRESHOLD_EMBEDDING_MATCH: float = 0.75

    # Detection limits
    CANDIDATE_POOL_LIMIT: int = 1000
    SIMILARITY_BATCH_SIZE: int = 20
    MAX_SIMILAR_DOCUMENTS: int = 10
    COMPARE_TEXT_MAX_CHARS: int = 10000
    CHUNKING_THRESHOLD: int = 3000  # Chars; longer texts are compared chunk by chunk
    CHUNK_SIZE: int = 3000
    CHUNK_OVERLAP: int = 300

    # Text extraction limits
    MAX_FILES_LIMITED: int = 5
    MAX_TEXT_CHARS_LIMITED: int = 5000
    MAX_TEXT_CHARS: int = 50000
    MAX_FILE_BYTES_LIMITED: int = 5 * 1024 * 1024
    MAX_FILE_BYTES: int = 50 * 1024 * 1024

    # Embedding text
    EMBEDDING_MAX_FILE_CONTENT_CHARS: int = 5000
    EMBEDDING_MAX_TOTAL_CHARS: int = 9000

    # Work queue
    WORK_QUEUE_MAX_SIZE: int = Field(default=100, ge=1)
    WORK_QUEUE_MAX_CONCURRENT: int = 1
    WORK_QUEUE_MAX_RETRIES: int = 3
    WORK_QUEUE_BASE_DELAY_SECONDS: float = 0.1

    class Config:
        """Pydantic config."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env


def _sums_to_one(*values: float) -> bool:
    return all(v >= 0 for v in values) and abs(sum(values) - 1.0) < 0.001


class CombinedWeights(BaseModel):
    """Weights for blending the hash, text and embedding signals."""
    hash: float = 0.4
    text: float = 0.3
    embedding: float = 0.3

    @model_validator(mode="after")
    def check_sum(self):
        if not _sums_to_one(self.hash, self.text, self.embedding):
            raise ValueError("combined weights must be non-negative and sum to 1.0")
        return self


class TextWeights(BaseModel):
    """Weights for the two lexical measures."""
    jaccard: float = 0.6
    edit: float = 0.4

    @model_validator(mode="after")
    def check_sum(self):
        if not _sums_to_one(self.jaccard, self.edit):
            raise ValueError("text weights must be non-negative and sum to 1.0")
        return self


class Thresholds(BaseModel):
    hash_match: float = Field(default=0.95, ge=0.0, le=1.0)
    hash_include: float = Field(default=0.6, ge=0.0, le=1.0)
    similarity_detection: float = Field(default=0.85, ge=0.0, le=1.0)
    embedding_match: float = Field(default=0.75, ge=0.0, le=1.0)


class SimilarityConfig(BaseModel):
    """Weights and thresholds used for one detection run."""
    weights: CombinedWeights = Field(default_factory=CombinedWeights)
    text_weights: TextWeights = Field(default_factory=TextWeights)
    thresholds: Thresholds = Field(default_factory=Thresholds)

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls, source: Settings) -> "SimilarityConfig":
        return cls(
            weights=CombinedWeights(
                hash=source.SIMILARITY_WEIGHT_HASH,
                text=source.SIMILARITY_WEIGHT_TEXT,
                embedding=source.SIMILARITY_WEIGHT_EMBEDDING,
            ),
            text_weights=TextWeights(
                jaccard=source.TEXT_WEIGHT_JACCARD,
                edit=source.TEXT_WEIGHT_EDIT,
            ),
            thresholds=Thresholds(
                hash_match=source.THRESHOLD_HASH_MATCH,
                hash_include=source.THRESHOLD_HASH_INCLUDE,
                similarity_detection=source.THRESHOLD_SIMILARITY_DETECTION,
                embedding_match=source.THRESHOLD_EMBEDDING_MATCH,
            ),
        )


class SimilarityConfigProvider:
    """Holds the active similarity config; an external trigger may call reload()."""

    def __init__(self, config: Optional[SimilarityConfig] = None):
        self._config = config or SimilarityConfig()

    def get(self) -> SimilarityConfig:
        return self._config

    def reload(self, source: Optional[Settings] = None) -> SimilarityConfig:
        """Re-read weights and thresholds; keeps the previous config if invalid."""
        try:
            self._config = SimilarityConfig.from_settings(source or Settings())
            logger.info(f"Similarity config reloaded: {self._config.model_dump()}")
        except ValueError as e:
            logger.warning(f"Invalid similarity config, keeping previous values: {e}")
        return self._config


settings = Settings()
