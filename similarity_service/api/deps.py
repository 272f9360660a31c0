"""API dependencies for FastAPI endpoints."""
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from similarity_service.core.config import SimilarityConfig, SimilarityConfigProvider, settings
from similarity_service.core.database import get_db
from similarity_service.services.cache import EmbeddingCache
from similarity_service.services.detection import SimilarityDetectionService
from similarity_service.services.document_processor import DocumentProcessor
from similarity_service.services.embedding import EmbeddingService
from similarity_service.services.file_storage import FileStorage
from similarity_service.services.jobs import SimilarityJobService
from similarity_service.services.moderation import SimilarityModerationService
from similarity_service.services.repository import SimilarityRepository
from similarity_service.services.text_extraction import TextExtractionService
from similarity_service.services.work_queue import WorkQueue


@dataclass
class ServiceContainer:
    """Process-wide service instances, built once at startup."""
    config_provider: SimilarityConfigProvider
    work_queue: WorkQueue
    detection: SimilarityDetectionService
    embedding: EmbeddingService
    jobs: SimilarityJobService
    moderation: SimilarityModerationService
    cache: Optional[EmbeddingCache] = None


def build_container() -> ServiceContainer:
    """Wire the production services together."""
    repository = SimilarityRepository()
    config_provider = SimilarityConfigProvider(SimilarityConfig.from_settings(settings))
    processor = DocumentProcessor()
    text_extractor = TextExtractionService(FileStorage(), processor)
    cache = EmbeddingCache()
    work_queue = WorkQueue()

    detection = SimilarityDetectionService(repository, text_extractor, processor, config_provider)
    embedding = EmbeddingService(repository, text_extractor, detection, cache=cache)
    return ServiceContainer(
        config_provider=config_provider,
        work_queue=work_queue,
        detection=detection,
        embedding=embedding,
        jobs=SimilarityJobService(work_queue, embedding, repository),
        moderation=SimilarityModerationService(repository, text_extractor, config_provider),
        cache=cache,
    )


async def get_database() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting database session."""
    async for session in get_db():
        yield session


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_work_queue(request: Request) -> WorkQueue:
    return get_services(request).work_queue
