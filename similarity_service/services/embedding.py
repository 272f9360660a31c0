import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from langchain_openai import OpenAIEmbeddings
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import retry, stop_after_attempt, wait_exponential

from similarity_service.core.config import settings
from similarity_service.core.exceptions import NotFoundError, ValidationError
from similarity_service.models import JobStatus
from similarity_service.schemas.similarity import DetectionResult
from similarity_service.services.cache import EmbeddingCache
from similarity_service.services.detection import SimilarityDetectionService
from similarity_service.services.repository import SimilarityRepository
from similarity_service.services.text_extraction import TextExtractionService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmbeddingService:
    def __init__(
        self,
        repository: SimilarityRepository,
        text_extractor: TextExtractionService,
        detection_service: SimilarityDetectionService,
        cache: Optional[EmbeddingCache] = None,
        embeddings=None,
    ):
        self.repository = repository
        self.text_extractor = text_extractor
        self.detection_service = detection_service
        self.cache = cache
        # Store embedding model name alongside each vector
        self.embedding_model = settings.OPENAI_EMBEDDING_MODEL
        self._embeddings = embeddings

    def _get_embeddings(self) -> OpenAIEmbeddings:
        if self._embeddings is None:
            self._embeddings = OpenAIEmbeddings(
                model=self.embedding_model,
                api_key=settings.OPENAI_API_KEY,
            )
        return self._embeddings

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=2, max=10), reraise=True)
    async def _embed_with_retry(self, text: str) -> List[float]:
        return await self._get_embeddings().aembed_query(text)

    async def generate_embedding(self, text: str, use_cache: bool = True) -> List[float]:
        """Embed ``text``, reusing a cached vector for identical text unless ``use_cache`` is off"""
        if use_cache and self.cache is not None:
            cached = await self.cache.get_embedding(text)
            if cached:
                logger.debug(f"Cache hit for embedding: {text[:50]}...")
                return cached

        try:
            embedding = await self._embed_with_retry(text)
        except Exception as e:
            logger.error(f"Failed to generate embedding after retries: {e}")
            raise

        if self.cache is not None:
            await self.cache.set_embedding(text, embedding)
        return embedding

    @staticmethod
    def build_embedding_text(document, file_text: str = "") -> str:
        """Canonical text: metadata, AI analysis and the start of the file content."""
        parts = [
            document.title,
            document.description,
            (file_text or "")[:settings.EMBEDDING_MAX_FILE_CONTENT_CHARS],
            document.ai_summary,
            " ".join(document.ai_key_points or []),
            " ".join(document.tags or []),
        ]
        text = " ".join(p.strip() for p in parts if p and p.strip())
        return text[:settings.EMBEDDING_MAX_TOTAL_CHARS]

    @staticmethod
    def build_metadata_text(document) -> str:
        parts = [
            document.title,
            document.description,
            " ".join(document.tags or []),
            document.ai_summary,
            " ".join(document.ai_key_points or []),
        ]
        return " ".join(p.strip() for p in parts if p and p.strip())

    async def get_or_create_embedding(
        self,
        session: AsyncSession,
        document_id: UUID,
        force_regenerate: bool = False,
    ) -> List[float]:
        """
        Return the document's embedding, generating and storing it if needed.

        Args:
            session: Database session
            document_id: Document to embed
            force_regenerate: Ignore any stored vector and overwrite it

        Returns:
            Embedding vector

        Raises:
            NotFoundError: Document does not exist
            ValidationError: Document has no text or metadata to embed
        """
        if not force_regenerate:
            existing = await self.repository.get_embedding_vector(session, document_id)
            if existing is not None and len(existing) > 0:
                return [float(v) for v in existing]

        document = await self.repository.get_document(session, document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")

        file_text = ""
        if document.files:
            file_text = await self.text_extractor.extract_text_from_files(document.files)

        text = self.build_embedding_text(document, file_text)
        if not text:
            logger.warning(f"No text content extracted for document {document_id}, using metadata only")
            text = self.build_metadata_text(document)
            if not text:
                raise ValidationError("No content available to generate embedding")

        embedding = await self.generate_embedding(text, use_cache=not force_regenerate)
        await self.repository.upsert_embedding(session, document_id, embedding, self.embedding_model)
        logger.info(f"Embedding saved for document {document_id} ({len(text)} chars)")
        return embedding

    async def run_embedding_and_detection_job(
        self,
        session: AsyncSession,
        document_id: UUID,
        job_id: Optional[UUID] = None,
    ) -> DetectionResult:
        """Embed then detect, tracking progress on a SimilarityJob. Failures are recorded and re-raised."""
        if job_id is None:
            job = await self.repository.create_job(
                session, document_id, status=JobStatus.PROCESSING, progress=0, started_at=_utcnow()
            )
            job_id = job.id
        else:
            await self.repository.update_job(
                session,
                job_id,
                status=JobStatus.PROCESSING,
                progress=0,
                started_at=_utcnow(),
                completed_at=None,
                error_message=None,
            )

        logger.info(f"Starting similarity job {job_id} for document {document_id}")
        try:
            await self.get_or_create_embedding(session, document_id)
            await self.repository.update_job(session, job_id, progress=50)

            result = await self.detection_service.detect_similar_documents(session, document_id)
            await self.repository.update_job(session, job_id, progress=100)

            await self.repository.update_job(
                session, job_id, status=JobStatus.COMPLETED, completed_at=_utcnow()
            )
        except Exception as e:
            logger.error(f"Similarity job {job_id} for document {document_id} failed: {e}", exc_info=True)
            await session.rollback()
            await self.repository.update_job(
                session,
                job_id,
                status=JobStatus.FAILED,
                error_message=str(e) or type(e).__name__,
                completed_at=_utcnow(),
            )
            raise

        logger.info(f"Similarity job {job_id} completed for document {document_id}")
        return result
