"""Queue-backed similarity jobs."""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from similarity_service.core.database import get_async_session
from similarity_service.core.exceptions import NotFoundError, QueueFullError
from similarity_service.models import JobStatus, SimilarityJob
from similarity_service.schemas.similarity import DetectionResult
from similarity_service.services.embedding import EmbeddingService
from similarity_service.services.repository import SimilarityRepository
from similarity_service.services.work_queue import WorkQueue, WorkResult

logger = logging.getLogger(__name__)


@dataclass
class JobHandle:
    """A queued job: its row for polling and the future of its WorkResult."""
    job: SimilarityJob
    future: asyncio.Future

    @property
    def job_id(self) -> UUID:
        return self.job.id

    async def wait(self) -> WorkResult:
        return await self.future


class SimilarityJobService:

    def __init__(
        self,
        work_queue: WorkQueue,
        embedding_service: EmbeddingService,
        repository: SimilarityRepository,
        session_factory: Callable = get_async_session,
    ):
        self.work_queue = work_queue
        self.embedding_service = embedding_service
        self.repository = repository
        self.session_factory = session_factory

    async def enqueue_detection_job(self, session: AsyncSession, document_id: UUID) -> JobHandle:
        """
        Create a pending job and queue its embedding + detection run.

        Raises:
            QueueFullError: Queue at capacity; no job row is created
            NotFoundError: Document does not exist
        """
        self.work_queue.ensure_capacity()

        if await self.repository.get_document(session, document_id) is None:
            raise NotFoundError(f"Document {document_id} not found")

        job = await self.repository.create_job(session, document_id, status=JobStatus.PENDING, progress=0)
        try:
            future = self.work_queue.submit(
                str(job.id),
                lambda: self._run_job(document_id, job.id),
            )
        except QueueFullError:
            # Queue filled up while the job row was being written
            await self.repository.update_job(
                session,
                job.id,
                status=JobStatus.FAILED,
                error_message="Work queue full",
                completed_at=datetime.now(timezone.utc),
            )
            raise

        future.add_done_callback(lambda f: self._log_outcome(job.id, f))
        logger.info(f"Queued similarity job {job.id} for document {document_id}")
        return JobHandle(job=job, future=future)

    async def _run_job(self, document_id: UUID, job_id: UUID):
        # Fresh session per attempt so a failed transaction never leaks into a retry
        async with self.session_factory() as session:
            try:
                return await self.embedding_service.run_embedding_and_detection_job(
                    session, document_id, job_id=job_id
                )
            except asyncio.CancelledError:
                await self._mark_cancelled(job_id)
                raise

    async def _mark_cancelled(self, job_id: UUID):
        try:
            async with self.session_factory() as session:
                await self.repository.update_job(
                    session,
                    job_id,
                    status=JobStatus.FAILED,
                    error_message="Work queue closed while job was running",
                    completed_at=datetime.now(timezone.utc),
                )
        except Exception as e:
            logger.error(f"Could not mark cancelled similarity job {job_id} as failed: {e}")

    async def detect_now(self, document_id: UUID) -> DetectionResult:
        """
        Run detection in the work queue and wait for the result.

        Raises:
            QueueFullError: Queue at capacity
            NotFoundError: Document does not exist
        """
        detection = self.embedding_service.detection_service
        outcome = await self.work_queue.enqueue(
            f"detect:{document_id}",
            lambda: self._in_session(detection.detect_similar_documents, document_id),
        )
        return outcome.result

    async def generate_embedding(self, document_id: UUID, force_regenerate: bool = False) -> List[float]:
        """Get or create a document embedding in the work queue and wait for it."""
        outcome = await self.work_queue.enqueue(
            f"embedding:{document_id}",
            lambda: self._in_session(
                self.embedding_service.get_or_create_embedding, document_id, force_regenerate=force_regenerate
            ),
        )
        return outcome.result

    async def _in_session(self, operation: Callable, *args, **kwargs):
        async with self.session_factory() as session:
            return await operation(session, *args, **kwargs)

    @staticmethod
    def _log_outcome(job_id: UUID, future: asyncio.Future):
        if future.cancelled():
            logger.warning(f"Similarity job {job_id} was cancelled")
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Similarity job {job_id} failed permanently: {error}")

    async def get_job(self, session: AsyncSession, job_id: UUID) -> SimilarityJob:
        job = await self.repository.get_job(session, job_id)
        if job is None:
            raise NotFoundError(f"Similarity job {job_id} not found")
        return job
