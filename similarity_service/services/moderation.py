"""Moderator review of similarity findings."""
import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from similarity_service.core.config import SimilarityConfigProvider
from similarity_service.core.exceptions import ConflictError, NotFoundError
from similarity_service.models import SimilarityRecord
from similarity_service.schemas.similarity import (
    CategorySummary,
    PendingSimilarity,
    TargetDocumentSummary,
    UploaderSummary,
)
from similarity_service.services.repository import SimilarityRepository
from similarity_service.services.similarity_algorithm import (
    DetailedSimilarity,
    cosine_similarity,
    detailed_similarity,
    hash_overlap,
)
from similarity_service.services.text_extraction import TextExtractionService

logger = logging.getLogger(__name__)


class SimilarityModerationService:

    def __init__(
        self,
        repository: SimilarityRepository,
        text_extractor: Optional[TextExtractionService] = None,
        config_provider: Optional[SimilarityConfigProvider] = None,
    ):
        self.repository = repository
        self.text_extractor = text_extractor
        self.config_provider = config_provider or SimilarityConfigProvider()

    async def list_pending_similarity(self, session: AsyncSession, document_id: UUID) -> List[PendingSimilarity]:
        """Unreviewed records for ``document_id``, highest score first."""
        records = await self.repository.list_pending_records(session, document_id)
        return [self._to_pending(record) for record in records]

    async def record_decision(
        self,
        session: AsyncSession,
        similarity_id: UUID,
        reviewer_id: UUID,
        is_duplicate: bool,
        notes: Optional[str] = None,
    ) -> SimilarityRecord:
        """
        Record a moderator's decision. A record can only be decided once.

        Raises:
            NotFoundError: Record does not exist
            ConflictError: Record was already processed
        """
        record = await self.repository.get_record(session, similarity_id)
        if record is None:
            raise NotFoundError(f"Similarity record {similarity_id} not found")
        if record.is_processed:
            raise ConflictError(f"Similarity record {similarity_id} has already been processed")

        updated = await self.repository.apply_decision(
            session,
            similarity_id,
            reviewer_id=reviewer_id,
            is_duplicate=is_duplicate,
            notes=notes,
            processed_at=datetime.now(timezone.utc),
        )
        if updated is None:
            raise ConflictError(f"Similarity record {similarity_id} has already been processed")

        logger.info(
            f"Similarity decision processed: {similarity_id} by {reviewer_id} (duplicate={is_duplicate})"
        )
        return updated

    async def explain_similarity(self, session: AsyncSession, similarity_id: UUID) -> DetailedSimilarity:
        """Recompute the signals behind a record and explain the score."""
        record = await self.repository.get_record(session, similarity_id)
        if record is None:
            raise NotFoundError(f"Similarity record {similarity_id} not found")

        source = await self.repository.get_document(session, record.source_document_id)
        target = await self.repository.get_document(session, record.target_document_id)
        if source is None or target is None:
            raise NotFoundError(f"Documents for similarity record {similarity_id} no longer exist")

        hash_sim = hash_overlap(
            [f.file_hash for f in source.files or []],
            [f.file_hash for f in target.files or []],
        )

        source_text = target_text = ""
        if self.text_extractor is not None:
            source_text = await self.text_extractor.extract_text_from_files(source.files or [], limit_text=True)
            target_text = await self.text_extractor.extract_text_from_files(target.files or [], limit_text=True)

        embeddings = await self.repository.get_embedding_vectors(session, [source.id, target.id])
        embedding_sim = cosine_similarity(embeddings.get(source.id), embeddings.get(target.id))

        return detailed_similarity(source_text, target_text, hash_sim, embedding_sim, self.config_provider.get())

    @staticmethod
    def _to_pending(record: SimilarityRecord) -> PendingSimilarity:
        target = record.target_document
        return PendingSimilarity(
            id=record.id,
            target_document=TargetDocumentSummary(
                id=target.id,
                title=target.title,
                description=target.description,
                uploader=UploaderSummary.model_validate(target.uploader) if target.uploader else None,
                category=CategorySummary.model_validate(target.category) if target.category else None,
                created_at=target.created_at,
            ),
            similarity_score=record.similarity_score,
            similarity_type=record.similarity_type,
            created_at=record.created_at,
        )
