"""Database access for documents, embeddings, similarity records and jobs."""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update, delete, insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql import func

from similarity_service.models import (
    Document,
    DocumentEmbedding,
    File,
    ModerationStatus,
    SimilarityJob,
    SimilarityRecord,
    document_files,
)

logger = logging.getLogger(__name__)


def _comparable_documents(exclude_id: UUID):
    """Public, non-rejected documents other than ``exclude_id``."""
    return (
        Document.id != exclude_id,
        Document.is_public.is_(True),
        Document.moderation_status != ModerationStatus.REJECTED,
    )


class SimilarityRepository:

    async def get_document(self, session: AsyncSession, document_id: UUID) -> Optional[Document]:
        result = await session.execute(
            select(Document)
            .options(selectinload(Document.files), selectinload(Document.uploader))
            .where(Document.id == document_id)
        )
        return result.scalar_one_or_none()

    async def get_documents(self, session: AsyncSession, document_ids: Sequence[UUID]) -> List[Document]:
        if not document_ids:
            return []
        result = await session.execute(
            select(Document)
            .options(selectinload(Document.files), selectinload(Document.uploader))
            .where(Document.id.in_(document_ids))
        )
        documents = {doc.id: doc for doc in result.scalars().all()}
        # Keep the candidate pool order stable across batches
        return [documents[doc_id] for doc_id in document_ids if doc_id in documents]

    async def find_documents_by_file_hashes(
        self,
        session: AsyncSession,
        file_hashes: Iterable[str],
        exclude_id: UUID,
    ) -> List[Document]:
        hashes = [h for h in file_hashes if h]
        if not hashes:
            return []
        matching_documents = (
            select(document_files.c.document_id)
            .join(File, File.id == document_files.c.file_id)
            .where(File.file_hash.in_(hashes))
        )
        result = await session.execute(
            select(Document)
            .options(selectinload(Document.files), selectinload(Document.uploader))
            .where(Document.id.in_(matching_documents), *_comparable_documents(exclude_id))
        )
        return list(result.scalars().all())

    async def get_candidate_ids(self, session: AsyncSession, exclude_id: UUID, limit: int) -> List[UUID]:
        result = await session.execute(
            select(Document.id)
            .where(*_comparable_documents(exclude_id))
            .order_by(Document.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # Embeddings

    async def get_embedding_vector(self, session: AsyncSession, document_id: UUID) -> Optional[Any]:
        result = await session.execute(
            select(DocumentEmbedding.embedding).where(DocumentEmbedding.document_id == document_id)
        )
        return result.scalar_one_or_none()

    async def get_embedding_vectors(
        self, session: AsyncSession, document_ids: Sequence[UUID]
    ) -> Dict[UUID, Any]:
        if not document_ids:
            return {}
        result = await session.execute(
            select(DocumentEmbedding.document_id, DocumentEmbedding.embedding)
            .where(DocumentEmbedding.document_id.in_(document_ids))
        )
        return {row.document_id: row.embedding for row in result if row.embedding is not None}

    async def upsert_embedding(
        self, session: AsyncSession, document_id: UUID, embedding: List[float], model: str
    ) -> None:
        stmt = pg_insert(DocumentEmbedding).values(document_id=document_id, embedding=embedding, model=model)
        stmt = stmt.on_conflict_do_update(
            index_elements=[DocumentEmbedding.document_id],
            set_={"embedding": stmt.excluded.embedding, "model": stmt.excluded.model, "updated_at": func.now()},
        )
        await session.execute(stmt)
        await session.commit()

    # Similarity records

    async def replace_similarity_records(
        self, session: AsyncSession, source_document_id: UUID, records: List[Dict[str, Any]]
    ) -> None:
        """Delete every record for the source, then insert ``records`` in one transaction."""
        await session.execute(
            delete(SimilarityRecord).where(SimilarityRecord.source_document_id == source_document_id)
        )
        if records:
            await session.execute(
                insert(SimilarityRecord),
                [{"source_document_id": source_document_id, **record} for record in records],
            )
        await session.commit()

    async def list_pending_records(self, session: AsyncSession, document_id: UUID) -> List[SimilarityRecord]:
        result = await session.execute(
            select(SimilarityRecord)
            .options(
                selectinload(SimilarityRecord.target_document).selectinload(Document.uploader),
                selectinload(SimilarityRecord.target_document).selectinload(Document.category),
            )
            .where(
                SimilarityRecord.source_document_id == document_id,
                SimilarityRecord.is_processed.is_(False),
            )
            .order_by(SimilarityRecord.similarity_score.desc())
        )
        return list(result.scalars().all())

    async def get_record(self, session: AsyncSession, similarity_id: UUID) -> Optional[SimilarityRecord]:
        result = await session.execute(select(SimilarityRecord).where(SimilarityRecord.id == similarity_id))
        return result.scalar_one_or_none()

    async def apply_decision(
        self,
        session: AsyncSession,
        similarity_id: UUID,
        reviewer_id: UUID,
        is_duplicate: bool,
        notes: Optional[str],
        processed_at: datetime,
    ) -> Optional[SimilarityRecord]:
        """Mark an unprocessed record as decided. Returns None if it was already processed."""
        result = await session.execute(
            update(SimilarityRecord)
            .where(SimilarityRecord.id == similarity_id, SimilarityRecord.is_processed.is_(False))
            .values(
                is_processed=True,
                is_duplicate=is_duplicate,
                admin_notes=notes,
                processed_by_id=reviewer_id,
                processed_at=processed_at,
            )
            .returning(SimilarityRecord)
        )
        record = result.scalar_one_or_none()
        await session.commit()
        return record

    # Jobs

    async def create_job(self, session: AsyncSession, document_id: UUID, **fields) -> SimilarityJob:
        job = SimilarityJob(document_id=document_id, **fields)
        session.add(job)
        await session.commit()
        await session.refresh(job)
        return job

    async def update_job(self, session: AsyncSession, job_id: UUID, **fields) -> None:
        await session.execute(update(SimilarityJob).where(SimilarityJob.id == job_id).values(**fields))
        await session.commit()

    async def get_job(self, session: AsyncSession, job_id: UUID) -> Optional[SimilarityJob]:
        result = await session.execute(select(SimilarityJob).where(SimilarityJob.id == job_id))
        return result.scalar_one_or_none()
