from sqlalchemy import Column, String, Text, DateTime, Boolean, Float, Integer, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from similarity_service.core.database import Base


class SimilarityType:
    HASH = "hash"
    TEXT = "text"
    CONTENT = "content"  # embedding dominant


class JobStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SimilarityRecord(Base):
    """Directed match from the document that ran detection to a candidate."""
    __tablename__ = "similarity_records"
    __table_args__ = (
        Index("ix_similarity_records_source_processed", "source_document_id", "is_processed"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    source_document_id = Column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_document_id = Column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    similarity_score = Column(Float, nullable=False, index=True)
    similarity_type = Column(String(20), nullable=False, default=SimilarityType.CONTENT)
    is_processed = Column(Boolean, nullable=False, default=False)
    is_duplicate = Column(Boolean)
    admin_notes = Column(Text)
    processed_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    processed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    target_document = relationship("Document", foreign_keys=[target_document_id])


class SimilarityJob(Base):
    """Audit trail of one embedding + detection run."""
    __tablename__ = "similarity_jobs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id = Column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String(20), nullable=False, default=JobStatus.PENDING, index=True)
    progress = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
