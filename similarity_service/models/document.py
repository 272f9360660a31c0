from sqlalchemy import Column, String, Text, DateTime, Boolean, BigInteger, Integer, ForeignKey, JSON, Table
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from similarity_service.core.database import Base


class ModerationStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base):
    """Uploader / reviewer identity. Owned by the auth service; read only here."""
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(255))
    last_name = Column(String(255))


class Category(Base):
    __tablename__ = "categories"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)


document_files = Table(
    "document_files",
    Base.metadata,
    Column("document_id", UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True),
    Column("file_id", UUID(as_uuid=True), ForeignKey("files.id", ondelete="CASCADE"), primary_key=True),
    Column("sort_order", Integer, default=0),
)


class File(Base):
    __tablename__ = "files"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    file_name = Column(String(512), nullable=False)
    file_hash = Column(String(64), index=True)  # SHA-256 of raw bytes; NULL when ingestion failed
    storage_key = Column(String(1024), nullable=False)
    mime_type = Column(String(255))
    file_size = Column(BigInteger)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Document(Base):
    __tablename__ = "documents"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(512), nullable=False)
    description = Column(Text)
    tags = Column(JSON, default=list)
    ai_summary = Column(Text)
    ai_key_points = Column(JSON, default=list)
    is_public = Column(Boolean, default=False, nullable=False, index=True)
    moderation_status = Column(String(20), default=ModerationStatus.PENDING, nullable=False, index=True)
    uploader_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    category_id = Column(UUID(as_uuid=True), ForeignKey("categories.id"), index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    files = relationship("File", secondary=document_files, order_by=document_files.c.sort_order)
    uploader = relationship("User")
    category = relationship("Category")
    embedding = relationship("DocumentEmbedding", uselist=False, back_populates="document")
