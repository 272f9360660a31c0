"""Similarity request and response schemas."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Tuple
from datetime import datetime
from uuid import UUID


class UploaderSummary(BaseModel):
    """Uploader of a matched document."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class CategorySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str


class SimilarDocument(BaseModel):
    """One accepted match in a detection result."""
    document_id: UUID = Field(..., description="Matched (target) document ID")
    title: str
    similarity_score: float = Field(..., ge=0.0, le=1.0)
    similarity_type: str = Field(..., description="hash, text or content")
    uploader: Optional[UploaderSummary] = None
    created_at: Optional[datetime] = None


class DetectionResult(BaseModel):
    """Summary returned by a detection run."""
    has_similar_documents: bool
    similar_documents: List[SimilarDocument] = Field(default_factory=list)
    highest_similarity_score: float = 0.0
    total_similar_documents: int = 0


class TargetDocumentSummary(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    uploader: Optional[UploaderSummary] = None
    category: Optional[CategorySummary] = None
    created_at: Optional[datetime] = None


class PendingSimilarity(BaseModel):
    """Unreviewed similarity record with its target document."""
    id: UUID
    target_document: TargetDocumentSummary
    similarity_score: float
    similarity_type: str
    created_at: Optional[datetime] = None


class SimilarityDecisionRequest(BaseModel):
    """Moderator decision on a similarity record."""
    reviewer_id: UUID = Field(..., description="Reviewing moderator")
    is_duplicate: bool
    notes: Optional[str] = Field(default=None, max_length=2000)


class SimilarityDecisionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    source_document_id: UUID
    target_document_id: UUID
    is_processed: bool
    is_duplicate: Optional[bool] = None
    admin_notes: Optional[str] = None
    processed_by_id: Optional[UUID] = None
    processed_at: Optional[datetime] = None


class JobResponse(BaseModel):
    """Similarity job status, for polling."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    status: str
    progress: int
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class QueueStatusResponse(BaseModel):
    pending: int
    processing: int
    available: int
    remaining_capacity: int
    max_queue_size: int


class EmbeddingResponse(BaseModel):
    document_id: UUID
    embedding_length: int


class SegmentResponse(BaseModel):
    source_text: str
    target_text: str
    similarity: float
    source_position: Tuple[int, int]
    target_position: Tuple[int, int]


class ScoreBreakdownResponse(BaseModel):
    hash_similarity: float
    text_similarity: float
    embedding_similarity: float
    jaccard_score: float
    edit_score: float


class DetailedSimilarityResponse(BaseModel):
    """Explanation of a similarity record for reviewers."""
    similarity_id: UUID
    final_score: float
    dominant_type: str
    explanation: str
    breakdown: ScoreBreakdownResponse
    similar_segments: List[SegmentResponse] = Field(default_factory=list)
