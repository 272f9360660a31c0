from similarity_service.models.document import Document, File, User, Category, document_files, ModerationStatus
from similarity_service.models.embedding import DocumentEmbedding
from similarity_service.models.similarity import SimilarityRecord, SimilarityJob, SimilarityType, JobStatus

__all__ = [
    "Document",
    "File",
    "User",
    "Category",
    "document_files",
    "ModerationStatus",
    "DocumentEmbedding",
    "SimilarityRecord",
    "SimilarityJob",
    "SimilarityType",
    "JobStatus",
]
