"""Similarity detection and moderation endpoints."""
from dataclasses import asdict
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from similarity_service.api.deps import ServiceContainer, get_database, get_services
from similarity_service.schemas.similarity import (
    DetailedSimilarityResponse,
    DetectionResult,
    EmbeddingResponse,
    JobResponse,
    PendingSimilarity,
    QueueStatusResponse,
    SimilarityDecisionRequest,
    SimilarityDecisionResponse,
)

router = APIRouter(prefix="/similarity", tags=["similarity"])


@router.post("/detect/{document_id}", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
async def enqueue_detection(
    document_id: UUID,
    db: AsyncSession = Depends(get_database),
    services: ServiceContainer = Depends(get_services),
):
    """Queue embedding + detection for a document. Poll /job/{id} for progress."""
    handle = await services.jobs.enqueue_detection_job(db, document_id)
    return handle.job


@router.post("/detect-sync/{document_id}", response_model=DetectionResult)
async def detect_now(
    document_id: UUID,
    services: ServiceContainer = Depends(get_services),
):
    """Run detection in the work queue and wait for the result."""
    return await services.jobs.detect_now(document_id)


@router.post("/embedding/{document_id}", response_model=EmbeddingResponse)
async def generate_embedding(
    document_id: UUID,
    force: bool = Query(False, description="Regenerate even if an embedding exists"),
    services: ServiceContainer = Depends(get_services),
):
    embedding = await services.jobs.generate_embedding(document_id, force_regenerate=force)
    return EmbeddingResponse(document_id=document_id, embedding_length=len(embedding))


@router.get("/results/{document_id}", response_model=List[PendingSimilarity])
async def list_pending(
    document_id: UUID,
    db: AsyncSession = Depends(get_database),
    services: ServiceContainer = Depends(get_services),
):
    """Unreviewed similarity records for a document."""
    return await services.moderation.list_pending_similarity(db, document_id)


@router.put("/decision/{similarity_id}", response_model=SimilarityDecisionResponse)
async def record_decision(
    similarity_id: UUID,
    decision: SimilarityDecisionRequest,
    db: AsyncSession = Depends(get_database),
    services: ServiceContainer = Depends(get_services),
):
    return await services.moderation.record_decision(
        db,
        similarity_id,
        reviewer_id=decision.reviewer_id,
        is_duplicate=decision.is_duplicate,
        notes=decision.notes,
    )


@router.get("/explain/{similarity_id}", response_model=DetailedSimilarityResponse)
async def explain(
    similarity_id: UUID,
    db: AsyncSession = Depends(get_database),
    services: ServiceContainer = Depends(get_services),
):
    detail = await services.moderation.explain_similarity(db, similarity_id)
    return DetailedSimilarityResponse(similarity_id=similarity_id, **asdict(detail))


@router.get("/job/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: UUID,
    db: AsyncSession = Depends(get_database),
    services: ServiceContainer = Depends(get_services),
):
    return await services.jobs.get_job(db, job_id)


@router.get("/queue", response_model=QueueStatusResponse)
async def queue_status(services: ServiceContainer = Depends(get_services)):
    return asdict(services.work_queue.status())
