"""API v1 router."""
from fastapi import APIRouter
from similarity_service.api.v1 import health, similarity

router = APIRouter(prefix="/v1")

router.include_router(similarity.router)
router.include_router(health.router)
