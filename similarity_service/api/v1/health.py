"""Health check endpoints."""
from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(prefix="/health", tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": _now(),
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """Ready once the service container is built and the work queue accepts tasks."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "timestamp": _now()},
        )

    queue = services.work_queue.status()
    return {
        "status": "ready" if services.work_queue.has_capacity() else "saturated",
        "queue": asdict(queue),
        "timestamp": _now(),
    }


@router.get("/live")
async def liveness_check():
    """Liveness check endpoint."""
    return {
        "status": "alive",
        "timestamp": _now(),
    }
