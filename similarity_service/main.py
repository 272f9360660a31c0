import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from similarity_service.api.deps import build_container
from similarity_service.api.v1 import router as v1_router
from similarity_service.core.config import settings
from similarity_service.core.exceptions import SimilarityServiceError
from similarity_service.core.middleware import LoggingMiddleware

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = build_container()
    await services.work_queue.start()
    app.state.services = services
    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
    try:
        yield
    finally:
        await services.work_queue.close()
        if services.cache is not None:
            await services.cache.close()
        logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title="Document Similarity Service",
    description="Duplicate and near-duplicate detection for uploaded documents",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify actual origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(SimilarityServiceError)
async def similarity_error_handler(request: Request, exc: SimilarityServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(v1_router)


@app.get("/")
async def root():
    return {
        "message": "Document Similarity Service API",
        "environment": settings.ENVIRONMENT,
        "docs": "/docs",
        "health": "/v1/health",
    }


def run():
    uvicorn.run(
        "similarity_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
