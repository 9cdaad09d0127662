"""Health check and root endpoints."""

import structlog
from fastapi import APIRouter, Request

# Initialize logger
logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/")
async def root():
    logger.info("root_endpoint_accessed")
    return {"message": "Vocalyn voice notes API"}


@router.get("/health")
async def health(request: Request):
    """Health check endpoint; also reports whether the AI backend is configured."""
    logger.debug("health_check_requested")
    backend = getattr(request.app.state, "generation_backend", None)
    return {
        "status": "healthy",
        "service": "vocalyn-api",
        "ai_backend": "configured" if backend is not None else "missing",
    }
