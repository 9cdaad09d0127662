"""FastAPI dependencies shared by the routers."""

import structlog
from fastapi import Depends, HTTPException, Request

from .auth import get_current_user_id
from .database import get_db
from .services import (
    GenerationBackend,
    MongoNoteStore,
    MongoSessionStore,
    SessionRegistry,
)

logger = structlog.get_logger(__name__)


def get_note_store(user_id: str = Depends(get_current_user_id)) -> MongoNoteStore:
    return MongoNoteStore(get_db(), user_id)


def get_session_store(user_id: str = Depends(get_current_user_id)) -> MongoSessionStore:
    return MongoSessionStore(get_db(), user_id)


def get_generation_backend(request: Request) -> GenerationBackend:
    """The app-wide generation backend created at startup."""
    backend = getattr(request.app.state, "generation_backend", None)
    if backend is None:
        logger.error("generation_backend_not_configured")
        raise HTTPException(status_code=500, detail="OpenAI API key not configured")
    return backend


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.session_registry
