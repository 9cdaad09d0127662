"""FastAPI application for Vocalyn."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from .database import Database
from .observability import initialize_observability
from .routes import actions_router, chat_router, health_router, notes_router
from .services import SessionRegistry, create_generation_backend

# Initialize logger
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("api_starting")

    initialize_observability()

    await Database.connect()

    app.state.generation_backend = create_generation_backend()
    app.state.session_registry = SessionRegistry()
    logger.info("api_started", ai_backend=app.state.generation_backend is not None)

    yield

    logger.info("api_shutting_down", live_sessions=len(app.state.session_registry))
    backend = app.state.generation_backend
    if backend is not None:
        await backend.close()
    await Database.disconnect()
    logger.info("api_shutdown_complete")


app = FastAPI(
    title="Vocalyn API",
    description="Voice notes with AI refinement, calendar tasks and Ask AI chat",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with OpenTelemetry
FastAPIInstrumentor.instrument_app(app)

# Include routers
app.include_router(health_router)
app.include_router(notes_router)
app.include_router(actions_router)
app.include_router(chat_router)
