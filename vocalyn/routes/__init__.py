"""API route handlers organized by domain."""

from .actions import router as actions_router
from .chat import router as chat_router
from .health import router as health_router
from .notes import router as notes_router

__all__ = ["actions_router", "chat_router", "health_router", "notes_router"]
