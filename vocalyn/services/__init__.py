"""Note processing and Ask AI services."""

from .actions import action_items_for_date, todays_action_items
from .answering import FALLBACK_ANSWER, SOURCES_SEPARATOR, stream_answer
from .generation import GenerationBackend, OpenAIGenerationBackend, create_generation_backend
from .sessions import ExchangeState, SessionReconciler, SessionRegistry
from .stores import MongoNoteStore, MongoSessionStore, NoteStore, SessionStore
from .transcripts import TranscriptProcessor

__all__ = [
    "FALLBACK_ANSWER",
    "SOURCES_SEPARATOR",
    "ExchangeState",
    "GenerationBackend",
    "MongoNoteStore",
    "MongoSessionStore",
    "NoteStore",
    "OpenAIGenerationBackend",
    "SessionReconciler",
    "SessionRegistry",
    "SessionStore",
    "TranscriptProcessor",
    "action_items_for_date",
    "create_generation_backend",
    "stream_answer",
    "todays_action_items",
]
