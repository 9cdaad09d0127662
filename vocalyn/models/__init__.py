"""Pydantic models for API requests and responses."""

from .actions import DueActionItem
from .chat import (
    NEW_CHAT_TITLE,
    AskRequest,
    AssistantMessage,
    ChatMessage,
    ChatSession,
    ChatSessionCreate,
    GenerationChunk,
    NoteCitation,
    NoteCitationsEvent,
    StreamEvent,
    TextDelta,
    UserMessage,
    WebCitation,
    WebCitationsEvent,
)
from .notes import (
    UNTITLED_NOTE,
    ActionItem,
    AIActionItem,
    DueDateUpdate,
    Emotion,
    ManualTaskCreate,
    Note,
    NoteUpdate,
    ProcessedNote,
    TranscriptRequest,
)

__all__ = [
    "NEW_CHAT_TITLE",
    "UNTITLED_NOTE",
    "AIActionItem",
    "ActionItem",
    # Chat models
    "AskRequest",
    "AssistantMessage",
    "ChatMessage",
    "ChatSession",
    "ChatSessionCreate",
    # Action projections
    "DueActionItem",
    "DueDateUpdate",
    # Notes models
    "Emotion",
    "GenerationChunk",
    "ManualTaskCreate",
    "Note",
    "NoteCitation",
    "NoteCitationsEvent",
    "NoteUpdate",
    "ProcessedNote",
    "StreamEvent",
    "TextDelta",
    "TranscriptRequest",
    "UserMessage",
    "WebCitation",
    "WebCitationsEvent",
]
