"""Chat-related Pydantic models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Literal
from uuid import uuid4

from pydantic import Field, field_validator

from .base import CamelModel

NEW_CHAT_TITLE = "New Chat"


class NoteCitation(CamelModel):
    """Snippet of a note that justifies part of an answer."""

    note_id: str
    snippet: str


class WebCitation(CamelModel):
    """Web page returned by the search-augmented backend."""

    uri: str
    title: str = ""


class UserMessage(CamelModel):
    """Question asked by the user."""

    role: Literal["user"] = "user"
    text: str


class AssistantMessage(CamelModel):
    """Answer produced by the AI, with its citations."""

    role: Literal["assistant"] = "assistant"
    answer_text: str = ""
    note_citations: list[NoteCitation] = Field(default_factory=list)
    web_citations: list[WebCitation] = Field(default_factory=list)


ChatMessage = Annotated[UserMessage | AssistantMessage, Field(discriminator="role")]


class ChatSession(CamelModel):
    """A conversation about a fixed set of notes."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str = NEW_CHAT_TITLE
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    note_ids: list[str] = Field(default_factory=list)
    messages: list[ChatMessage] = Field(default_factory=list)

    @field_validator("note_ids")
    @classmethod
    def _unique_note_ids(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))


class ChatSessionCreate(CamelModel):
    """Request model for starting a chat about selected notes."""

    note_ids: list[str] = Field(..., min_length=1)


class AskRequest(CamelModel):
    """Request model for asking a question in a session."""

    question: str = Field(..., min_length=1)
    use_external_search: bool = False


class TextDelta(CamelModel):
    """A piece of answer text to append."""

    type: Literal["delta"] = "delta"
    text: str


class NoteCitationsEvent(CamelModel):
    """Complete list of note citations for the answer."""

    type: Literal["sources"] = "sources"
    citations: list[NoteCitation]


class WebCitationsEvent(CamelModel):
    """Complete list of web citations for the answer."""

    type: Literal["web_sources"] = "web_sources"
    citations: list[WebCitation]


StreamEvent = TextDelta | NoteCitationsEvent | WebCitationsEvent


class GenerationChunk(CamelModel):
    """One element of a backend response stream."""

    text: str | None = None
    grounding_references: list[WebCitation] = Field(default_factory=list)
