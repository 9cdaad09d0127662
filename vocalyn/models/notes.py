"""Notes-related Pydantic models."""

from __future__ import annotations

import re
from datetime import date, datetime

from pydantic import Field

from .base import CamelModel

UNTITLED_NOTE = "Untitled Note"


class Emotion(CamelModel):
    """A dominant emotion found in a note."""

    emotion: str
    justification: str = ""


class AIActionItem(CamelModel):
    """Action item as returned by the transcript processor."""

    text: str
    due_date: str = ""  # YYYY-MM-DD or empty


class ActionItem(AIActionItem):
    """Action item as stored on a note."""

    time: str | None = None  # HH:MM
    completed: bool = False


class ProcessedNote(CamelModel):
    """Structured result of processing a raw transcript."""

    refined_text: str
    emotion_summary: str = ""
    emotions: list[Emotion] = Field(default_factory=list)
    action_items: list[AIActionItem] = Field(default_factory=list)


class Note(CamelModel):
    """A stored note."""

    id: str
    created_at: datetime
    refined_text: str
    emotion_summary: str = ""
    emotions: list[Emotion] = Field(default_factory=list)
    action_items: list[ActionItem] = Field(default_factory=list)

    @property
    def title(self) -> str:
        """First line of the refined text, without a leading heading marker."""
        first_line = self.refined_text.split("\n")[0]
        return re.sub(r"^#\s*", "", first_line) or UNTITLED_NOTE


class TranscriptRequest(CamelModel):
    """Request model for turning a transcript into a note."""

    transcript: str = Field(..., min_length=1)
    current_date: date | None = None


class ManualTaskCreate(CamelModel):
    """Request model for adding a task from the calendar."""

    text: str = Field(..., min_length=1)
    due_date: date
    time: str | None = Field(default=None, pattern=r"^\d{2}:\d{2}$")


class NoteUpdate(ProcessedNote):
    """Request model for replacing a note's content."""

    refined_text: str = Field(..., min_length=1)


class DueDateUpdate(CamelModel):
    """Request model for moving an action item to another day."""

    due_date: date
