"""In-memory stand-ins for the stores and the generation backend."""

from collections.abc import Iterable
from datetime import UTC, datetime

from bson import ObjectId

from vocalyn.models import (
    ActionItem,
    ChatSession,
    GenerationChunk,
    Note,
    ProcessedNote,
    WebCitation,
)
from vocalyn.services.stores import MANUAL_TASK_SUMMARY


class FakeBackend:
    """Scripted generation backend.

    ``chunks`` are streamed in order, then ``error`` (if any) is raised.
    ``result`` is returned from ``generate``, or raised if it is an exception.
    """

    def __init__(self, chunks: Iterable[GenerationChunk] = (), error=None, result=None):
        self.chunks = list(chunks)
        self.error = error
        self.result = result
        self.prompts: list[str] = []
        self.search_flags: list[bool] = []
        self.schemas: list[dict] = []

    async def generate(self, prompt, schema):
        self.prompts.append(prompt)
        self.schemas.append(schema)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result

    async def generate_stream(self, prompt, *, enable_external_search=False):
        self.prompts.append(prompt)
        self.search_flags.append(enable_external_search)
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


def text_chunks(*texts: str) -> list[GenerationChunk]:
    return [GenerationChunk(text=text) for text in texts]


def web_chunk(*references: tuple[str, str]) -> GenerationChunk:
    return GenerationChunk(
        grounding_references=[WebCitation(uri=uri, title=title) for uri, title in references]
    )


class InMemoryNoteStore:
    """Note store backed by a dict."""

    def __init__(self, notes: Iterable[Note] = ()):
        self.notes = {note.id: note for note in notes}
        self.lookups: list[list[str]] = []

    async def lookup(self, ids):
        ids = list(ids)
        self.lookups.append(ids)
        found = [self.notes[note_id] for note_id in dict.fromkeys(ids) if note_id in self.notes]
        return sorted(found, key=lambda note: note.created_at, reverse=True)

    async def list_notes(self):
        return sorted(self.notes.values(), key=lambda note: note.created_at, reverse=True)

    def _add(self, refined_text, emotion_summary, emotions, action_items) -> Note:
        note = Note(
            id=str(ObjectId()),
            created_at=datetime.now(UTC),
            refined_text=refined_text,
            emotion_summary=emotion_summary,
            emotions=emotions,
            action_items=action_items,
        )
        self.notes[note.id] = note
        return note

    async def save_processed(self, processed: ProcessedNote):
        return self._add(
            processed.refined_text,
            processed.emotion_summary,
            processed.emotions,
            [ActionItem(text=item.text, due_date=item.due_date) for item in processed.action_items],
        )

    async def save_manual_task(self, text, due_date, time=None):
        return self._add(
            f"# To-Do: {text}",
            MANUAL_TASK_SUMMARY,
            [],
            [ActionItem(text=text, due_date=due_date, time=time)],
        )

    async def toggle_action_item(self, note_id, item_index):
        note = self.notes.get(note_id)
        if note is None or not 0 <= item_index < len(note.action_items):
            return None
        item = note.action_items[item_index]
        item.completed = not item.completed
        return note

    async def reschedule_action_item(self, note_id, item_index, due_date):
        note = self.notes.get(note_id)
        if note is None or not 0 <= item_index < len(note.action_items):
            return None
        note.action_items[item_index].due_date = due_date
        return note

    async def update(self, note_id, processed: ProcessedNote):
        note = self.notes.get(note_id)
        if note is None:
            return None
        updated = note.model_copy(
            update={
                "refined_text": processed.refined_text,
                "emotion_summary": processed.emotion_summary,
                "emotions": processed.emotions,
                "action_items": [
                    ActionItem(text=item.text, due_date=item.due_date)
                    for item in processed.action_items
                ],
            }
        )
        self.notes[note_id] = updated
        return updated

    async def delete(self, note_id):
        return self.notes.pop(note_id, None) is not None


class InMemorySessionStore:
    """Session store that records every upsert."""

    def __init__(self, error: Exception | None = None):
        self.sessions: dict[str, ChatSession] = {}
        self.upserts: list[ChatSession] = []
        self.error = error

    async def exists(self, session_id):
        return session_id in self.sessions

    async def get(self, session_id):
        session = self.sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def list_sessions(self):
        return sorted(self.sessions.values(), key=lambda s: s.created_at, reverse=True)

    async def upsert(self, session):
        if self.error is not None:
            raise self.error
        self.upserts.append(session)
        self.sessions[session.id] = session.model_copy(deep=True)
        return session.model_copy(deep=True)

    async def delete(self, session_id):
        return self.sessions.pop(session_id, None) is not None


def make_note(note_id: str, text: str, created_at: datetime | None = None, action_items=()):
    return Note(
        id=note_id,
        created_at=created_at or datetime(2025, 3, 14, 9, 0, tzinfo=UTC),
        refined_text=text,
        action_items=list(action_items),
    )
