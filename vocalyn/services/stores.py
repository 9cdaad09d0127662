"""Note and chat session stores.

The Ask AI services only depend on the :class:`NoteStore` and
:class:`SessionStore` protocols. The Mongo implementations are per-user views
over the ``notes`` and ``chat_sessions`` collections; every write requires a
user id and raises :class:`NotAuthenticated` without one.
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from opentelemetry import trace

from ..errors import NotAuthenticated
from ..models import ChatSession, Note, ProcessedNote

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

MANUAL_TASK_SUMMARY = "Task added manually from calendar."


class NoteStore(Protocol):
    """Read access to notes, as needed by Ask AI."""

    async def lookup(self, ids: Iterable[str]) -> list[Note]: ...


class SessionStore(Protocol):
    """Persistence of finished chat sessions."""

    async def exists(self, session_id: str) -> bool: ...

    async def upsert(self, session: ChatSession) -> ChatSession: ...


def _note_from_doc(doc: dict[str, Any]) -> Note:
    return Note(
        id=str(doc["_id"]),
        created_at=doc["created_at"],
        refined_text=doc.get("refined_text", ""),
        emotion_summary=doc.get("emotion_summary", ""),
        emotions=doc.get("emotions", []),
        action_items=doc.get("action_items", []),
    )


def _session_from_doc(doc: dict[str, Any]) -> ChatSession:
    return ChatSession(
        id=doc["_id"],
        title=doc["title"],
        created_at=doc["created_at"],
        note_ids=doc.get("note_ids", []),
        messages=doc.get("messages", []),
    )


def _content_fields(processed: ProcessedNote) -> dict[str, Any]:
    return {
        "refined_text": processed.refined_text,
        "emotion_summary": processed.emotion_summary,
        "emotions": [emotion.model_dump() for emotion in processed.emotions],
        "action_items": [
            {"text": item.text, "due_date": item.due_date, "time": None, "completed": False}
            for item in processed.action_items
        ],
    }


class MongoNoteStore:
    """Notes belonging to one user."""

    def __init__(self, db: AsyncIOMotorDatabase, user_id: str | None):
        self.db = db
        self.user_id = user_id

    def _require_user(self) -> str:
        if not self.user_id:
            raise NotAuthenticated()
        return self.user_id

    @tracer.start_as_current_span("notes.lookup")
    async def lookup(self, ids: Iterable[str]) -> list[Note]:
        """Fetch the user's notes whose ids are in ``ids``, newest first."""
        object_ids = [ObjectId(note_id) for note_id in set(ids) if ObjectId.is_valid(note_id)]
        if not object_ids:
            return []

        cursor = self.db.notes.find(
            {"_id": {"$in": object_ids}, "user_id": self._require_user()}
        ).sort("created_at", -1)
        notes = [_note_from_doc(doc) async for doc in cursor]

        logger.debug("notes_looked_up", requested=len(object_ids), found=len(notes))
        return notes

    @tracer.start_as_current_span("notes.list")
    async def list_notes(self) -> list[Note]:
        """All of the user's notes, newest first."""
        cursor = self.db.notes.find({"user_id": self._require_user()}).sort("created_at", -1)
        return [_note_from_doc(doc) async for doc in cursor]

    async def _insert(self, doc: dict[str, Any]) -> Note:
        doc = {"user_id": self._require_user(), "created_at": datetime.now(UTC), **doc}
        result = await self.db.notes.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info("note_saved", note_id=str(result.inserted_id), user_id=self.user_id)
        return _note_from_doc(doc)

    async def _find(self, note_id: str) -> dict[str, Any] | None:
        user_id = self._require_user()
        if not ObjectId.is_valid(note_id):
            return None
        return await self.db.notes.find_one({"_id": ObjectId(note_id), "user_id": user_id})

    @tracer.start_as_current_span("notes.save_processed")
    async def save_processed(self, processed: ProcessedNote) -> Note:
        """Store a processed transcript as a new note; action items start incomplete."""
        return await self._insert(_content_fields(processed))

    @tracer.start_as_current_span("notes.update")
    async def update(self, note_id: str, processed: ProcessedNote) -> Note | None:
        """Replace a note's content. Its action items are replaced and start incomplete.

        Returns:
            The updated note, or None if the user has no such note
        """
        doc = await self._find(note_id)
        if not doc:
            return None

        fields = _content_fields(processed)
        await self.db.notes.update_one({"_id": doc["_id"]}, {"$set": fields})
        doc.update(fields)

        logger.info("note_updated", note_id=note_id, action_items=len(fields["action_items"]))
        return _note_from_doc(doc)

    @tracer.start_as_current_span("notes.delete")
    async def delete(self, note_id: str) -> bool:
        user_id = self._require_user()
        if not ObjectId.is_valid(note_id):
            return False
        result = await self.db.notes.delete_one({"_id": ObjectId(note_id), "user_id": user_id})
        logger.info("note_deleted", note_id=note_id, deleted=result.deleted_count)
        return result.deleted_count > 0

    @tracer.start_as_current_span("notes.save_manual_task")
    async def save_manual_task(self, text: str, due_date: str, time: str | None = None) -> Note:
        """Store a calendar task as a single-item to-do note."""
        return await self._insert(
            {
                "refined_text": f"# To-Do: {text}",
                "emotion_summary": MANUAL_TASK_SUMMARY,
                "emotions": [],
                "action_items": [
                    {"text": text, "due_date": due_date, "time": time, "completed": False}
                ],
            }
        )

    @tracer.start_as_current_span("notes.toggle_action_item")
    async def toggle_action_item(self, note_id: str, item_index: int) -> Note | None:
        """Flip the completion flag of one action item. Returns None if not found."""
        doc = await self._find(note_id)
        if not doc or not 0 <= item_index < len(doc.get("action_items", [])):
            return None

        completed = not doc["action_items"][item_index].get("completed", False)
        doc["action_items"][item_index]["completed"] = completed
        await self.db.notes.update_one(
            {"_id": doc["_id"]},
            {"$set": {f"action_items.{item_index}.completed": completed}},
        )

        logger.info(
            "action_item_toggled", note_id=note_id, item_index=item_index, completed=completed
        )
        return _note_from_doc(doc)

    @tracer.start_as_current_span("notes.reschedule_action_item")
    async def reschedule_action_item(
        self, note_id: str, item_index: int, due_date: str
    ) -> Note | None:
        """Move one action item to another day. Returns None if not found."""
        doc = await self._find(note_id)
        if not doc or not 0 <= item_index < len(doc.get("action_items", [])):
            return None

        doc["action_items"][item_index]["due_date"] = due_date
        await self.db.notes.update_one(
            {"_id": doc["_id"]},
            {"$set": {f"action_items.{item_index}.due_date": due_date}},
        )

        logger.info(
            "action_item_rescheduled", note_id=note_id, item_index=item_index, due_date=due_date
        )
        return _note_from_doc(doc)


class MongoSessionStore:
    """Chat sessions belonging to one user."""

    def __init__(self, db: AsyncIOMotorDatabase, user_id: str | None):
        self.db = db
        self.user_id = user_id

    def _require_user(self) -> str:
        if not self.user_id:
            raise NotAuthenticated()
        return self.user_id

    async def exists(self, session_id: str) -> bool:
        count = await self.db.chat_sessions.count_documents(
            {"_id": session_id, "user_id": self._require_user()}, limit=1
        )
        return count > 0

    async def get(self, session_id: str) -> ChatSession | None:
        doc = await self.db.chat_sessions.find_one(
            {"_id": session_id, "user_id": self._require_user()}
        )
        return _session_from_doc(doc) if doc else None

    async def list_sessions(self) -> list[ChatSession]:
        cursor = self.db.chat_sessions.find({"user_id": self._require_user()}).sort(
            "created_at", -1
        )
        return [_session_from_doc(doc) async for doc in cursor]

    @tracer.start_as_current_span("chat_sessions.upsert")
    async def upsert(self, session: ChatSession) -> ChatSession:
        """Insert the session if unseen, otherwise replace its title, notes and messages.

        Returns:
            The session as stored
        """
        user_id = self._require_user()
        span = trace.get_current_span()
        span.set_attribute("session.id", session.id)
        span.set_attribute("session.message_count", len(session.messages))

        fields = {
            "title": session.title,
            "note_ids": session.note_ids,
            "messages": [message.model_dump() for message in session.messages],
        }

        if await self.exists(session.id):
            await self.db.chat_sessions.update_one(
                {"_id": session.id, "user_id": user_id}, {"$set": fields}
            )
            logger.info("chat_session_updated", session_id=session.id, user_id=user_id)
        else:
            await self.db.chat_sessions.insert_one(
                {"_id": session.id, "user_id": user_id, "created_at": session.created_at, **fields}
            )
            logger.info("chat_session_inserted", session_id=session.id, user_id=user_id)

        stored = await self.get(session.id)
        if stored is None:
            raise RuntimeError(f"Chat session {session.id} missing after upsert")
        return stored

    async def delete(self, session_id: str) -> bool:
        result = await self.db.chat_sessions.delete_one(
            {"_id": session_id, "user_id": self._require_user()}
        )
        logger.info("chat_session_deleted", session_id=session_id, deleted=result.deleted_count)
        return result.deleted_count > 0
