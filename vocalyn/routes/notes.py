"""Notes endpoints."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response

from ..auth import get_current_user_id
from ..dependencies import get_generation_backend, get_note_store
from ..errors import BackendUnavailable, EmptyInput
from ..models import DueDateUpdate, Note, NoteUpdate, TranscriptRequest
from ..observability import get_tracer
from ..services import GenerationBackend, MongoNoteStore, TranscriptProcessor

# Initialize logger
logger = structlog.get_logger(__name__)

# Get tracer
tracer = get_tracer(__name__)

router = APIRouter(prefix="/notes", tags=["notes"])


@router.post("", response_model=Note, status_code=201)
async def create_note(
    request: TranscriptRequest,
    user_id: str = Depends(get_current_user_id),
    note_store: MongoNoteStore = Depends(get_note_store),
    backend: GenerationBackend = Depends(get_generation_backend),
):
    """
    Turn a raw transcript into a note.

    The transcript is refined by the AI, analyzed for emotions and action
    items, then stored. ``currentDate`` is the caller's local date and is used
    to resolve relative due dates; it defaults to the server's local date.
    """
    with tracer.start_as_current_span("create_note") as span:
        span.set_attribute("user.id", user_id)
        span.set_attribute("transcript.length", len(request.transcript))

        logger.info(
            "note_creation_attempt", user_id=user_id, transcript_length=len(request.transcript)
        )

        processor = TranscriptProcessor(backend)
        try:
            processed = await processor.process(request.transcript, request.current_date)
        except EmptyInput as e:
            raise HTTPException(status_code=400, detail=str(e))
        except BackendUnavailable as e:
            logger.error("note_creation_ai_failed", user_id=user_id, error=str(e))
            raise HTTPException(
                status_code=503,
                detail="Failed to analyze note. The AI service may be unavailable.",
            )

        note = await note_store.save_processed(processed)
        span.set_attribute("note.id", note.id)

        logger.info("note_created", user_id=user_id, note_id=note.id)
        return note


@router.get("", response_model=list[Note])
async def list_notes(
    user_id: str = Depends(get_current_user_id),
    note_store: MongoNoteStore = Depends(get_note_store),
):
    """List the user's notes, newest first."""
    notes = await note_store.list_notes()
    logger.info("notes_listed", user_id=user_id, count=len(notes))
    return notes


@router.patch("/{note_id}/action-items/{item_index}", response_model=Note)
async def toggle_action_item(
    note_id: str,
    item_index: int,
    user_id: str = Depends(get_current_user_id),
    note_store: MongoNoteStore = Depends(get_note_store),
):
    """Toggle the completion flag of one action item."""
    note = await note_store.toggle_action_item(note_id, item_index)
    if note is None:
        logger.warning(
            "action_item_not_found", user_id=user_id, note_id=note_id, item_index=item_index
        )
        raise HTTPException(status_code=404, detail="Action item not found")
    return note


@router.put("/{note_id}", response_model=Note)
async def update_note(
    note_id: str,
    update: NoteUpdate,
    user_id: str = Depends(get_current_user_id),
    note_store: MongoNoteStore = Depends(get_note_store),
):
    """
    Replace a note's text, emotions and action items.

    Action items are replaced as given and start incomplete.
    """
    note = await note_store.update(note_id, update)
    if note is None:
        logger.warning("note_not_found", user_id=user_id, note_id=note_id)
        raise HTTPException(status_code=404, detail="Note not found")

    logger.info("note_updated", user_id=user_id, note_id=note_id)
    return note


@router.delete("/{note_id}", status_code=204)
async def delete_note(
    note_id: str,
    user_id: str = Depends(get_current_user_id),
    note_store: MongoNoteStore = Depends(get_note_store),
):
    """Delete a note. Chat sessions that cited it keep their answers."""
    if not await note_store.delete(note_id):
        logger.warning("note_not_found", user_id=user_id, note_id=note_id)
        raise HTTPException(status_code=404, detail="Note not found")

    logger.info("note_deleted", user_id=user_id, note_id=note_id)
    return Response(status_code=204)


@router.patch("/{note_id}/action-items/{item_index}/due-date", response_model=Note)
async def reschedule_action_item(
    note_id: str,
    item_index: int,
    update: DueDateUpdate,
    user_id: str = Depends(get_current_user_id),
    note_store: MongoNoteStore = Depends(get_note_store),
):
    """Move an action item to another calendar day."""
    note = await note_store.reschedule_action_item(
        note_id, item_index, update.due_date.isoformat()
    )
    if note is None:
        logger.warning(
            "action_item_not_found", user_id=user_id, note_id=note_id, item_index=item_index
        )
        raise HTTPException(status_code=404, detail="Action item not found")
    return note
