"""Ask AI chat session endpoints."""

import json

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import StreamingResponse

from ..auth import get_current_user_id
from ..dependencies import (
    get_generation_backend,
    get_note_store,
    get_session_registry,
    get_session_store,
)
from ..errors import ExchangeInFlight, VocalynError
from ..models import AskRequest, ChatSession, ChatSessionCreate
from ..services import (
    GenerationBackend,
    MongoNoteStore,
    MongoSessionStore,
    SessionReconciler,
    SessionRegistry,
)

# Initialize logger
logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


def sse(payload: dict) -> str:
    """Format one Server-Sent Event."""
    return f"data: {json.dumps(payload)}\n\n"


@router.post("/sessions", response_model=ChatSession, status_code=201)
async def create_chat_session(
    request: ChatSessionCreate,
    user_id: str = Depends(get_current_user_id),
    note_store: MongoNoteStore = Depends(get_note_store),
    session_store: MongoSessionStore = Depends(get_session_store),
    backend: GenerationBackend = Depends(get_generation_backend),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Start a chat about the selected notes.

    The session only lives in memory until its first answered question, at
    which point it is saved.
    """
    session = ChatSession(note_ids=request.note_ids)
    registry.add(user_id, SessionReconciler(session, note_store, session_store, backend))

    logger.info(
        "chat_session_created", user_id=user_id, session_id=session.id, notes=len(session.note_ids)
    )
    return session


@router.get("/sessions", response_model=list[ChatSession])
async def list_chat_sessions(
    user_id: str = Depends(get_current_user_id),
    session_store: MongoSessionStore = Depends(get_session_store),
):
    """List saved chat sessions, newest first."""
    sessions = await session_store.list_sessions()
    logger.info("chat_sessions_listed", user_id=user_id, count=len(sessions))
    return sessions


@router.get("/sessions/{session_id}", response_model=ChatSession)
async def get_chat_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    session_store: MongoSessionStore = Depends(get_session_store),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Get a session; a live session shows its in-progress messages."""
    reconciler = registry.get(user_id, session_id)
    if reconciler is not None:
        return reconciler.session.model_copy(update={"messages": reconciler.messages})

    session = await session_store.get(session_id)
    if session is None:
        logger.warning("chat_session_not_found", user_id=user_id, session_id=session_id)
        raise HTTPException(status_code=404, detail="Chat session not found")
    return session


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_chat_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    session_store: MongoSessionStore = Depends(get_session_store),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Delete a session. Sessions with a question in progress cannot be deleted."""
    reconciler = registry.get(user_id, session_id)
    if reconciler is not None and reconciler.in_flight:
        raise HTTPException(status_code=409, detail="A question is still being answered")

    registry.discard(user_id, session_id)
    deleted = await session_store.delete(session_id)
    if not deleted and reconciler is None:
        raise HTTPException(status_code=404, detail="Chat session not found")

    return Response(status_code=204)


@router.post("/sessions/{session_id}/ask")
async def ask(
    session_id: str,
    request: AskRequest,
    user_id: str = Depends(get_current_user_id),
    note_store: MongoNoteStore = Depends(get_note_store),
    session_store: MongoSessionStore = Depends(get_session_store),
    backend: GenerationBackend = Depends(get_generation_backend),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Ask a question about the session's notes and stream the answer.

    Streams Server-Sent Events:
    - ``delta``: answer text to append
    - ``sources``: note citations (replaces any previous list)
    - ``web_sources``: web citations (replaces any previous list)
    - ``done``: the saved session
    - ``error``: the exchange failed and nothing was saved
    """
    if not request.question.strip():
        raise HTTPException(status_code=400, detail="Question cannot be empty")

    reconciler = registry.get(user_id, session_id)
    if reconciler is None:
        session = await session_store.get(session_id)
        if session is None:
            logger.warning("chat_session_not_found", user_id=user_id, session_id=session_id)
            raise HTTPException(status_code=404, detail="Chat session not found")
        # Another request may have loaded it meanwhile
        reconciler = registry.get(user_id, session_id) or registry.add(
            user_id,
            SessionReconciler(session, note_store, session_store, backend, persisted=True),
        )

    try:
        reconciler.reserve()
    except ExchangeInFlight:
        raise HTTPException(status_code=409, detail="A question is already in progress")

    async def generate_stream():
        """Generate SSE stream for one exchange."""
        logger.info(
            "chat_question_received",
            user_id=user_id,
            session_id=session_id,
            search=request.use_external_search,
        )

        events = reconciler.ask(
            request.question, use_external_search=request.use_external_search, reserved=True
        )
        try:
            async for event in events:
                yield sse(event.model_dump(by_alias=True))
        except VocalynError as e:
            logger.error(
                "chat_exchange_failed",
                user_id=user_id,
                session_id=session_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            yield sse({"type": "error", "error": str(e)})
            return
        except Exception as e:
            logger.error("chat_stream_error", user_id=user_id, session_id=session_id, error=str(e))
            yield sse({"type": "error", "error": "Failed to get an answer from the AI."})
            return
        finally:
            await events.aclose()
            reconciler.release()
            registry.retire(user_id, reconciler)

        stored = reconciler.session.model_dump(mode="json", by_alias=True)
        yield sse({"type": "done", "session": stored})

    return StreamingResponse(generate_stream(), media_type="text/event-stream")
