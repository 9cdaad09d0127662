"""Session reconciliation for Ask AI exchanges.

A :class:`SessionReconciler` owns the working copy of one chat session and runs
one question/answer exchange at a time through a small state machine::

    IDLE [-> RESERVED] -> AWAITING_STREAM -> COMMITTING  -> IDLE
                                         -> ROLLING_BACK -> IDLE

While a stream is in flight the working messages end with a placeholder
assistant message that is filled in place. On success the placeholder is
replaced by the final message and the session is persisted exactly once. On
failure the placeholder is dropped and nothing is persisted.

An HTTP handler can :meth:`~SessionReconciler.reserve` a session before it
returns a streaming response, so a concurrent request sees the session as busy
before the stream body starts.
"""

import asyncio
import os
import time
from collections import OrderedDict
from collections.abc import AsyncIterator
from enum import Enum

import structlog
from opentelemetry import trace

from ..errors import EmptyInput, ExchangeInFlight
from ..models import (
    AssistantMessage,
    ChatMessage,
    ChatSession,
    NoteCitationsEvent,
    StreamEvent,
    TextDelta,
    UserMessage,
    WebCitationsEvent,
)
from ..observability import get_app_metrics
from .answering import stream_answer
from .generation import GenerationBackend
from .stores import NoteStore, SessionStore

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

TITLE_LENGTH = 50
RESERVATION_TIMEOUT = 30.0  # seconds
MAX_LIVE_SESSIONS = int(os.getenv("VOCALYN_MAX_LIVE_SESSIONS", "1000"))


class ExchangeState(str, Enum):
    """Lifecycle of one exchange against a session."""

    IDLE = "idle"
    RESERVED = "reserved"
    AWAITING_STREAM = "awaiting_stream"
    COMMITTING = "committing"
    ROLLING_BACK = "rolling_back"


def derive_title(title: str, history: list[ChatMessage], question: str) -> str:
    """Title a session after its first question.

    Only a question asked on an empty session names it. A question left behind
    by a failed exchange counts, so a retry keeps the current title.
    """
    if history:
        return title
    return question[:TITLE_LENGTH]


class SessionReconciler:
    """Coordinates exchanges against one chat session.

    Example:
        >>> reconciler = SessionReconciler(session, note_store, session_store, backend)
        >>> async for event in reconciler.ask("What did I plan for Monday?"):
        ...     render(reconciler.messages)
        >>> reconciler.session  # persisted form
    """

    def __init__(
        self,
        session: ChatSession,
        note_store: NoteStore,
        session_store: SessionStore,
        backend: GenerationBackend,
        persisted: bool = False,
    ):
        self.session = session
        self.note_store = note_store
        self.session_store = session_store
        self.backend = backend
        self.state = ExchangeState.IDLE
        self._messages: list[ChatMessage] = list(session.messages)
        self._placeholder: AssistantMessage | None = None
        self._reserved_at = 0.0
        self.persisted = persisted

    @property
    def session_id(self) -> str:
        return self.session.id

    @property
    def messages(self) -> list[ChatMessage]:
        """Working copy of the message list, including any in-flight placeholder."""
        return list(self._messages)

    @property
    def in_flight(self) -> bool:
        if self.state is ExchangeState.RESERVED:
            return time.monotonic() - self._reserved_at < RESERVATION_TIMEOUT
        return self.state is not ExchangeState.IDLE

    def reserve(self) -> None:
        """Claim the session for an exchange that starts later.

        The claim is taken by the next ``ask(..., reserved=True)``. One whose
        stream never starts lapses after ``RESERVATION_TIMEOUT`` seconds.

        Raises:
            ExchangeInFlight: If the session is already busy
        """
        if self.in_flight:
            logger.warning("exchange_rejected_in_flight", session_id=self.session_id)
            raise ExchangeInFlight()
        self.state = ExchangeState.RESERVED
        self._reserved_at = time.monotonic()

    def release(self) -> None:
        """Give back a claim that was never used."""
        if self.state is ExchangeState.RESERVED:
            self.state = ExchangeState.IDLE

    def _transition(self, expected: ExchangeState, target: ExchangeState) -> None:
        if self.state is not expected:
            raise RuntimeError(f"Cannot move from {self.state.value} to {target.value}")
        self.state = target

    def _apply(self, event: StreamEvent) -> None:
        placeholder = self._placeholder
        if isinstance(event, TextDelta):
            placeholder.answer_text += event.text
        elif isinstance(event, NoteCitationsEvent):
            placeholder.note_citations = list(event.citations)
        elif isinstance(event, WebCitationsEvent):
            placeholder.web_citations = list(event.citations)

    def _rollback(self) -> None:
        self._transition(ExchangeState.AWAITING_STREAM, ExchangeState.ROLLING_BACK)
        if self._messages and self._messages[-1] is self._placeholder:
            self._messages.pop()
        self._placeholder = None
        self.state = ExchangeState.IDLE

    async def _commit(self, title: str) -> ChatSession:
        self._transition(ExchangeState.AWAITING_STREAM, ExchangeState.COMMITTING)
        placeholder = self._placeholder
        final_message = AssistantMessage(
            answer_text=placeholder.answer_text,
            note_citations=list(placeholder.note_citations),
            web_citations=list(placeholder.web_citations),
        )
        self._messages[-1] = final_message
        self._placeholder = None

        final_session = self.session.model_copy(
            update={
                "title": title,
                "messages": list(self._messages),
            }
        )

        try:
            stored = await self.session_store.upsert(final_session)
        except Exception as e:
            logger.error(
                "chat_session_persist_failed",
                session_id=self.session_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        finally:
            self.state = ExchangeState.IDLE

        self.session = stored
        self.persisted = True
        self._messages = list(stored.messages)
        return stored

    async def ask(
        self,
        question: str,
        *,
        use_external_search: bool = False,
        cancel_event: asyncio.Event | None = None,
        reserved: bool = False,
    ) -> AsyncIterator[StreamEvent]:
        """Ask a question and stream the answer into the session.

        Each event is applied to the working copy before it is yielded, so
        :attr:`messages` always reflects what has been received so far. When
        the stream ends the session is persisted and :attr:`session` holds the
        stored form. Pass ``reserved=True`` to run on a claim taken with
        :meth:`reserve`.

        Raises:
            EmptyInput: If the question is blank
            ExchangeInFlight: If another exchange is running for this session
            BackendUnavailable: If the answer could not be generated
            NotAuthenticated: If the session could not be saved for lack of a user
        """
        claimed = reserved and self.state is ExchangeState.RESERVED
        if not question.strip():
            if claimed:
                self.release()
            raise EmptyInput("Question cannot be empty")
        if not claimed and self.in_flight:
            logger.warning("exchange_rejected_in_flight", session_id=self.session_id)
            raise ExchangeInFlight()

        metrics = get_app_metrics()
        mode = "search" if use_external_search else "grounded"
        span = tracer.start_span("session.exchange")
        span.set_attribute("session.id", self.session_id)
        span.set_attribute("answer.mode", mode)

        self.state = ExchangeState.AWAITING_STREAM
        history = list(self._messages)
        self._placeholder = AssistantMessage()
        self._messages.extend([UserMessage(text=question), self._placeholder])

        logger.info(
            "exchange_started", session_id=self.session_id, mode=mode, history_length=len(history)
        )

        try:
            notes = await self.note_store.lookup(self.session.note_ids)
            events = stream_answer(
                self.backend,
                notes,
                question,
                history,
                use_external_search=use_external_search,
                cancel_event=cancel_event,
            )
            try:
                async for event in events:
                    self._apply(event)
                    yield event
            finally:
                await events.aclose()
        except BaseException as e:
            # Includes GeneratorExit when the caller stops consuming early
            self._rollback()
            metrics.chat_exchange_failures.add(1, {"mode": mode})
            span.record_exception(e)
            span.end()
            logger.warning(
                "exchange_rolled_back",
                session_id=self.session_id,
                mode=mode,
                error_type=type(e).__name__,
            )
            raise

        try:
            stored = await self._commit(derive_title(self.session.title, history, question))
        finally:
            span.end()

        answer = stored.messages[-1]
        metrics.chat_exchanges.add(1, {"mode": mode})
        metrics.answer_length.record(len(answer.answer_text), {"mode": mode})
        logger.info(
            "exchange_committed",
            session_id=self.session_id,
            mode=mode,
            message_count=len(stored.messages),
            note_citations=len(answer.note_citations),
            web_citations=len(answer.web_citations),
        )


class SessionRegistry:
    """Live reconcilers, keyed by user and session id.

    Sessions are created client-side and only persisted after their first
    exchange, so the registry is where a new session lives until then. Once a
    session is saved and idle its reconciler can be retired; the store holds it
    from then on.

    The registry holds at most ``max_sessions`` reconcilers. Past that, the
    least recently used idle ones are evicted. An evicted session that was
    never saved is gone.
    """

    def __init__(self, max_sessions: int = MAX_LIVE_SESSIONS):
        self.max_sessions = max_sessions
        self._reconcilers: OrderedDict[tuple[str, str], SessionReconciler] = OrderedDict()

    def get(self, user_id: str, session_id: str) -> SessionReconciler | None:
        key = (user_id, session_id)
        reconciler = self._reconcilers.get(key)
        if reconciler is not None:
            self._reconcilers.move_to_end(key)
        return reconciler

    def add(self, user_id: str, reconciler: SessionReconciler) -> SessionReconciler:
        key = (user_id, reconciler.session_id)
        self._reconcilers[key] = reconciler
        self._reconcilers.move_to_end(key)
        self._evict()
        return reconciler

    def discard(self, user_id: str, session_id: str) -> SessionReconciler | None:
        return self._reconcilers.pop((user_id, session_id), None)

    def retire(self, user_id: str, reconciler: SessionReconciler) -> bool:
        """Drop ``reconciler`` if its session is saved and idle.

        Returns:
            True if it was removed
        """
        key = (user_id, reconciler.session_id)
        if self._reconcilers.get(key) is not reconciler:
            return False
        if reconciler.in_flight or not reconciler.persisted:
            return False
        del self._reconcilers[key]
        logger.debug("live_session_retired", user_id=user_id, session_id=reconciler.session_id)
        return True

    def _evict(self) -> None:
        excess = len(self._reconcilers) - self.max_sessions
        if excess <= 0:
            return
        # Oldest first; busy sessions are skipped
        for key, reconciler in list(self._reconcilers.items()):
            if excess <= 0:
                break
            if reconciler.in_flight:
                continue
            del self._reconcilers[key]
            excess -= 1
            logger.info(
                "live_session_evicted",
                user_id=key[0],
                session_id=key[1],
                persisted=reconciler.persisted,
            )

    def __len__(self) -> int:
        return len(self._reconcilers)
