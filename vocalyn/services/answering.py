"""Streaming answer protocol for Ask AI.

A question is answered in one of two modes, chosen once per call:

1. Grounded-only: the model answers strictly from the selected notes and
   appends ``%%SOURCES_JSON%%`` followed by a JSON array of note snippets.
   The separator can be split across stream chunks, so the whole response is
   buffered before anything is yielded: one text event, then (if the payload
   parses) one note-citation event.
2. Search-augmented: the model answers with live web search. Text is yielded
   as it arrives; once the stream ends, grounding references from every chunk
   are deduplicated by uri and yielded as one web-citation event.

Either way the caller receives :data:`StreamEvent` objects. Backend failures
surface as :class:`BackendUnavailable` and events already yielded stand.
"""

import asyncio
import json
import re
from collections.abc import AsyncIterator, Sequence

import structlog
from opentelemetry import trace
from pydantic import TypeAdapter, ValidationError

from ..errors import BackendUnavailable, EmptyInput, ExchangeCancelled, MalformedCitationPayload
from ..models import (
    AssistantMessage,
    ChatMessage,
    GenerationChunk,
    Note,
    NoteCitation,
    NoteCitationsEvent,
    StreamEvent,
    TextDelta,
    UserMessage,
    WebCitation,
    WebCitationsEvent,
)
from ..observability import get_app_metrics
from ..prompts import get_grounded_answer_prompt, get_search_answer_prompt
from .generation import GenerationBackend

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

SOURCES_SEPARATOR = "%%SOURCES_JSON%%"
FALLBACK_ANSWER = "I could not find an answer in the selected notes."

_citation_list = TypeAdapter(list[NoteCitation])
_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def format_notes_context(notes: Sequence[Note]) -> str:
    """Render notes for the prompt, each tagged with its id."""
    return "\n\n".join(
        f'--- NOTE START ---\nnoteId: "{note.id}"\nContent:\n{note.refined_text}\n--- NOTE END ---\n'
        for note in notes
    )


def format_history(history: Sequence[ChatMessage]) -> str:
    """Render prior turns as ``User:`` / ``Assistant:`` lines."""
    lines = []
    for message in history:
        if isinstance(message, UserMessage):
            lines.append(f"User: {message.text}")
        elif isinstance(message, AssistantMessage):
            lines.append(f"Assistant: {message.answer_text}")
    return "\n".join(lines)


def parse_citations(payload: str) -> list[NoteCitation]:
    """Parse the JSON that follows the sources separator.

    Raises:
        MalformedCitationPayload: If the payload is not a list of note snippets
    """
    text = payload.strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        return _citation_list.validate_python(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as e:
        raise MalformedCitationPayload(str(e)) from e


def dedupe_web_citations(references: Sequence[WebCitation]) -> list[WebCitation]:
    """Deduplicate by uri. The first occurrence wins; a blank title falls back to the uri."""
    unique: dict[str, WebCitation] = {}
    for reference in references:
        if reference.uri not in unique:
            unique[reference.uri] = WebCitation(
                uri=reference.uri, title=reference.title or reference.uri
            )
    return list(unique.values())


async def _chunks(
    backend: GenerationBackend,
    prompt: str,
    enable_external_search: bool,
    cancel_event: asyncio.Event | None,
) -> AsyncIterator[GenerationChunk]:
    """Backend chunks with cancellation checks and error translation."""
    stream = backend.generate_stream(prompt, enable_external_search=enable_external_search)
    try:
        async for chunk in stream:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("answer_stream_cancelled", search=enable_external_search)
                raise ExchangeCancelled()
            yield chunk
    except (BackendUnavailable, ExchangeCancelled):
        raise
    except Exception as e:
        logger.error(
            "answer_stream_backend_error",
            search=enable_external_search,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise BackendUnavailable() from e
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()


async def _stream_grounded_answer(
    backend: GenerationBackend,
    notes: Sequence[Note],
    question: str,
    history: Sequence[ChatMessage],
    cancel_event: asyncio.Event | None,
) -> AsyncIterator[StreamEvent]:
    prompt = get_grounded_answer_prompt(
        question=question,
        notes_context=format_notes_context(notes),
        history_context=format_history(history),
        separator=SOURCES_SEPARATOR,
        fallback_answer=FALLBACK_ANSWER,
    )

    parts = []
    async for chunk in _chunks(backend, prompt, False, cancel_event):
        if chunk.text:
            parts.append(chunk.text)
    full_text = "".join(parts)

    answer, separator, payload = full_text.partition(SOURCES_SEPARATOR)
    yield TextDelta(text=answer)

    if not separator:
        logger.debug("answer_without_sources", answer_length=len(answer))
        return

    try:
        citations = parse_citations(payload)
    except MalformedCitationPayload as e:
        get_app_metrics().citation_parse_failures.add(1)
        logger.warning("citation_payload_malformed", error=str(e), payload_length=len(payload))
        return

    yield NoteCitationsEvent(citations=citations)


async def _stream_search_answer(
    backend: GenerationBackend,
    notes: Sequence[Note],
    question: str,
    history: Sequence[ChatMessage],
    cancel_event: asyncio.Event | None,
) -> AsyncIterator[StreamEvent]:
    prompt = get_search_answer_prompt(
        question=question,
        notes_context=format_notes_context(notes),
        history_context=format_history(history),
    )

    references: list[WebCitation] = []
    async for chunk in _chunks(backend, prompt, True, cancel_event):
        if chunk.text:
            yield TextDelta(text=chunk.text)
        references.extend(chunk.grounding_references)

    citations = dedupe_web_citations(references)
    if citations:
        yield WebCitationsEvent(citations=citations)


async def stream_answer(
    backend: GenerationBackend,
    notes: Sequence[Note],
    question: str,
    history: Sequence[ChatMessage],
    *,
    use_external_search: bool = False,
    cancel_event: asyncio.Event | None = None,
) -> AsyncIterator[StreamEvent]:
    """Answer a question about notes as a stream of events.

    Args:
        backend: Generation backend to query
        notes: Notes the answer is grounded on (may be empty)
        question: The user's question
        history: Prior turns, used as context only
        use_external_search: Answer with live web search instead of notes only
        cancel_event: Set it to stop at the next chunk boundary

    Yields:
        TextDelta, then NoteCitationsEvent or WebCitationsEvent depending on mode

    Raises:
        EmptyInput: If the question is blank
        BackendUnavailable: If the backend fails
        ExchangeCancelled: If ``cancel_event`` is set mid-stream
    """
    if not question.strip():
        raise EmptyInput("Question cannot be empty")

    mode = "search" if use_external_search else "grounded"
    generate = _stream_search_answer if use_external_search else _stream_grounded_answer

    # Not made current: the generator may be resumed from another context
    span = tracer.start_span("answer.stream")
    span.set_attribute("answer.mode", mode)
    span.set_attribute("answer.note_count", len(notes))
    span.set_attribute("answer.history_length", len(history))

    logger.info(
        "answer_stream_started", mode=mode, note_count=len(notes), history_length=len(history)
    )

    events = generate(backend, notes, question, history, cancel_event)
    try:
        async for event in events:
            yield event
    except Exception as e:
        span.record_exception(e)
        raise
    finally:
        await events.aclose()
        span.end()

    logger.info("answer_stream_completed", mode=mode)
