"""Transcript processing: raw speech transcript to structured note."""

from datetime import date

import structlog
from opentelemetry import trace
from pydantic import ValidationError

from ..errors import BackendUnavailable, EmptyInput, MalformedNotePayload
from ..models import ProcessedNote
from ..observability import get_app_metrics
from ..prompts import get_transcript_prompt
from .generation import GenerationBackend

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

# Strict structured-output schema: every property required, no extras
PROCESSED_NOTE_SCHEMA = {
    "type": "object",
    "properties": {
        "refinedText": {
            "type": "string",
            "description": "The markdown-formatted, cleaned-up version of the note.",
        },
        "emotionSummary": {
            "type": "string",
            "description": "A single sentence summarizing the overall emotional tone of the note.",
        },
        "emotions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "emotion": {
                        "type": "string",
                        "description": "The dominant emotion (e.g., Joy, Frustration).",
                    },
                    "justification": {
                        "type": "string",
                        "description": "Why this emotion was identified, citing the text.",
                    },
                },
                "required": ["emotion", "justification"],
                "additionalProperties": False,
            },
        },
        "actionItems": {
            "type": "array",
            "description": "Action items or to-do tasks extracted from the note.",
            "items": {
                "type": "object",
                "properties": {
                    "text": {"type": "string", "description": "The action item."},
                    "dueDate": {
                        "type": "string",
                        "description": "Due date as YYYY-MM-DD, or an empty string.",
                    },
                },
                "required": ["text", "dueDate"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["refinedText", "emotionSummary", "emotions", "actionItems"],
    "additionalProperties": False,
}


class TranscriptProcessor:
    """Turns raw transcripts into refined notes with emotions and action items."""

    def __init__(self, backend: GenerationBackend):
        self.backend = backend

    async def process(self, transcript: str, current_date: date | None = None) -> ProcessedNote:
        """Refine a transcript and extract emotions and action items.

        Args:
            transcript: Raw transcript text
            current_date: Caller's local date, used to resolve "today", "tomorrow", ...

        Returns:
            The processed note

        Raises:
            EmptyInput: If the transcript is blank
            BackendUnavailable: If the AI service fails
            MalformedNotePayload: If the AI reply does not match the note shape
        """
        if not transcript.strip():
            raise EmptyInput("Transcript cannot be empty")

        local_today = (current_date or date.today()).isoformat()

        with tracer.start_as_current_span("transcript.process") as span:
            span.set_attribute("transcript.length", len(transcript))
            span.set_attribute("transcript.local_date", local_today)

            logger.info(
                "transcript_processing_started",
                transcript_length=len(transcript),
                local_date=local_today,
            )

            prompt = get_transcript_prompt(transcript, local_today)
            try:
                result = await self.backend.generate(prompt, PROCESSED_NOTE_SCHEMA)
            except BackendUnavailable:
                raise
            except ValueError as e:
                logger.error("transcript_response_not_json", error=str(e))
                raise MalformedNotePayload() from e
            except Exception as e:
                logger.error(
                    "transcript_backend_error", error=str(e), error_type=type(e).__name__
                )
                span.record_exception(e)
                raise BackendUnavailable() from e

            try:
                processed = ProcessedNote.model_validate(result)
            except ValidationError as e:
                logger.error("transcript_response_invalid", errors=e.error_count())
                raise MalformedNotePayload() from e

            span.set_attribute("note.action_items", len(processed.action_items))
            get_app_metrics().transcripts_processed.add(1)

            logger.info(
                "transcript_processed",
                action_items=len(processed.action_items),
                emotions=len(processed.emotions),
            )
            return processed
