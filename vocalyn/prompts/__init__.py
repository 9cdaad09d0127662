"""Prompt templates for note processing and Ask AI."""

from functools import cache
from pathlib import Path


@cache
def load_prompt(filename: str) -> str:
    """Load a prompt template from the prompts directory.

    Args:
        filename: Name of the prompt file (e.g., 'transcript_prompt.txt')

    Returns:
        Prompt template as string
    """
    prompt_path = Path(__file__).parent / filename
    return prompt_path.read_text().strip()


def get_transcript_prompt(transcript: str, current_date: str) -> str:
    """Get the note-processing prompt for a raw transcript.

    Args:
        transcript: Raw transcript text
        current_date: Caller's local date (YYYY-MM-DD) for resolving relative dates

    Returns:
        Complete prompt
    """
    template = load_prompt("transcript_prompt.txt")
    return template.format(transcript=transcript, current_date=current_date)


def get_grounded_answer_prompt(
    question: str,
    notes_context: str,
    history_context: str,
    separator: str,
    fallback_answer: str,
) -> str:
    """Get the prompt for answering strictly from the selected notes."""
    template = load_prompt("grounded_answer_prompt.txt")
    return template.format(
        question=question,
        notes_context=notes_context,
        history_context=history_context,
        separator=separator,
        fallback_answer=fallback_answer,
    )


def get_search_answer_prompt(question: str, notes_context: str, history_context: str) -> str:
    """Get the prompt for answering with live web search."""
    template = load_prompt("search_answer_prompt.txt")
    return template.format(
        question=question,
        notes_context=notes_context,
        history_context=history_context,
    )
