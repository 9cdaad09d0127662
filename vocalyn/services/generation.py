"""Generation backend: the AI capability behind note processing and Ask AI.

The backend exposes two operations to the rest of the service:

- ``generate``: one-shot prompt with a JSON schema, returns the decoded object
- ``generate_stream``: streamed answer, optionally with live web search, as a
  sequence of :class:`GenerationChunk` (text fragments and grounding references)

``OpenAIGenerationBackend`` implements both on top of :class:`OpenAIConnector`.
Grounded answers stream through chat completions; search-augmented answers go
through the Responses API with the hosted ``web_search`` tool, whose
``url_citation`` annotations become grounding references.
"""

import json
import os
from collections.abc import AsyncIterator
from typing import Any, Protocol

import structlog
from openai import OpenAIError

from connectors.openai import OpenAIConnector, OpenAIModel

from ..errors import BackendUnavailable
from ..models import GenerationChunk, WebCitation

logger = structlog.get_logger(__name__)

CHAT_MODEL = os.getenv("VOCALYN_CHAT_MODEL", OpenAIModel.GPT_4O_MINI.value)
SEARCH_MODEL = os.getenv("VOCALYN_SEARCH_MODEL", OpenAIModel.GPT_4O_MINI.value)


class GenerationBackend(Protocol):
    """Operations the services need from the AI capability."""

    async def generate(self, prompt: str, schema: dict[str, Any]) -> Any: ...

    def generate_stream(
        self, prompt: str, *, enable_external_search: bool = False
    ) -> AsyncIterator[GenerationChunk]: ...


def _url_citation(annotation: Any) -> WebCitation | None:
    """Turn a Responses API annotation into a web citation, if it is one."""
    if isinstance(annotation, dict):
        kind = annotation.get("type")
        url = annotation.get("url")
        title = annotation.get("title")
    else:
        kind = getattr(annotation, "type", None)
        url = getattr(annotation, "url", None)
        title = getattr(annotation, "title", None)

    if kind != "url_citation" or not url:
        return None
    return WebCitation(uri=url, title=title or "")


def _completed_citations(response: Any) -> list[WebCitation]:
    """Collect url citations from the final output of a completed response."""
    citations = []
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "message":
            continue
        for content in item.content:
            if getattr(content, "type", None) != "output_text":
                continue
            for annotation in content.annotations or []:
                citation = _url_citation(annotation)
                if citation:
                    citations.append(citation)
    return citations


async def _close_stream(stream: Any) -> None:
    close = getattr(stream, "close", None) or getattr(stream, "aclose", None)
    if close is not None:
        await close()


class OpenAIGenerationBackend:
    """Generation backend backed by the OpenAI API.

    Example:
        >>> async with OpenAIGenerationBackend(api_key="sk-...") as backend:
        ...     async for chunk in backend.generate_stream("Hi", enable_external_search=True):
        ...         print(chunk.text or "", end="")
    """

    def __init__(
        self,
        connector: OpenAIConnector | None = None,
        api_key: str | None = None,
        chat_model: OpenAIModel | str = CHAT_MODEL,
        search_model: OpenAIModel | str = SEARCH_MODEL,
        structured_temperature: float = 0.3,
        grounded_temperature: float = 0.1,
        search_temperature: float = 0.5,
    ):
        self.connector = connector or OpenAIConnector(api_key=api_key)
        self.chat_model = chat_model
        self.search_model = search_model
        self.structured_temperature = structured_temperature
        self.grounded_temperature = grounded_temperature
        self.search_temperature = search_temperature

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        await self.connector.close()

    async def generate(self, prompt: str, schema: dict[str, Any], name: str = "result") -> Any:
        """Run a one-shot prompt constrained to a JSON schema.

        Args:
            prompt: Prompt text
            schema: Strict JSON schema the result must follow
            name: Schema name reported to the API

        Returns:
            The decoded JSON value

        Raises:
            BackendUnavailable: If the API call fails
            ValueError: If the reply is not valid JSON
        """
        try:
            completion = await self.connector.chat_completion(
                messages=[{"role": "user", "content": prompt}],
                model=self.chat_model,
                temperature=self.structured_temperature,
                response_format={
                    "type": "json_schema",
                    "json_schema": {"name": name, "schema": schema, "strict": True},
                },
            )
        except OpenAIError as e:
            logger.error("generation_request_failed", model=str(self.chat_model), error=str(e))
            raise BackendUnavailable() from e

        if completion.usage:
            cost = self.connector.estimate_cost(
                model=self.chat_model,
                prompt_tokens=completion.usage.prompt_tokens,
                completion_tokens=completion.usage.completion_tokens,
            )
            logger.info(
                "generation_completed",
                model=str(self.chat_model),
                prompt_tokens=completion.usage.prompt_tokens,
                completion_tokens=completion.usage.completion_tokens,
                cost_usd=cost,
            )

        content = completion.choices[0].message.content or ""
        return json.loads(content.strip())

    async def generate_stream(
        self, prompt: str, *, enable_external_search: bool = False
    ) -> AsyncIterator[GenerationChunk]:
        """Stream a response as text fragments and grounding references.

        Raises:
            BackendUnavailable: If the API call fails before or during streaming
        """
        try:
            if enable_external_search:
                async for chunk in self._search_stream(prompt):
                    yield chunk
            else:
                async for chunk in self._chat_stream(prompt):
                    yield chunk
        except OpenAIError as e:
            logger.error(
                "generation_stream_failed",
                search=enable_external_search,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise BackendUnavailable() from e

    async def _chat_stream(self, prompt: str) -> AsyncIterator[GenerationChunk]:
        stream = await self.connector.chat_completion(
            messages=[{"role": "user", "content": prompt}],
            model=self.chat_model,
            temperature=self.grounded_temperature,
            stream=True,
        )
        try:
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield GenerationChunk(text=chunk.choices[0].delta.content)
        finally:
            await _close_stream(stream)

    async def _search_stream(self, prompt: str) -> AsyncIterator[GenerationChunk]:
        stream = await self.connector.response_stream(
            input_text=prompt,
            model=self.search_model,
            tools=[{"type": "web_search"}],
            temperature=self.search_temperature,
        )
        try:
            async for event in stream:
                if event.type == "response.output_text.delta":
                    if event.delta:
                        yield GenerationChunk(text=event.delta)
                elif event.type == "response.output_text.annotation.added":
                    citation = _url_citation(event.annotation)
                    if citation:
                        yield GenerationChunk(grounding_references=[citation])
                elif event.type == "response.completed":
                    citations = _completed_citations(event.response)
                    if citations:
                        yield GenerationChunk(grounding_references=citations)
                elif event.type in ("response.failed", "error"):
                    logger.error("search_stream_error_event", event_type=event.type)
                    raise BackendUnavailable()
        finally:
            await _close_stream(stream)


def create_generation_backend() -> OpenAIGenerationBackend | None:
    """Build the OpenAI backend from the environment, or None if no key is set."""
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        logger.error("openai_api_key_missing")
        return None
    return OpenAIGenerationBackend(api_key=api_key)
