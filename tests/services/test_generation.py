"""Tests for the OpenAI generation backend."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import APIConnectionError
from openai.types.chat import ChatCompletion, ChatCompletionMessage
from openai.types.chat.chat_completion import Choice
from openai.types.chat.chat_completion_chunk import ChatCompletionChunk, ChoiceDelta
from openai.types.chat.chat_completion_chunk import Choice as ChunkChoice
from openai.types.completion_usage import CompletionUsage

from connectors.openai import OpenAIConnector
from vocalyn.errors import BackendUnavailable
from vocalyn.models import GenerationChunk, WebCitation
from vocalyn.services.generation import OpenAIGenerationBackend, create_generation_backend


def connection_error() -> APIConnectionError:
    return APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1"))


class FakeStream:
    """SDK-style async stream that records whether it was closed."""

    def __init__(self, items, error=None):
        self.items = items
        self.error = error
        self.close = AsyncMock()

    async def _iterate(self):
        for item in self.items:
            yield item
        if self.error is not None:
            raise self.error

    def __aiter__(self):
        return self._iterate()


def chunk(content):
    return ChatCompletionChunk(
        id="chatcmpl-1",
        model="gpt-4o-mini",
        object="chat.completion.chunk",
        created=1234567890,
        choices=[ChunkChoice(index=0, delta=ChoiceDelta(content=content), finish_reason=None)],
    )


@pytest.fixture
def connector():
    mock = MagicMock(spec=OpenAIConnector)
    mock.chat_completion = AsyncMock()
    mock.response_stream = AsyncMock()
    mock.close = AsyncMock()
    mock.estimate_cost.return_value = 0.0001
    return mock


@pytest.fixture
def backend(connector):
    return OpenAIGenerationBackend(connector=connector, chat_model="gpt-4o-mini")


async def collect(chunks):
    return [c async for c in chunks]


class TestGenerate:
    """One-shot structured generation."""

    @pytest.mark.asyncio
    async def test_returns_decoded_json(self, backend, connector):
        connector.chat_completion.return_value = ChatCompletion(
            id="chatcmpl-1",
            model="gpt-4o-mini",
            object="chat.completion",
            created=1234567890,
            choices=[
                Choice(
                    index=0,
                    message=ChatCompletionMessage(role="assistant", content='{"a": 1}'),
                    finish_reason="stop",
                )
            ],
            usage=CompletionUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        )
        schema = {"type": "object", "properties": {"a": {"type": "integer"}}}

        result = await backend.generate("prompt", schema, name="thing")

        assert result == {"a": 1}
        kwargs = connector.chat_completion.call_args.kwargs
        assert kwargs["temperature"] == 0.3
        assert kwargs["response_format"] == {
            "type": "json_schema",
            "json_schema": {"name": "thing", "schema": schema, "strict": True},
        }
        connector.estimate_cost.assert_called_once()

    @pytest.mark.asyncio
    async def test_api_error_is_unavailable(self, backend, connector):
        connector.chat_completion.side_effect = connection_error()

        with pytest.raises(BackendUnavailable):
            await backend.generate("prompt", {})

    @pytest.mark.asyncio
    async def test_non_json_reply_raises_value_error(self, backend, connector):
        connector.chat_completion.return_value = SimpleNamespace(
            usage=None,
            choices=[SimpleNamespace(message=SimpleNamespace(content="Sorry, I can't."))],
        )

        with pytest.raises(ValueError):
            await backend.generate("prompt", {})


class TestGroundedStream:
    """Grounded answers stream through chat completions."""

    @pytest.mark.asyncio
    async def test_text_chunks(self, backend, connector):
        stream = FakeStream([chunk("The sky "), chunk(None), chunk("is blue.")])
        connector.chat_completion.return_value = stream

        chunks = await collect(backend.generate_stream("prompt"))

        assert chunks == [GenerationChunk(text="The sky "), GenerationChunk(text="is blue.")]
        kwargs = connector.chat_completion.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["temperature"] == 0.1
        connector.response_stream.assert_not_called()
        stream.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mid_stream_api_error(self, backend, connector):
        stream = FakeStream([chunk("partial")], error=connection_error())
        connector.chat_completion.return_value = stream

        received = []
        with pytest.raises(BackendUnavailable):
            async for item in backend.generate_stream("prompt"):
                received.append(item)

        assert received == [GenerationChunk(text="partial")]
        stream.close.assert_awaited_once()


class TestSearchStream:
    """Search answers use the Responses API with the web_search tool."""

    @pytest.mark.asyncio
    async def test_deltas_and_url_citations(self, backend, connector):
        completed = SimpleNamespace(
            output=[
                SimpleNamespace(type="web_search_call"),
                SimpleNamespace(
                    type="message",
                    content=[
                        SimpleNamespace(
                            type="output_text",
                            annotations=[
                                SimpleNamespace(type="url_citation", url="https://b.com", title="")
                            ],
                        )
                    ],
                ),
            ]
        )
        connector.response_stream.return_value = FakeStream(
            [
                SimpleNamespace(type="response.created"),
                SimpleNamespace(type="response.output_text.delta", delta="Sunny "),
                SimpleNamespace(
                    type="response.output_text.annotation.added",
                    annotation={"type": "url_citation", "url": "https://a.com", "title": "A"},
                ),
                SimpleNamespace(
                    type="response.output_text.annotation.added",
                    annotation={"type": "file_citation", "file_id": "f1"},
                ),
                SimpleNamespace(type="response.output_text.delta", delta="today."),
                SimpleNamespace(type="response.completed", response=completed),
            ]
        )

        chunks = await collect(backend.generate_stream("prompt", enable_external_search=True))

        assert chunks == [
            GenerationChunk(text="Sunny "),
            GenerationChunk(grounding_references=[WebCitation(uri="https://a.com", title="A")]),
            GenerationChunk(text="today."),
            GenerationChunk(grounding_references=[WebCitation(uri="https://b.com", title="")]),
        ]
        kwargs = connector.response_stream.call_args.kwargs
        assert kwargs["tools"] == [{"type": "web_search"}]
        assert kwargs["temperature"] == 0.5

    @pytest.mark.asyncio
    async def test_failed_event_is_unavailable(self, backend, connector):
        connector.response_stream.return_value = FakeStream(
            [
                SimpleNamespace(type="response.output_text.delta", delta="Hal"),
                SimpleNamespace(type="response.failed"),
            ]
        )

        with pytest.raises(BackendUnavailable):
            await collect(backend.generate_stream("prompt", enable_external_search=True))

    @pytest.mark.asyncio
    async def test_open_error_is_unavailable(self, backend, connector):
        connector.response_stream.side_effect = connection_error()

        with pytest.raises(BackendUnavailable):
            await collect(backend.generate_stream("prompt", enable_external_search=True))


class TestBackendLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_closes_connector(self, connector):
        async with OpenAIGenerationBackend(connector=connector) as backend:
            assert backend.connector is connector

        connector.close.assert_awaited_once()

    def test_factory_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        assert create_generation_backend() is None

    def test_factory_builds_backend(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        backend = create_generation_backend()

        assert isinstance(backend, OpenAIGenerationBackend)
        assert isinstance(backend.connector, OpenAIConnector)
