"""OpenAI API connector for note processing and Ask AI.

This module provides a thin wrapper around the OpenAI Python SDK with:
- Async support for chat completions
- Streaming chat completions
- Streaming Responses API calls with hosted tools (web search)
- Structured (JSON schema) outputs
- Token usage tracking and cost estimation
- OpenTelemetry instrumentation for observability
"""

from collections.abc import AsyncIterator
from enum import Enum
from typing import Any

from openai import AsyncOpenAI
from openai.types.chat import ChatCompletion, ChatCompletionChunk
from openai.types.responses import ResponseStreamEvent
from opentelemetry import trace

tracer = trace.get_tracer(__name__)


class OpenAIModel(str, Enum):
    """Available OpenAI models for easy reference."""

    GPT_4O = "gpt-4o"
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_41 = "gpt-4.1"
    GPT_41_MINI = "gpt-4.1-mini"


class OpenAIConnector:
    """OpenAI connector used by the generation backend.

    Example:
        >>> async with OpenAIConnector(api_key="sk-...") as connector:
        ...     response = await connector.chat_completion(
        ...         messages=[{"role": "user", "content": "Hello!"}],
        ...         model=OpenAIModel.GPT_4O_MINI
        ...     )
        ...     print(response.choices[0].message.content)
    """

    def __init__(
        self,
        api_key: str | None = None,
        organization: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        max_retries: int = 3,
    ):
        """Initialize OpenAI connector.

        Args:
            api_key: OpenAI API key (falls back to OPENAI_API_KEY env var)
            organization: Optional organization ID
            base_url: Optional custom base URL (for proxies or compatible APIs)
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts when opening a request
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
            organization=organization,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        """Close the underlying HTTP client."""
        await self.client.close()

    @tracer.start_as_current_span("openai.chat_completion")
    async def chat_completion(
        self,
        messages: list[dict[str, Any]],
        model: OpenAIModel | str = OpenAIModel.GPT_4O_MINI,
        temperature: float | None = None,
        max_tokens: int | None = None,
        stream: bool = False,
        response_format: dict[str, Any] | None = None,
        user: str | None = None,
        **kwargs: Any,
    ) -> ChatCompletion | AsyncIterator[ChatCompletionChunk]:
        """Create a chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use for completion
            temperature: Sampling temperature (0-2)
            max_tokens: Maximum tokens to generate
            stream: Whether to stream the response
            response_format: Response format (e.g., a json_schema definition)
            user: Unique user identifier for abuse monitoring
            **kwargs: Additional parameters to pass to the API

        Returns:
            ChatCompletion object or async iterator of chunks if streaming

        Example (streaming):
            >>> stream = await connector.chat_completion(
            ...     messages=[{"role": "user", "content": "Summarize my notes"}],
            ...     stream=True
            ... )
            >>> async for chunk in stream:
            ...     if chunk.choices and chunk.choices[0].delta.content:
            ...         print(chunk.choices[0].delta.content, end="")
        """
        span = trace.get_current_span()
        span.set_attribute("openai.model", str(model))
        span.set_attribute("openai.stream", stream)
        span.set_attribute("openai.message_count", len(messages))

        # Build params dict, only including non-None values
        params: dict[str, Any] = {
            "model": model,  # OpenAIModel inherits from str, so it can be used directly
            "messages": messages,
            "stream": stream,
            **kwargs,
        }

        if temperature is not None:
            params["temperature"] = temperature
        if max_tokens is not None:
            params["max_tokens"] = max_tokens
        if response_format is not None:
            params["response_format"] = response_format
        if user is not None:
            params["user"] = user

        try:
            response = await self.client.chat.completions.create(**params)

            if not stream and getattr(response, "usage", None):
                span.set_attribute("openai.prompt_tokens", response.usage.prompt_tokens)
                span.set_attribute("openai.completion_tokens", response.usage.completion_tokens)
                span.set_attribute("openai.total_tokens", response.usage.total_tokens)

            return response
        except Exception as e:
            span.record_exception(e)
            raise

    @tracer.start_as_current_span("openai.response_stream")
    async def response_stream(
        self,
        input_text: str,
        model: OpenAIModel | str = OpenAIModel.GPT_4O_MINI,
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[ResponseStreamEvent]:
        """Open a streaming Responses API call.

        Used where hosted tools are needed, e.g. ``tools=[{"type": "web_search"}]``.

        Args:
            input_text: Prompt text
            model: Model to use
            tools: Hosted tool definitions
            temperature: Sampling temperature (0-2)
            **kwargs: Additional parameters to pass to the API

        Returns:
            Async iterator of response stream events
        """
        span = trace.get_current_span()
        span.set_attribute("openai.model", str(model))
        span.set_attribute("openai.tool_count", len(tools or []))

        params: dict[str, Any] = {
            "model": model,
            "input": input_text,
            "stream": True,
            **kwargs,
        }

        if tools is not None:
            params["tools"] = tools
        if temperature is not None:
            params["temperature"] = temperature

        try:
            return await self.client.responses.create(**params)
        except Exception as e:
            span.record_exception(e)
            raise

    def estimate_cost(
        self,
        model: OpenAIModel | str,
        prompt_tokens: int,
        completion_tokens: int = 0,
    ) -> float:
        """Estimate cost in USD for a completion.

        Approximate list prices; check the OpenAI pricing page for current rates.

        Args:
            model: Model used
            prompt_tokens: Number of prompt tokens
            completion_tokens: Number of completion tokens

        Returns:
            Estimated cost in USD
        """
        # Prices per 1M tokens (input, output)
        pricing = {
            OpenAIModel.GPT_4O: (2.50, 10.00),
            OpenAIModel.GPT_4O_MINI: (0.15, 0.60),
            OpenAIModel.GPT_41: (2.00, 8.00),
            OpenAIModel.GPT_41_MINI: (0.40, 1.60),
        }

        model_str = model.value if isinstance(model, OpenAIModel) else model

        # Longest key first so "gpt-4o-mini-2024-07-18" does not match "gpt-4o"
        sorted_pricing = sorted(pricing.items(), key=lambda x: len(x[0].value), reverse=True)
        for model_key, (input_price, output_price) in sorted_pricing:
            if model_str.startswith(model_key.value):
                input_cost = (prompt_tokens / 1_000_000) * input_price
                output_cost = (completion_tokens / 1_000_000) * output_price
                return input_cost + output_cost

        # Default fallback estimate (GPT-4o-mini pricing)
        return (prompt_tokens / 1_000_000) * 0.15 + (completion_tokens / 1_000_000) * 0.60
