"""OpenAI API connector.

Thin async wrapper around the OpenAI Python SDK with:
- Chat completions, batch or streamed
- OpenTelemetry instrumentation
- Token usage tracking and cost estimation
- Configurable retries and timeouts
"""

from collections.abc import AsyncIterator
from enum import Enum
from typing import Any

from openai import AsyncOpenAI
from openai.types.chat import ChatCompletion, ChatCompletionChunk
from opentelemetry import trace

tracer = trace.get_tracer(__name__)


class OpenAIModel(str, Enum):
    """Chat models with known pricing."""

    GPT_4O = "gpt-4o"
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_4_TURBO = "gpt-4-turbo"
    GPT_4 = "gpt-4"
    GPT_35_TURBO = "gpt-3.5-turbo"


# USD per 1M tokens (input, output)
PRICING = {
    OpenAIModel.GPT_4O: (2.50, 10.00),
    OpenAIModel.GPT_4O_MINI: (0.15, 0.60),
    OpenAIModel.GPT_4_TURBO: (10.00, 30.00),
    OpenAIModel.GPT_4: (30.00, 60.00),
    OpenAIModel.GPT_35_TURBO: (0.50, 1.50),
}


class OpenAIConnector:
    """OpenAI chat connector.

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
        base_url: str | None = None,
        timeout: float = 60.0,
        max_retries: int = 2,
    ):
        """Initialize OpenAI connector.

        Args:
            api_key: OpenAI API key (falls back to OPENAI_API_KEY env var)
            base_url: Optional custom base URL (for proxies or compatible APIs)
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts inside the SDK
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
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
        user: str | None = None,
        **kwargs: Any,
    ) -> ChatCompletion | AsyncIterator[ChatCompletionChunk]:
        """Create a chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use for completion
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            stream: Whether to stream the response
            user: Unique user identifier for abuse monitoring
            **kwargs: Additional parameters to pass to the API

        Returns:
            ChatCompletion object or async iterator of chunks if streaming

        Example (streaming):
            >>> stream = await connector.chat_completion(
            ...     messages=[{"role": "user", "content": "Tell me a story"}],
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

        # Only non-None values are sent
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

    def estimate_cost(
        self,
        model: OpenAIModel | str,
        prompt_tokens: int,
        completion_tokens: int = 0,
    ) -> float:
        """Estimate cost in USD for a completion.

        Versioned model names (e.g. "gpt-4o-mini-2024-07-18") match their base
        model; unknown models are priced as gpt-4o-mini.
        """
        model_str = model.value if isinstance(model, OpenAIModel) else model

        # Longest key first so "gpt-4o-mini" wins over "gpt-4o" and "gpt-4"
        for model_key in sorted(PRICING, key=lambda m: len(m.value), reverse=True):
            if model_str.startswith(model_key.value):
                input_price, output_price = PRICING[model_key]
                break
        else:
            input_price, output_price = PRICING[OpenAIModel.GPT_4O_MINI]

        return (prompt_tokens / 1_000_000) * input_price + (completion_tokens / 1_000_000) * output_price
