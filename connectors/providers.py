"""Language-model providers used by the chat pipeline.

Two capabilities exist:

- ``ModelProvider`` (batch): ``complete()`` returns one finished response.
- ``IncrementalModelProvider``: additionally ``stream()`` yields ``Fragment``
  objects and ends with a fragment whose ``final`` flag is set.

``stream()`` is a finite, non-restartable async generator meant for a single
consumer. Closing it early (``aclose()``) releases the provider-side request.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import structlog

from .openai import OpenAIConnector

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GenerationConfig:
    """Fixed generation settings for one call."""

    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_output_tokens: int = 1000

    def __post_init__(self):
        if not 0.0 <= self.temperature <= 1.0:
            raise ValueError(f"temperature must be within [0, 1], got {self.temperature}")
        if self.max_output_tokens <= 0:
            raise ValueError(f"max_output_tokens must be positive, got {self.max_output_tokens}")


@dataclass(frozen=True)
class Fragment:
    """A piece of streamed text. ``final`` is the explicit end-of-stream marker."""

    text: str = ""
    final: bool = False
    model_name: str | None = None


@dataclass(frozen=True)
class Completion:
    """A complete model response."""

    text: str
    model_name: str = "unknown"
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


class ModelProvider(ABC):
    """Batch-capable language-model provider."""

    incremental = False

    @abstractmethod
    async def complete(self, messages: list[dict[str, str]], config: GenerationConfig) -> Completion:
        """Return the full response for ``messages``."""


class IncrementalModelProvider(ModelProvider):
    """Provider that can also deliver a response incrementally."""

    incremental = True

    @abstractmethod
    def stream(
        self, messages: list[dict[str, str]], config: GenerationConfig
    ) -> AsyncIterator[Fragment]:
        """Yield fragments in order, ending with a ``final`` fragment."""


class OpenAIBatchProvider(ModelProvider):
    """Batch provider backed by the OpenAI chat completions API."""

    def __init__(self, connector: OpenAIConnector):
        self.connector = connector

    async def complete(self, messages: list[dict[str, str]], config: GenerationConfig) -> Completion:
        completion = await self.connector.chat_completion(
            messages=messages,
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_output_tokens,
        )

        usage = completion.usage
        if usage:
            cost = self.connector.estimate_cost(
                model=completion.model,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
            )
            logger.info(
                "openai_completion_success",
                model=completion.model,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                cost_usd=cost,
            )

        return Completion(
            text=completion.choices[0].message.content or "",
            model_name=completion.model or config.model,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
        )


class OpenAIStreamingProvider(OpenAIBatchProvider, IncrementalModelProvider):
    """Incremental provider backed by OpenAI streamed chat completions."""

    async def stream(
        self, messages: list[dict[str, str]], config: GenerationConfig
    ) -> AsyncIterator[Fragment]:
        response: Any = await self.connector.chat_completion(
            messages=messages,
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_output_tokens,
            stream=True,
        )
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.delta.content:
                    yield Fragment(text=choice.delta.content, model_name=chunk.model)
                if choice.finish_reason is not None:
                    yield Fragment(final=True, model_name=chunk.model)
                    return
        finally:
            # Release the HTTP response when the consumer stops early
            close = getattr(response, "close", None)
            if close is not None:
                await close()
