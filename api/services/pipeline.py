"""Streaming chat pipeline.

One ``ChatPipeline`` instance serves exactly one request:

    RESOLVING_SESSION -> BUILDING_CONTEXT -> INVOKING_MODEL -> STREAMING
        -> PERSISTING -> DONE

``ERRORED`` is reachable from every non-terminal state, including caller
cancellation. ``prepare()`` covers the first two states and raises before any
model call; ``stream()`` covers the rest and yields ``StreamChunk`` objects in
strict sequence order, ending with a ``final`` control chunk.

Both turns of a request are persisted together, and only after the model
signalled completion. A failed stream persists nothing; a cancelled stream
persists whatever the ``PersistencePolicy`` decides.
"""

from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from time import time

import structlog

from connectors.providers import Fragment, GenerationConfig, ModelProvider

from ..errors import ChatError, ModelProviderError, StoreUnavailableError
from ..models import ChatRequest, Role, StreamChunk
from ..observability import get_app_metrics, get_tracer
from ..prompts import get_default_system_prompt
from .context import build_context, latest_user_input
from .history import HistoryStore
from .sessions import SessionManager

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

# Generation and timeout configuration
CHAT_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
CHAT_TEMPERATURE = float(os.getenv("CHAT_TEMPERATURE", "0.7"))
CHAT_MAX_OUTPUT_TOKENS = int(os.getenv("CHAT_MAX_OUTPUT_TOKENS", "1000"))
CHAT_REQUEST_TIMEOUT_SECONDS = float(os.getenv("CHAT_REQUEST_TIMEOUT_SECONDS", "30"))
CHAT_PARTIAL_SAVE = os.getenv("CHAT_PARTIAL_SAVE", "false").lower() == "true"


def default_generation_config() -> GenerationConfig:
    return GenerationConfig(
        model=CHAT_MODEL,
        temperature=CHAT_TEMPERATURE,
        max_output_tokens=CHAT_MAX_OUTPUT_TOKENS,
    )


class PipelineState(str, Enum):
    RESOLVING_SESSION = "resolving_session"
    BUILDING_CONTEXT = "building_context"
    INVOKING_MODEL = "invoking_model"
    STREAMING = "streaming"
    PERSISTING = "persisting"
    DONE = "done"
    ERRORED = "errored"


class PersistencePolicy(ABC):
    """Decides what a cancelled stream leaves behind in the history."""

    @abstractmethod
    def turns_on_cancel(self, user_input: str, partial_text: str) -> list[tuple[Role, str]]:
        """Return the turns to persist after a cancelled stream."""


class DiscardPartialTurn(PersistencePolicy):
    """A cancelled stream persists nothing."""

    def turns_on_cancel(self, user_input: str, partial_text: str) -> list[tuple[Role, str]]:
        return []


class SavePartialTurn(PersistencePolicy):
    """Keep the user turn, plus whatever assistant text was already delivered."""

    def turns_on_cancel(self, user_input: str, partial_text: str) -> list[tuple[Role, str]]:
        turns = [(Role.USER, user_input)]
        if partial_text:
            turns.append((Role.ASSISTANT, partial_text))
        return turns


def default_persistence_policy() -> PersistencePolicy:
    return SavePartialTurn() if CHAT_PARTIAL_SAVE else DiscardPartialTurn()


@dataclass
class ChatTurn:
    """Per-request state shared between ``prepare()`` and ``stream()``."""

    session_id: str
    created: bool
    user_input: str
    context: list[dict[str, str]]
    deadline: float
    model_name: str | None = None
    persisted: bool = False
    warning: str | None = None
    chunks: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.chunks)


class ChatPipeline:
    """Turn one chat request into a streamed, persisted assistant reply."""

    def __init__(
        self,
        sessions: SessionManager,
        history: HistoryStore,
        provider: ModelProvider,
        config: GenerationConfig | None = None,
        system_instruction: str | None = None,
        timeout: float | None = None,
        persistence_policy: PersistencePolicy | None = None,
    ):
        self.sessions = sessions
        self.history = history
        self.provider = provider
        self.config = config or default_generation_config()
        self.system_instruction = (
            system_instruction if system_instruction is not None else get_default_system_prompt()
        )
        self.timeout = timeout if timeout is not None else CHAT_REQUEST_TIMEOUT_SECONDS
        self.persistence_policy = persistence_policy or default_persistence_policy()
        self.state = PipelineState.RESOLVING_SESSION
        self.metrics = get_app_metrics()

    def _transition(self, state: PipelineState, **log_context) -> None:
        logger.debug("chat_pipeline_state", previous=self.state.value, state=state.value, **log_context)
        self.state = state

    def _fail(self, error: BaseException, **log_context) -> None:
        self._transition(PipelineState.ERRORED, error_type=type(error).__name__, **log_context)

    async def prepare(self, owner_id: str | None, request: ChatRequest) -> ChatTurn:
        """Resolve the session and assemble the model context.

        Raises ChatError subclasses; no model call has happened when it does.
        """
        deadline = asyncio.get_running_loop().time() + self.timeout
        try:
            self._transition(PipelineState.RESOLVING_SESSION)
            session_id, created = await self.sessions.resolve_or_create(
                owner_id, request.session_id, request.messages
            )

            self._transition(PipelineState.BUILDING_CONTEXT, session_id=session_id)
            with tracer.start_as_current_span("chat.build_context") as span:
                span.set_attribute("session.id", session_id)
                user_input = latest_user_input(request.messages)
                history = await self.history.load_ordered(session_id)
                context = build_context(self.system_instruction, history, user_input)
                span.set_attribute("context.message_count", len(context))
        except ChatError as e:
            self._fail(e, owner_id=owner_id)
            raise

        logger.info(
            "chat_context_built",
            session_id=session_id,
            session_created=created,
            history_count=len(history),
            input_length=len(user_input),
        )
        return ChatTurn(
            session_id=session_id,
            created=created,
            user_input=user_input,
            context=context,
            deadline=deadline,
        )

    async def _fragments(self, context: list[dict[str, str]]) -> AsyncIterator[Fragment]:
        """Present either provider capability as one fragment sequence."""
        if self.provider.incremental:
            async with aclosing(self.provider.stream(context, self.config)) as fragments:
                async for fragment in fragments:
                    yield fragment
        else:
            completion = await self.provider.complete(context, self.config)
            yield Fragment(text=completion.text, model_name=completion.model_name)
            yield Fragment(final=True, model_name=completion.model_name)

    async def _next_fragment(self, fragments: AsyncIterator[Fragment], deadline: float) -> Fragment | None:
        """Await the next fragment within the request deadline; None on exhaustion."""
        remaining = deadline - asyncio.get_running_loop().time()
        try:
            if remaining <= 0:
                raise TimeoutError
            return await asyncio.wait_for(anext(fragments), remaining)
        except StopAsyncIteration:
            return None
        except TimeoutError as e:
            raise ModelProviderError("Model response timed out", details="timeout") from e
        except ChatError:
            raise
        except Exception as e:
            logger.error("model_provider_failed", error=str(e), error_type=type(e).__name__)
            raise ModelProviderError(details=type(e).__name__) from e

    async def stream(self, turn: ChatTurn) -> AsyncIterator[StreamChunk]:
        """Invoke the model and yield its reply chunk by chunk."""
        span = tracer.start_span("chat.stream")
        span.set_attribute("session.id", turn.session_id)
        started = time()
        sequence = 0
        fragments = self._fragments(turn.context)

        self._transition(PipelineState.INVOKING_MODEL, session_id=turn.session_id)
        try:
            while True:
                fragment = await self._next_fragment(fragments, turn.deadline)
                if fragment is None:
                    break
                if fragment.model_name:
                    turn.model_name = fragment.model_name
                if fragment.text:
                    if self.state is PipelineState.INVOKING_MODEL:
                        self._transition(PipelineState.STREAMING, session_id=turn.session_id)
                    turn.chunks.append(fragment.text)
                    yield StreamChunk(session_id=turn.session_id, sequence=sequence, fragment=fragment.text)
                    sequence += 1
                    self.metrics.stream_chunks.add(1)
                if fragment.final:
                    break
        except (GeneratorExit, asyncio.CancelledError) as e:
            self._fail(e, session_id=turn.session_id, reason="cancelled")
            self.metrics.streams_cancelled.add(1)
            logger.info("chat_stream_cancelled", session_id=turn.session_id, chunks_sent=sequence)
            await asyncio.shield(self._persist_cancelled(turn))
            raise
        except ChatError as e:
            self._fail(e, session_id=turn.session_id)
            self.metrics.model_errors.add(1, {"reason": str(e.details)})
            span.record_exception(e)
            logger.error("chat_stream_failed", session_id=turn.session_id, error=e.message, details=e.details)
            raise
        finally:
            await fragments.aclose()
            span.set_attribute("stream.chunks", sequence)
            span.end()
            self.metrics.stream_duration.record((time() - started) * 1000)

        await self._persist_completed(turn)
        self._transition(PipelineState.DONE, session_id=turn.session_id)
        yield StreamChunk(session_id=turn.session_id, sequence=sequence, final=True)

    async def _persist_completed(self, turn: ChatTurn) -> None:
        self._transition(PipelineState.PERSISTING, session_id=turn.session_id)
        with tracer.start_as_current_span("chat.persist") as span:
            span.set_attribute("session.id", turn.session_id)
            try:
                await self.history.append_many(
                    turn.session_id,
                    [(Role.USER, turn.user_input), (Role.ASSISTANT, turn.text)],
                )
                turn.persisted = True
            except StoreUnavailableError as e:
                # The reply was already delivered; report instead of failing
                turn.warning = "Response was delivered but could not be saved to history"
                self.metrics.persist_warnings.add(1)
                span.record_exception(e)
                logger.error("chat_turn_not_persisted", session_id=turn.session_id, error=str(e.details))

        logger.info(
            "chat_turn_completed",
            session_id=turn.session_id,
            response_length=len(turn.text),
            model=turn.model_name,
            persisted=turn.persisted,
        )

    async def _persist_cancelled(self, turn: ChatTurn) -> None:
        turns = self.persistence_policy.turns_on_cancel(turn.user_input, turn.text)
        if not turns:
            return
        try:
            await self.history.append_many(turn.session_id, turns)
            turn.persisted = True
            logger.info("chat_partial_turn_saved", session_id=turn.session_id, count=len(turns))
        except StoreUnavailableError as e:
            logger.error("chat_partial_turn_not_saved", session_id=turn.session_id, error=str(e.details))

    async def run(self, owner_id: str | None, request: ChatRequest) -> ChatTurn:
        """Run the whole pipeline without forwarding chunks; used by the batch endpoint."""
        turn = await self.prepare(owner_id, request)
        async with aclosing(self.stream(turn)) as chunks:
            async for _chunk in chunks:
                pass
        return turn
