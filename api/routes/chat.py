"""Chat, history and session endpoints."""

import json
from contextlib import aclosing

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import StreamingResponse

from connectors.providers import ModelProvider

from ..auth import get_current_user_id, require_user_id
from ..deps import get_batch_provider, get_history_store, get_session_manager, get_streaming_provider
from ..errors import ChatError
from ..models import ChatRequest, ChatResponse, ChatSessionResponse, HistoryMessage, HistoryResponse
from ..observability import get_tracer
from ..services import ChatPipeline, HistoryStore, SessionManager

# Initialize logger
logger = structlog.get_logger(__name__)

tracer = get_tracer(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

SESSION_HEADER = "x-session-id"


def sse(event: dict) -> str:
    """Format one Server-Sent Event frame."""
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


@router.post("/stream")
async def chat_stream(
    request: ChatRequest,
    http_request: Request,
    owner_id: str | None = Depends(get_current_user_id),
    sessions: SessionManager = Depends(get_session_manager),
    history: HistoryStore = Depends(get_history_store),
    provider: ModelProvider = Depends(get_streaming_provider),
):
    """
    Stream the assistant reply as Server-Sent Events.

    Session and input errors are returned as plain JSON errors before the
    stream opens. The resolved session id is sent in the ``x-session-id``
    header and in the first ``session`` event.
    """
    with tracer.start_as_current_span("process_chat_stream") as span:
        span.set_attribute("message.count", len(request.messages))
        logger.info("chat_stream_request_received", owner_id=owner_id, session_id=request.session_id)

        pipeline = ChatPipeline(sessions, history, provider)
        turn = await pipeline.prepare(owner_id, request)
        span.set_attribute("session.id", turn.session_id)

    async def generate_stream():
        """Forward pipeline chunks as SSE frames."""
        yield sse({"type": "session", "session_id": turn.session_id, "created": turn.created})

        try:
            async with aclosing(pipeline.stream(turn)) as chunks:
                async for chunk in chunks:
                    if await http_request.is_disconnected():
                        logger.info("chat_client_disconnected", session_id=turn.session_id)
                        return
                    if chunk.final:
                        continue
                    yield sse({"type": "content", "sequence": chunk.sequence, "content": chunk.fragment})
        except ChatError as e:
            yield sse({"type": "error", "error": e.message, "details": e.details})
            return

        if turn.warning:
            yield sse({"type": "warning", "warning": turn.warning})
        yield sse({"type": "done", "session_id": turn.session_id, "model": turn.model_name})

    return StreamingResponse(
        generate_stream(),
        media_type="text/event-stream",
        headers={
            SESSION_HEADER: turn.session_id,
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",  # Disable buffering for nginx
        },
    )


@router.post("", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    response: Response,
    owner_id: str | None = Depends(get_current_user_id),
    sessions: SessionManager = Depends(get_session_manager),
    history: HistoryStore = Depends(get_history_store),
    provider: ModelProvider = Depends(get_batch_provider),
):
    """
    Return the complete assistant reply in one response.

    Runs the same pipeline as the streaming endpoint with a batch provider.
    """
    with tracer.start_as_current_span("process_chat") as span:
        logger.info("chat_request_received", owner_id=owner_id, session_id=request.session_id)

        pipeline = ChatPipeline(sessions, history, provider)
        turn = await pipeline.run(owner_id, request)

        span.set_attribute("session.id", turn.session_id)
        response.headers[SESSION_HEADER] = turn.session_id

        return ChatResponse(
            response=turn.text,
            session_id=turn.session_id,
            model=turn.model_name or pipeline.config.model,
        )


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    session_id: str | None = None,
    owner_id: str | None = Depends(get_current_user_id),
    sessions: SessionManager = Depends(get_session_manager),
    history: HistoryStore = Depends(get_history_store),
):
    """
    Get all messages of a session, oldest first.

    An unknown session id yields an empty list.
    """
    if not session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")

    with tracer.start_as_current_span("get_history") as span:
        span.set_attribute("session.id", session_id)

        if sessions.verify_ownership:
            await sessions.check_access(owner_id, session_id)

        messages = await history.load_ordered(session_id)
        span.set_attribute("result.count", len(messages))
        logger.info("session_history_retrieved", session_id=session_id, count=len(messages))

        return HistoryResponse(
            messages=[
                HistoryMessage(id=m.id, role=m.role, content=m.content, created_at=m.created_at)
                for m in messages
            ]
        )


@router.get("/sessions", response_model=list[ChatSessionResponse])
async def list_chat_sessions(
    owner_id: str = Depends(require_user_id),
    sessions: SessionManager = Depends(get_session_manager),
    limit: int = 50,
    skip: int = 0,
):
    """List the current user's chat sessions, newest first."""
    with tracer.start_as_current_span("list_chat_sessions") as span:
        span.set_attribute("user.id", owner_id)

        found = await sessions.list_for_owner(owner_id, limit=limit, skip=skip)
        logger.info("chat_sessions_listed", owner_id=owner_id, count=len(found))

        return [
            ChatSessionResponse(id=s.id, owner_id=s.owner_id, title=s.title, created_at=s.created_at)
            for s in found
        ]
