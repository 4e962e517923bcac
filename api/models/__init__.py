"""Pydantic models for API requests and responses."""

from .chat import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatSession,
    ChatSessionResponse,
    HistoryMessage,
    HistoryResponse,
    InboundMessage,
    MessagePart,
    Role,
    StreamChunk,
)

__all__ = [
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ChatSession",
    "ChatSessionResponse",
    "HistoryMessage",
    "HistoryResponse",
    "InboundMessage",
    "MessagePart",
    "Role",
    "StreamChunk",
]
