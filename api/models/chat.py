"""Chat-related Pydantic models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Closed set of conversation roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class MessagePart(BaseModel):
    """One fragment of an inbound message; only ``text`` parts carry input."""

    type: str
    text: str | None = None


class InboundMessage(BaseModel):
    """A message as sent by the client: plain content or a list of parts."""

    id: str | None = None
    role: str
    content: str | None = None
    parts: list[MessagePart] = Field(default_factory=list)


class ChatRequest(BaseModel):
    """Request model for the chat endpoints."""

    messages: list[InboundMessage]
    session_id: str | None = None


class ChatResponse(BaseModel):
    """Response model for the batch chat endpoint."""

    response: str
    session_id: str
    model: str


class ChatSession(BaseModel):
    """A durable, owned conversation thread."""

    id: str
    owner_id: str
    title: str
    created_at: datetime


class ChatMessage(BaseModel):
    """One persisted turn of a session."""

    id: str
    session_id: str
    role: Role
    content: str
    created_at: datetime


class StreamChunk(BaseModel):
    """One incremental fragment of an assistant turn.

    ``final`` marks the control-only chunk that closes the stream.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    sequence: int
    fragment: str = ""
    final: bool = False


class HistoryMessage(BaseModel):
    """Message shape returned by the history endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    role: Role
    content: str
    created_at: datetime = Field(serialization_alias="createdAt")


class HistoryResponse(BaseModel):
    """Response model for the history endpoint."""

    messages: list[HistoryMessage]


class ChatSessionResponse(BaseModel):
    """Response model for chat session listings."""

    id: str
    owner_id: str
    title: str
    created_at: datetime
