"""Chat history persistence.

Translates between stored message documents and ``ChatMessage`` models.
Stored documents follow the LangChain message-history layout::

    {
        "session_id": "<session id>",
        "message": {"type": "human" | "ai", "content": "..."},
        "message_type": "human" | "ai",
        "created_at": datetime,
    }

The collection is append-only: messages are inserted, never updated.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase
from opentelemetry import trace

from ..database import MESSAGES_COLLECTION, store_operation
from ..models import ChatMessage, Role
from ..observability import get_app_metrics

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

# Keys a stored message may keep its text under, in priority order
TEXT_KEYS = ("content", "text", "message")

_ROLE_BY_TAG = {
    "ai": Role.ASSISTANT,
    "assistant": Role.ASSISTANT,
    "human": Role.USER,
    "user": Role.USER,
    "system": Role.SYSTEM,
}

_TAG_BY_ROLE = {
    Role.ASSISTANT: "ai",
    Role.USER: "human",
    Role.SYSTEM: "system",
}


def extract_text(raw: Mapping[str, Any] | None) -> str | None:
    """Return the text of a stored message, or None when it has none.

    The first of ``content``, ``text`` and ``message`` that is present and not
    null wins. Non-string values are skipped.
    """
    if not raw:
        return None
    for key in TEXT_KEYS:
        value = raw.get(key)
        if isinstance(value, str):
            return value
    return None


def role_from_tag(tag: str | None) -> Role:
    """Map a stored message-type tag to a role; unknown tags become ``user``."""
    return _ROLE_BY_TAG.get((tag or "").lower(), Role.USER)


def tag_from_role(role: Role) -> str:
    return _TAG_BY_ROLE[role]


def document_to_message(doc: Mapping[str, Any]) -> ChatMessage:
    """Build a ChatMessage from a stored document without ever failing on shape."""
    payload = doc.get("message")
    if not isinstance(payload, Mapping):
        payload = {}
    tag = doc.get("message_type") or payload.get("type")
    return ChatMessage(
        id=str(doc.get("_id", "")),
        session_id=str(doc.get("session_id", "")),
        role=role_from_tag(tag),
        content=extract_text(payload) or "",
        created_at=doc.get("created_at") or datetime.now(timezone.utc),
    )


class HistoryStore:
    """Append and read the ordered message log of a session."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db[MESSAGES_COLLECTION]

    @staticmethod
    def _document(session_id: str, role: Role, content: str, created_at: datetime) -> dict:
        tag = tag_from_role(role)
        return {
            "session_id": session_id,
            "message": {"type": tag, "content": content},
            "message_type": tag,
            "created_at": created_at,
        }

    async def append(self, session_id: str, role: Role, content: str) -> None:
        """Durably persist one message."""
        with tracer.start_as_current_span("history.append") as span:
            span.set_attribute("session.id", session_id)
            span.set_attribute("message.role", role.value)

            doc = self._document(session_id, role, content, datetime.now(timezone.utc))
            async with store_operation("history.append", session_id=session_id):
                await self.collection.insert_one(doc)

            get_app_metrics().messages_persisted.add(1)
            logger.debug("history_message_appended", session_id=session_id, role=role.value)

    async def append_many(self, session_id: str, turns: Iterable[tuple[Role, str]]) -> None:
        """Persist several messages in one ordered insert.

        All rows share one timestamp; insertion order breaks the tie on reads.
        """
        now = datetime.now(timezone.utc)
        docs = [self._document(session_id, role, content, now) for role, content in turns]
        if not docs:
            return

        with tracer.start_as_current_span("history.append_many") as span:
            span.set_attribute("session.id", session_id)
            span.set_attribute("message.count", len(docs))

            async with store_operation("history.append_many", session_id=session_id):
                await self.collection.insert_many(docs, ordered=True)

            get_app_metrics().messages_persisted.add(len(docs))
            logger.debug("history_messages_appended", session_id=session_id, count=len(docs))

    async def load_ordered(self, session_id: str) -> list[ChatMessage]:
        """Return every message of the session, oldest first.

        An unknown session simply has no messages.
        """
        with tracer.start_as_current_span("history.load_ordered") as span:
            span.set_attribute("session.id", session_id)

            messages = []
            async with store_operation("history.load_ordered", session_id=session_id):
                cursor = self.collection.find({"session_id": session_id}).sort(
                    [("created_at", 1), ("_id", 1)]
                )
                async for doc in cursor:
                    messages.append(document_to_message(doc))

            span.set_attribute("result.count", len(messages))
            logger.debug("history_loaded", session_id=session_id, count=len(messages))
            return messages
