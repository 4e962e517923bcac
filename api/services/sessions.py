"""Chat session resolution and creation."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from opentelemetry import trace

from ..database import SESSIONS_COLLECTION, store_operation
from ..errors import ForbiddenError, MissingOwnerError, SessionNotFoundError
from ..models import ChatSession, InboundMessage, Role
from ..observability import get_app_metrics
from .context import first_text

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_TITLE = "New Chat"
TITLE_MAX_LENGTH = 50
TITLE_ELLIPSIS = "..."


def derive_title(messages: Sequence[InboundMessage]) -> str:
    """Title a new session after the first text of its first user message."""
    first_user = next((m for m in messages if m.role == Role.USER.value), None)
    text = first_text(first_user) if first_user is not None else None
    if not text:
        return DEFAULT_TITLE
    if len(text) > TITLE_MAX_LENGTH:
        return text[:TITLE_MAX_LENGTH] + TITLE_ELLIPSIS
    return text


def _to_session(doc: dict) -> ChatSession:
    return ChatSession(
        id=str(doc["_id"]),
        owner_id=doc["owner_id"],
        title=doc.get("title") or DEFAULT_TITLE,
        created_at=doc["created_at"],
    )


class SessionManager:
    """Resolve, create and list chat sessions.

    By default a caller-supplied session id is trusted as-is. With
    ``verify_ownership`` it must name an existing session owned by the caller.
    """

    def __init__(self, db: AsyncIOMotorDatabase, verify_ownership: bool = False):
        self.collection = db[SESSIONS_COLLECTION]
        self.verify_ownership = verify_ownership

    async def resolve_or_create(
        self,
        owner_id: str | None,
        candidate_session_id: str | None,
        messages: Sequence[InboundMessage],
    ) -> tuple[str, bool]:
        """Return ``(session_id, created)`` for a chat request."""
        with tracer.start_as_current_span("chat.resolve_session") as span:
            if candidate_session_id:
                span.set_attribute("session.id", candidate_session_id)
                if self.verify_ownership:
                    await self.check_access(owner_id, candidate_session_id)
                return candidate_session_id, False

            session = await self.create(owner_id, derive_title(messages))
            span.set_attribute("session.id", session.id)
            return session.id, True

    async def create(self, owner_id: str | None, title: str) -> ChatSession:
        """Insert one session row. An owner is mandatory."""
        if not owner_id:
            logger.warning("chat_session_creation_rejected", reason="missing_owner")
            raise MissingOwnerError()

        doc = {
            "title": title,
            "owner_id": owner_id,
            "created_at": datetime.now(timezone.utc),
        }
        async with store_operation("sessions.create", owner_id=owner_id):
            result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id

        get_app_metrics().sessions_created.add(1)
        logger.info("chat_session_created", session_id=str(result.inserted_id), owner_id=owner_id)
        return _to_session(doc)

    async def get(self, session_id: str) -> ChatSession | None:
        if not ObjectId.is_valid(session_id):
            return None
        async with store_operation("sessions.get", session_id=session_id):
            doc = await self.collection.find_one({"_id": ObjectId(session_id)})
        return _to_session(doc) if doc else None

    async def check_access(self, owner_id: str | None, session_id: str) -> ChatSession:
        """Ensure the session exists and belongs to ``owner_id``."""
        if not owner_id:
            raise MissingOwnerError()

        session = await self.get(session_id)
        if session is None:
            logger.warning("chat_session_not_found", session_id=session_id, owner_id=owner_id)
            raise SessionNotFoundError(details=session_id)
        if session.owner_id != owner_id:
            logger.warning("chat_session_forbidden", session_id=session_id, owner_id=owner_id)
            raise ForbiddenError(details=session_id)
        return session

    async def list_for_owner(self, owner_id: str, limit: int = 50, skip: int = 0) -> list[ChatSession]:
        """List an owner's sessions, newest first."""
        sessions = []
        async with store_operation("sessions.list", owner_id=owner_id):
            cursor = (
                self.collection.find({"owner_id": owner_id})
                .sort([("created_at", -1), ("_id", -1)])
                .skip(skip)
                .limit(limit)
            )
            async for doc in cursor:
                sessions.append(_to_session(doc))
        return sessions
