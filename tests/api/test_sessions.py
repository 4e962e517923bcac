"""Tests for chat session resolution."""

import pytest
from bson import ObjectId
from pymongo.errors import AutoReconnect

from api.database import SESSIONS_COLLECTION
from api.errors import ForbiddenError, MissingOwnerError, SessionNotFoundError, StoreUnavailableError
from api.models import InboundMessage
from api.services import DEFAULT_TITLE, derive_title


def user(text=None, parts=None):
    return InboundMessage(role="user", content=text, parts=parts or [])


class TestDeriveTitle:
    """Test session title derivation."""

    def test_short_text_is_used_verbatim(self):
        assert derive_title([user("Plan a trip")]) == "Plan a trip"

    def test_long_text_is_truncated(self):
        text = "x" * 51

        assert derive_title([user(text)]) == "x" * 50 + "..."

    def test_exactly_fifty_characters_is_not_truncated(self):
        assert derive_title([user("y" * 50)]) == "y" * 50

    def test_first_user_message_wins(self):
        messages = [
            InboundMessage(role="assistant", content="Welcome"),
            user("first question"),
            user("second question"),
        ]

        assert derive_title(messages) == "first question"

    def test_first_text_part_is_used(self):
        message = user(parts=[{"type": "image"}, {"type": "text", "text": "Hi"}, {"type": "text", "text": "longer"}])

        assert derive_title([message]) == "Hi"

    def test_default_title(self):
        assert derive_title([]) == DEFAULT_TITLE
        assert derive_title([user("")]) == DEFAULT_TITLE


class TestSessionManager:
    """Test resolving and creating sessions."""

    async def test_creates_session_when_none_supplied(self, session_manager, fake_db):
        session_id, created = await session_manager.resolve_or_create("u1", None, [user("Hello")])

        assert created is True
        docs = fake_db[SESSIONS_COLLECTION].docs
        assert len(docs) == 1
        assert str(docs[0]["_id"]) == session_id
        assert docs[0]["owner_id"] == "u1"
        assert docs[0]["title"] == "Hello"

    async def test_supplied_session_is_reused_without_lookup(self, session_manager, fake_db):
        session_id, created = await session_manager.resolve_or_create("u1", "existing", [user("Hello")])

        assert (session_id, created) == ("existing", False)
        assert fake_db[SESSIONS_COLLECTION].docs == []

    async def test_missing_owner_writes_nothing(self, session_manager, fake_db):
        with pytest.raises(MissingOwnerError) as exc_info:
            await session_manager.resolve_or_create(None, None, [user("Hello")])

        assert exc_info.value.status_code == 401
        assert fake_db[SESSIONS_COLLECTION].docs == []

    async def test_store_failure_is_translated(self, session_manager, fake_db):
        fake_db[SESSIONS_COLLECTION].fail_with = AutoReconnect("down")

        with pytest.raises(StoreUnavailableError):
            await session_manager.create("u1", "Title")

    async def test_list_for_owner_newest_first(self, session_manager):
        await session_manager.create("u1", "Session 1")
        await session_manager.create("u1", "Session 2")
        await session_manager.create("u2", "Someone else")

        sessions = await session_manager.list_for_owner("u1")

        assert [s.title for s in sessions] == ["Session 2", "Session 1"]

    async def test_get_with_invalid_id(self, session_manager):
        assert await session_manager.get("not-an-object-id") is None


class TestOwnershipVerification:
    """Test the opt-in ownership checks."""

    async def test_owner_can_resume(self, strict_session_manager):
        session = await strict_session_manager.create("u1", "Mine")

        session_id, created = await strict_session_manager.resolve_or_create("u1", session.id, [user("Hi")])

        assert (session_id, created) == (session.id, False)

    async def test_other_owner_is_forbidden(self, strict_session_manager):
        session = await strict_session_manager.create("u1", "Mine")

        with pytest.raises(ForbiddenError):
            await strict_session_manager.resolve_or_create("u2", session.id, [user("Hi")])

    async def test_unknown_session_is_not_found(self, strict_session_manager):
        with pytest.raises(SessionNotFoundError):
            await strict_session_manager.resolve_or_create("u1", str(ObjectId()), [user("Hi")])

    async def test_anonymous_caller_is_rejected(self, strict_session_manager):
        with pytest.raises(MissingOwnerError):
            await strict_session_manager.check_access(None, str(ObjectId()))
