"""Pytest configuration and shared fixtures."""

import pytest
from fakes import FakeBatchProvider, FakeDatabase, ScriptedStreamingProvider
from fastapi.testclient import TestClient

from api.auth import create_access_token, get_current_user_id
from api.deps import get_batch_provider, get_history_store, get_session_manager, get_streaming_provider
from api.services import HistoryStore, SessionManager

SYSTEM_PROMPT = "You are a test assistant."


@pytest.fixture
def fake_db():
    """Empty in-memory database."""
    return FakeDatabase()


@pytest.fixture
def history_store(fake_db):
    return HistoryStore(fake_db)


@pytest.fixture
def session_manager(fake_db):
    return SessionManager(fake_db)


@pytest.fixture
def strict_session_manager(fake_db):
    """Session manager that checks the caller owns supplied session ids."""
    return SessionManager(fake_db, verify_ownership=True)


@pytest.fixture
def streaming_provider():
    return ScriptedStreamingProvider(["A", "B", "C"])


@pytest.fixture
def batch_provider():
    return FakeBatchProvider()


@pytest.fixture
def owner_id():
    return "user-123"


@pytest.fixture
def auth_headers(owner_id):
    """Bearer header for ``owner_id``."""
    return {"Authorization": f"Bearer {create_access_token(owner_id)}"}


@pytest.fixture
def api_client(history_store, session_manager, streaming_provider, batch_provider):
    """FastAPI test client wired to in-memory stores and scripted providers.

    The lifespan is not entered, so no MongoDB or OpenAI connection is made.
    """
    from api.app import app

    app.dependency_overrides[get_history_store] = lambda: history_store
    app.dependency_overrides[get_session_manager] = lambda: session_manager
    app.dependency_overrides[get_streaming_provider] = lambda: streaming_provider
    app.dependency_overrides[get_batch_provider] = lambda: batch_provider
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(api_client):
    """Test client whose requests carry no identity."""
    from api.app import app

    app.dependency_overrides[get_current_user_id] = lambda: None
    return api_client


@pytest.fixture
def user_message():
    """Inbound chat message in parts form."""
    return {"role": "user", "parts": [{"type": "text", "text": "Hello, this is a test message!"}]}
