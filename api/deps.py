"""FastAPI dependencies wiring the chat services to shared resources."""

import os

from fastapi import Request

from connectors.providers import ModelProvider

from .database import get_db
from .errors import ModelProviderError
from .services import HistoryStore, SessionManager

VERIFY_SESSION_OWNER = os.getenv("CHAT_VERIFY_SESSION_OWNER", "false").lower() == "true"


def get_history_store() -> HistoryStore:
    return HistoryStore(get_db())


def get_session_manager() -> SessionManager:
    return SessionManager(get_db(), verify_ownership=VERIFY_SESSION_OWNER)


def _provider(request: Request, name: str) -> ModelProvider:
    provider = getattr(request.app.state, name, None)
    if provider is None:
        raise ModelProviderError("OpenAI API key not configured", details="not_configured")
    return provider


def get_streaming_provider(request: Request) -> ModelProvider:
    """Provider with the incremental capability."""
    return _provider(request, "streaming_provider")


def get_batch_provider(request: Request) -> ModelProvider:
    """Provider returning one complete response."""
    return _provider(request, "batch_provider")
