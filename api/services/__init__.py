"""Chat core services."""

from .context import build_context, first_text, latest_user_input
from .history import HistoryStore, extract_text, role_from_tag
from .pipeline import (
    ChatPipeline,
    ChatTurn,
    DiscardPartialTurn,
    PersistencePolicy,
    PipelineState,
    SavePartialTurn,
)
from .sessions import DEFAULT_TITLE, SessionManager, derive_title

__all__ = [
    "DEFAULT_TITLE",
    "ChatPipeline",
    "ChatTurn",
    "DiscardPartialTurn",
    "HistoryStore",
    "PersistencePolicy",
    "PipelineState",
    "SavePartialTurn",
    "SessionManager",
    "build_context",
    "derive_title",
    "extract_text",
    "first_text",
    "latest_user_input",
    "role_from_tag",
]
