"""CLI command handlers."""

from .auth import login_user, logout_user
from .chat import (
    copy_message,
    list_sessions,
    load_history,
    new_session,
    parse_sse,
    stream_reply,
    switch_session,
    view_history,
)

__all__ = [
    # Chat commands
    "copy_message",
    "list_sessions",
    "load_history",
    # Auth commands
    "login_user",
    "logout_user",
    "new_session",
    "parse_sse",
    "stream_reply",
    "switch_session",
    "view_history",
]
