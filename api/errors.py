"""Exceptions raised by the chat core.

Every error carries the HTTP status it maps to and a generic public message.
``details`` holds a short diagnostic string that may be shown to the caller;
full diagnostics go to the logs only.
"""

from __future__ import annotations

from typing import Any


class ChatError(Exception):
    """Base exception for the chat core."""

    status_code = 500
    public_message = "An error occurred while processing your request"

    def __init__(self, message: str | None = None, details: Any | None = None):
        self.message = message or self.public_message
        self.details = details
        super().__init__(self.message)


class MissingOwnerError(ChatError):
    """A session was about to be created without an authenticated identity."""

    status_code = 401
    public_message = "User ID is required"


class EmptyInputError(ChatError):
    """The latest user message carries no text."""

    status_code = 400
    public_message = "No valid user input found."


class SessionNotFoundError(ChatError):
    """A supplied session id does not exist."""

    status_code = 404
    public_message = "Chat session not found"


class ForbiddenError(ChatError):
    """A supplied session id belongs to another user."""

    status_code = 403
    public_message = "Chat session belongs to another user"


class StoreUnavailableError(ChatError):
    """The store is unreachable or a query failed."""

    status_code = 503
    public_message = "Chat history store is unavailable"


class ModelProviderError(ChatError):
    """The language-model call failed or timed out."""

    status_code = 502
    public_message = "Failed to generate response"
