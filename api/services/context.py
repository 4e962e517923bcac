"""Assembly of the message list sent to the language model."""

from __future__ import annotations

from collections.abc import Sequence

from ..errors import EmptyInputError
from ..models import ChatMessage, InboundMessage, Role


def first_text(message: InboundMessage) -> str | None:
    """Return the text of an inbound message.

    When the message has parts, the first part of type ``text`` wins, even if
    a later one is longer. Messages without parts fall back to ``content``.
    """
    if message.parts:
        for part in message.parts:
            if part.type == "text" and isinstance(part.text, str):
                return part.text
        return None
    return message.content


def latest_user_input(messages: Sequence[InboundMessage]) -> str:
    """Extract the text of the most recent user message.

    Raises EmptyInputError when there is no such message or it has no text.
    """
    last_user = next((m for m in reversed(messages) if m.role == Role.USER.value), None)
    text = first_text(last_user) if last_user is not None else None
    if not text:
        raise EmptyInputError()
    return text


def build_context(
    system_instruction: str | None,
    history: Sequence[ChatMessage],
    new_user_input: str,
) -> list[dict[str, str]]:
    """Build the role-tagged message list for one generation call.

    Order is fixed: system instruction, stored history as-is, then the new
    input. Length budgeting is left to the provider.
    """
    if not new_user_input:
        raise EmptyInputError()

    messages = []
    if system_instruction:
        messages.append({"role": Role.SYSTEM.value, "content": system_instruction})
    messages.extend({"role": m.role.value, "content": m.content} for m in history)
    messages.append({"role": Role.USER.value, "content": new_user_input})
    return messages
