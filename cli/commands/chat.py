"""Chat and session command handlers.

Every handler takes the ``httpx.Client`` and the caller-owned
``ConversationState`` explicitly; nothing here keeps module-level state.
"""

import json
from collections.abc import Callable, Iterable, Iterator

import httpx

from ..config import REQUEST_TIMEOUT, STREAM_TIMEOUT
from ..transcript import ConversationState, TranscriptEntry

SESSION_HEADER = "x-session-id"


def _auth_headers(token: str | None) -> dict:
    return {"Authorization": f"Bearer {token}"} if token else {}


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    return body.get("error") or body.get("detail") or "Unknown error"


def _report_http_error(e: httpx.HTTPError, action: str):
    if isinstance(e, httpx.ConnectError):
        print("Error: Could not connect to API server.")
        print("Please start the server with: python -m api.server\n")
    elif isinstance(e, httpx.HTTPStatusError):
        status = e.response.status_code
        if status == 401:
            print("Error: Authentication failed. Please /login again.\n")
        elif status == 403:
            print("Error: You do not have access to this session.\n")
        elif status == 404:
            print("Error: Session not found.\n")
        else:
            print(f"Error: Failed to {action}: {_error_detail(e.response)}\n")
    else:
        print(f"Error: API request failed: {e}\n")


def _write_fragment(text: str):
    print(text, end="", flush=True)


def parse_sse(lines: Iterable[str]) -> Iterator[dict]:
    """Decode ``data:`` frames of a Server-Sent Events body."""
    for line in lines:
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data:
            yield json.loads(data)


def to_wire(entry: TranscriptEntry) -> dict:
    return {"id": entry.id, "role": entry.role, "parts": [{"type": "text", "text": entry.content}]}


def load_history(client: httpx.Client, state: ConversationState, token: str | None) -> bool:
    """Replace the loaded part of the transcript with the server's history."""
    if not state.session_id:
        return False

    try:
        response = client.get(
            "/chat/history",
            params={"session_id": state.session_id},
            headers=_auth_headers(token),
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
        _report_http_error(e, "retrieve history")
        return False

    state.loaded = [
        TranscriptEntry(id=m["id"], role=m["role"], content=m["content"], created_at=m.get("createdAt"))
        for m in response.json()["messages"]
    ]
    return True


def stream_reply(
    client: httpx.Client,
    state: ConversationState,
    token: str | None,
    text: str,
    write: Callable[[str], None] = _write_fragment,
) -> str | None:
    """
    Send ``text`` and stream the assistant reply through ``write``.

    The session id reported by the server is adopted as soon as it is known.
    The turn joins the live transcript only once the server reports ``done``,
    so a failed, interrupted or truncated stream leaves the transcript as it
    was. Returns the full reply, or None when the turn failed.
    """
    payload = {
        "messages": [*(to_wire(e) for e in state.live), {"role": "user", "parts": [{"type": "text", "text": text}]}],
    }
    if state.session_id:
        payload["session_id"] = state.session_id

    parts = []
    completed = False
    try:
        with client.stream(
            "POST",
            "/chat/stream",
            json=payload,
            headers=_auth_headers(token),
            timeout=STREAM_TIMEOUT,
        ) as response:
            if response.is_error:
                response.read()
                response.raise_for_status()

            if response.headers.get(SESSION_HEADER):
                state.adopt_session(response.headers[SESSION_HEADER])

            for event in parse_sse(response.iter_lines()):
                kind = event.get("type")
                if kind == "session":
                    state.adopt_session(event["session_id"])
                elif kind == "content":
                    parts.append(event["content"])
                    write(event["content"])
                elif kind == "warning":
                    print(f"\n[warning] {event['warning']}")
                elif kind == "error":
                    print(f"\nError: {event['error']}\n")
                    return None
                elif kind == "done":
                    completed = True
                    break
    except httpx.HTTPError as e:
        _report_http_error(e, "send message")
        return None

    if not completed:
        print("\nError: The reply was cut off before it finished.\n")
        return None

    reply = "".join(parts)
    state.add_live("user", text)
    state.add_live("assistant", reply)
    return reply


def list_sessions(client: httpx.Client, state: ConversationState, token: str | None) -> list[dict]:
    """List all chat sessions of the logged-in user."""
    try:
        response = client.get("/chat/sessions", headers=_auth_headers(token), timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
    except httpx.HTTPError as e:
        _report_http_error(e, "list sessions")
        return []

    sessions = response.json()
    if not sessions:
        print("\nNo chat sessions found. Just start typing to create one.\n")
        return sessions

    print("\n=== Your Chat Sessions ===")
    for i, session in enumerate(sessions, 1):
        marker = "→" if session["id"] == state.session_id else " "
        print(f"{marker} {i}. {session['title']}")
        print(f"     ID: {session['id']}")
        print(f"     Created: {session['created_at'][:19]}")
    print()
    return sessions


def switch_session(client: httpx.Client, state: ConversationState, token: str | None, session_id: str) -> bool:
    """Make ``session_id`` the active conversation and load its history."""
    session_id = session_id.strip()
    if not session_id:
        print("Error: Session ID is required.\n")
        return False

    state.adopt_session(session_id)
    if not load_history(client, state, token):
        return False

    print(f"\n✓ Switched to session: {session_id} ({len(state.loaded)} messages)\n")
    return True


def new_session(state: ConversationState):
    """Start a fresh conversation; the server creates it on the first message."""
    state.reset()
    print("\n✓ Started a new conversation.\n")


def view_history(state: ConversationState):
    """Print the reconciled transcript with message numbers."""
    entries = state.transcript()
    if not entries:
        print("\nNo messages in this conversation yet.\n")
        return

    print("\n=== Conversation ===")
    for i, entry in enumerate(entries, 1):
        marker = " (copied)" if state.copied.is_copied(entry.id) else ""
        timestamp = f"[{entry.created_at[:19]}] " if entry.created_at else ""
        print(f"\n{i}. {timestamp}{entry.role.capitalize()}{marker}:")
        print(entry.content)
    print()


def copy_message(state: ConversationState, number: int) -> TranscriptEntry | None:
    """Flag message ``number`` (1-based) as copied and print its raw text."""
    entries = state.transcript()
    if not 1 <= number <= len(entries):
        print(f"Error: No message #{number}.\n")
        return None

    entry = entries[number - 1]
    state.copied.mark(entry.id)
    print(f"\n--- message {number} ---\n{entry.content}\n--- copied ---\n")
    return entry
