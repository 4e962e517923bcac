"""Tests for CLI chat commands against a mocked API."""

import json

import httpx
import pytest

from cli.commands import (
    copy_message,
    list_sessions,
    load_history,
    parse_sse,
    stream_reply,
    switch_session,
)
from cli.transcript import ConversationState

TOKEN = "test-token"


def sse_body(*events):
    return "".join(f"data: {json.dumps(e)}\n\n" for e in events)


def make_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler), base_url="http://testserver")


def stream_handler(session_id="s1", events=None, requests=None):
    events = events or [
        {"type": "session", "session_id": session_id, "created": True},
        {"type": "content", "sequence": 0, "content": "Hel"},
        {"type": "content", "sequence": 1, "content": "lo"},
        {"type": "done", "session_id": session_id, "model": "gpt-4o-mini"},
    ]

    def handler(request):
        if requests is not None:
            requests.append(request)
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream", "x-session-id": session_id},
            text=sse_body(*events),
        )

    return handler


class TestParseSse:
    def test_only_data_frames_are_decoded(self):
        lines = [": keep-alive", "", 'data: {"type": "content", "content": "x"}', "event: ignored"]

        assert list(parse_sse(lines)) == [{"type": "content", "content": "x"}]


class TestStreamReply:
    """Test sending a message and consuming the SSE reply."""

    def test_reply_is_streamed_and_recorded(self):
        requests = []
        state = ConversationState()
        written = []

        with make_client(stream_handler(requests=requests)) as client:
            reply = stream_reply(client, state, TOKEN, "Hi there", write=written.append)

        assert reply == "Hello"
        assert written == ["Hel", "lo"]
        assert state.session_id == "s1"
        assert [(e.role, e.content) for e in state.live] == [("user", "Hi there"), ("assistant", "Hello")]

        payload = json.loads(requests[0].content)
        assert "session_id" not in payload
        assert payload["messages"][-1] == {"role": "user", "parts": [{"type": "text", "text": "Hi there"}]}
        assert requests[0].headers["Authorization"] == f"Bearer {TOKEN}"

    def test_existing_session_is_sent(self):
        requests = []
        state = ConversationState(session_id="s1")

        with make_client(stream_handler(requests=requests)) as client:
            stream_reply(client, state, TOKEN, "Again", write=lambda _: None)

        assert json.loads(requests[0].content)["session_id"] == "s1"

    def test_replaced_session_starts_fresh_view(self):
        state = ConversationState(session_id="stale")
        state.add_live("user", "old question")

        with make_client(stream_handler(session_id="fresh")) as client:
            stream_reply(client, state, TOKEN, "New question", write=lambda _: None)

        assert state.session_id == "fresh"
        assert [e.content for e in state.live] == ["New question", "Hello"]

    def test_error_event_returns_none(self, capsys):
        events = [
            {"type": "session", "session_id": "s1", "created": False},
            {"type": "content", "sequence": 0, "content": "par"},
            {"type": "error", "error": "Failed to generate response", "details": "timeout"},
        ]
        state = ConversationState()

        with make_client(stream_handler(events=events)) as client:
            reply = stream_reply(client, state, TOKEN, "Hi", write=lambda _: None)

        assert reply is None
        assert "Failed to generate response" in capsys.readouterr().out
        assert state.session_id == "s1"
        assert state.live == []
        assert state.transcript() == []

    def test_stream_without_done_records_nothing(self, capsys):
        events = [
            {"type": "session", "session_id": "s1", "created": True},
            {"type": "content", "sequence": 0, "content": "par"},
        ]
        state = ConversationState()
        written = []

        with make_client(stream_handler(events=events)) as client:
            reply = stream_reply(client, state, TOKEN, "Hi", write=written.append)

        assert reply is None
        assert written == ["par"]
        assert state.live == []
        assert "cut off" in capsys.readouterr().out

    def test_failed_turn_keeps_earlier_messages(self):
        state = ConversationState(session_id="s1")
        state.add_live("user", "first")
        state.add_live("assistant", "answer")
        events = [{"type": "error", "error": "Failed to generate response", "details": "timeout"}]

        with make_client(stream_handler(events=events)) as client:
            stream_reply(client, state, TOKEN, "second", write=lambda _: None)

        assert [(e.role, e.content) for e in state.transcript()] == [("user", "first"), ("assistant", "answer")]

    def test_http_error_is_reported(self, capsys):
        def handler(request):
            return httpx.Response(400, json={"error": "No valid user input found.", "details": None})

        state = ConversationState()
        with make_client(handler) as client:
            reply = stream_reply(client, state, TOKEN, "Hi", write=lambda _: None)

        assert reply is None
        assert "No valid user input found." in capsys.readouterr().out
        assert state.live == []

    def test_connection_error_records_nothing(self, capsys):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        state = ConversationState()
        with make_client(handler) as client:
            reply = stream_reply(client, state, TOKEN, "Hi", write=lambda _: None)

        assert reply is None
        assert state.live == []
        assert "Could not connect" in capsys.readouterr().out


class TestHistoryCommands:
    """Test history loading and session switching."""

    @pytest.fixture
    def history_handler(self):
        def handler(request):
            if request.url.path == "/chat/history":
                assert request.url.params["session_id"] == "s9"
                return httpx.Response(
                    200,
                    json={
                        "messages": [
                            {"id": "h1", "role": "user", "content": "hi", "createdAt": "2024-01-01T00:00:00Z"},
                            {"id": "h2", "role": "assistant", "content": "hello", "createdAt": "2024-01-01T00:00:01Z"},
                        ]
                    },
                )
            return httpx.Response(404)

        return handler

    def test_load_history_fills_loaded_entries(self, history_handler):
        state = ConversationState(session_id="s9")

        with make_client(history_handler) as client:
            assert load_history(client, state, TOKEN) is True

        assert [(e.id, e.role, e.content) for e in state.loaded] == [
            ("h1", "user", "hi"),
            ("h2", "assistant", "hello"),
        ]
        assert state.loaded[0].created_at == "2024-01-01T00:00:00Z"

    def test_load_history_without_session(self, history_handler):
        with make_client(history_handler) as client:
            assert load_history(client, ConversationState(), TOKEN) is False

    def test_switch_session_replaces_view(self, history_handler):
        state = ConversationState(session_id="s1")
        state.add_live("user", "from another chat")

        with make_client(history_handler) as client:
            assert switch_session(client, state, TOKEN, "s9") is True

        assert state.session_id == "s9"
        assert state.live == []
        assert [e.content for e in state.transcript()] == ["hi", "hello"]

    def test_list_sessions_marks_current(self, capsys):
        def handler(request):
            return httpx.Response(
                200,
                json=[
                    {"id": "s2", "owner_id": "u", "title": "Second", "created_at": "2024-01-02T00:00:00"},
                    {"id": "s1", "owner_id": "u", "title": "First", "created_at": "2024-01-01T00:00:00"},
                ],
            )

        with make_client(handler) as client:
            sessions = list_sessions(client, ConversationState(session_id="s1"), TOKEN)

        assert [s["id"] for s in sessions] == ["s2", "s1"]
        assert "→ 2. First" in capsys.readouterr().out


class TestCopyMessage:
    def test_copy_marks_message(self):
        state = ConversationState()
        state.add_live("user", "hi")
        reply = state.add_live("assistant", "hello")

        copied = copy_message(state, 2)

        assert copied == reply
        assert state.copied.is_copied(reply.id) is True

    def test_out_of_range(self):
        assert copy_message(ConversationState(), 1) is None
