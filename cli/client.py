"""Main CLI client with REPL loop."""

import os

import httpx

from .commands import (
    copy_message,
    list_sessions,
    load_history,
    login_user,
    logout_user,
    new_session,
    stream_reply,
    switch_session,
    view_history,
)
from .config import API_URL, delete_session, load_session, load_token, save_session
from .transcript import ConversationState


def print_help():
    print("\nAuth Commands:")
    print("  /login - Store an access token")
    print("  /logout - Logout")
    print("\nSession Commands:")
    print("  /new - Start a new conversation")
    print("  /sessions - List all your chat sessions")
    print("  /switch <id> - Switch to a different session")
    print("  /history - Show the current conversation")
    print("  /copy <n> - Copy message number n")
    print("\nUtility Commands:")
    print("  /clear - Clear the terminal screen")
    print("  /help - Show this help")
    print("\nType 'exit' or 'quit' to end the conversation.")


def main():
    """CLI client for the Chatstream API."""
    print("Welcome to Chatstream CLI!")
    print_help()
    print("Note: Make sure the API server is running (python -m api.server)\n")

    state = ConversationState()
    client = httpx.Client(base_url=API_URL)

    # Check if user is already logged in
    token = load_token()
    if token:
        print("✓ You are already logged in.\n")
    else:
        print("⚠ You are not logged in. Please /login to chat.\n")

    # Restore the last conversation
    saved_session = load_session()
    if token and saved_session:
        state.adopt_session(saved_session)
        if load_history(client, state, token):
            print(f"[Resumed session {saved_session} with {len(state.loaded)} messages]\n")
        else:
            state.reset()
            delete_session()

    try:
        while True:
            try:
                user_input = input("You: ").strip()
            except (KeyboardInterrupt, EOFError):
                print("\n\nGoodbye!")
                break

            if user_input.lower() in ["exit", "quit"]:
                print("\nGoodbye!")
                break

            if not user_input:
                continue

            command, _, argument = user_input.partition(" ")
            command = command.lower()

            # Handle commands
            if command == "/help":
                print_help()
                continue

            if command == "/login":
                login_user()
                token = load_token()
                continue

            if command == "/logout":
                logout_user()
                token = None
                state.reset()
                continue

            if command == "/clear":
                # Clear terminal screen (cross-platform)
                os.system("cls" if os.name == "nt" else "clear")
                continue

            if command == "/new":
                new_session(state)
                delete_session()
                continue

            if command == "/history":
                view_history(state)
                continue

            if command == "/copy":
                if not argument.strip().isdigit():
                    print("Usage: /copy <message number>\n")
                    continue
                copy_message(state, int(argument))
                continue

            # Check authentication for everything that talks to the server
            if not token:
                print("Error: You must be logged in. Use /login.\n")
                continue

            if command == "/sessions":
                list_sessions(client, state, token)
                continue

            if command == "/switch":
                session_id = argument or input("\nEnter session ID: ")
                if switch_session(client, state, token, session_id):
                    save_session(state.session_id)
                continue

            print("Assistant: ", end="", flush=True)
            previous_session = state.session_id
            try:
                reply = stream_reply(client, state, token, user_input)
            except KeyboardInterrupt:
                print("\n[Interrupted]\n")
                continue

            if reply is not None:
                print("\n")
            if state.session_id and state.session_id != previous_session:
                save_session(state.session_id)
                print(f"[Session: {state.session_id}]\n")
    finally:
        client.close()
