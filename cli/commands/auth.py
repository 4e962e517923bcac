"""Authentication command handlers."""

from ..config import delete_session, delete_token, save_token


def login_user():
    """Store a bearer token issued for this user."""
    print("\n=== User Login ===")
    print("Paste an access token (mint one with: python -m scripts.issue_token <user-id>)")
    token = input("Token: ").strip()

    if not token:
        print("Error: Token is required.\n")
        return

    save_token(token)
    print("\n✓ Token saved. You are now logged in.\n")


def logout_user():
    """Handle user logout."""
    delete_token()
    delete_session()
    print("\n✓ Logged out successfully.\n")
