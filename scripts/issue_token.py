"""Mint a development access token for the CLI.

The chat service does not manage users; any identity provider that signs
tokens with ``JWT_SECRET_KEY`` works. This script stands in for one locally.

Usage:
    python -m scripts.issue_token <user-id> [--email EMAIL]
"""

import argparse

from dotenv import load_dotenv

# Load environment variables before the auth module reads the JWT settings
load_dotenv()

from api.auth import EXPIRATION_DAYS, create_access_token  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description="Issue a development JWT for a user id")
    parser.add_argument("user_id", help="Value of the token's sub claim")
    parser.add_argument("--email", help="Optional email claim")
    args = parser.parse_args()

    token = create_access_token(args.user_id, email=args.email)
    print(token)
    print(f"\n# valid for {EXPIRATION_DAYS} days; paste it at the CLI's /login prompt")


if __name__ == "__main__":
    main()
