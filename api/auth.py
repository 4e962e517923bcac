"""Authentication utilities for JWT bearer tokens.

Tokens are issued by the identity provider that shares ``JWT_SECRET_KEY``;
the ``sub`` claim is the user id. This service only validates them.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from opentelemetry import trace

# Initialize logger
logger = structlog.get_logger(__name__)


# JWT Configuration
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "your-secret-key-here-change-in-production")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
EXPIRATION_DAYS = int(os.getenv("JWT_EXPIRATION_DAYS", "30"))

# Missing credentials are not an error here; callers decide whether they need an identity
security = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, email: str | None = None) -> str:
    """
    Create a JWT access token for a user.

    Args:
        user_id: The user's ID
        email: Optional email claim

    Returns:
        Encoded JWT token
    """
    expire = datetime.now(timezone.utc) + timedelta(days=EXPIRATION_DAYS)
    to_encode = {"sub": user_id, "exp": expire}
    if email:
        to_encode["email"] = email
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """
    Decode and verify a JWT token.

    Args:
        token: The JWT token to decode

    Returns:
        Decoded token payload or None if invalid
    """
    tracer = trace.get_tracer(__name__)

    with tracer.start_as_current_span("decode_access_token") as span:
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
            span.set_attribute("user.id", str(payload.get("sub")))
            return payload
        except JWTError as e:
            logger.warning("jwt_token_decode_failed", error=str(e), error_type=type(e).__name__)
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(e).__name__)
            return None


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str | None:
    """
    Dependency returning the authenticated user id, or None without credentials.

    A token that is present but invalid is rejected with 401.
    """
    if credentials is None:
        logger.debug("auth_no_credentials")
        return None

    payload = decode_access_token(credentials.credentials)
    user_id = payload.get("sub") if payload else None
    if not user_id:
        logger.warning("auth_failed_invalid_token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.debug("auth_user_authenticated", user_id=user_id)
    return user_id


async def require_user_id(user_id: str | None = Depends(get_current_user_id)) -> str:
    """Dependency for endpoints that always need an identity."""
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id
