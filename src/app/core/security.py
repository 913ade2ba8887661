"""Password hashing and signed session tokens.

Sessions are stateless: the session cookie carries a JWT signed with
SESSION_SECRET_KEY, so any worker can authenticate a request without a
shared session store.

Uses bcrypt directly (not passlib) for Python 3.13 compatibility.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import HTTPException, status
from jose import JWTError, jwt

from src.app.config import get_settings

SESSION_TOKEN_TYPE = "session"

# ── Password Hashing ──────────────────────────────────────────────────────────


def hash_password(password: str) -> str:
    """Hash a plaintext password using bcrypt."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a plaintext password against its bcrypt hash."""
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


# ── Session Tokens ────────────────────────────────────────────────────────────


def create_session_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a signed session token.

    The data dict should contain at minimum:
    - sub: user id (str)
    - username: login name
    - role: user role
    """
    settings = get_settings()
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.SESSION_EXPIRE_MINUTES))
    to_encode.update({
        "exp": expire,
        "iat": now,
        "type": SESSION_TOKEN_TYPE,
    })
    return jwt.encode(to_encode, settings.SESSION_SECRET_KEY, algorithm=settings.SESSION_ALGORITHM)


def _decode(token: str) -> dict:
    settings = get_settings()
    return jwt.decode(token, settings.SESSION_SECRET_KEY, algorithms=[settings.SESSION_ALGORITHM])


def verify_session_token(token: str) -> dict:
    """Decode and validate a session token.

    Returns:
        The decoded payload dict.

    Raises:
        HTTPException(401): If the token is invalid, expired, or wrong type.
    """
    rejected = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    try:
        payload = _decode(token)
    except JWTError:
        raise rejected
    if payload.get("type") != SESSION_TOKEN_TYPE or not payload.get("sub"):
        raise rejected
    return payload


def decode_session_user_id(token: str | None) -> str | None:
    """Best-effort user id extraction for logging and rate-limit keys."""
    if not token:
        return None
    try:
        return _decode(token).get("sub")
    except JWTError:
        return None


def session_token_from_request(request) -> str | None:
    """Return the session token from the cookie, or from a Bearer header."""
    settings = get_settings()
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None
