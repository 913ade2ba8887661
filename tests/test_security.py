"""Password hashing and signed session tokens."""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import HTTPException
from jose import jwt
from starlette.requests import Request

from src.app.config import get_settings
from src.app.core.security import (
    create_session_token,
    decode_session_user_id,
    hash_password,
    session_token_from_request,
    verify_password,
    verify_session_token,
)


def _request(headers: dict[str, str]) -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        }
    )


# ── Passwords ───────────────────────────────────────────────────────────────


def test_password_hash_roundtrip():
    hashed = hash_password("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong-pass", hashed)


# ── Session Tokens ──────────────────────────────────────────────────────────


def test_session_token_carries_claims():
    token = create_session_token({"sub": "7", "username": "ana", "role": "analyst"})
    payload = verify_session_token(token)
    assert payload["sub"] == "7"
    assert payload["role"] == "analyst"
    assert payload["type"] == "session"


def test_expired_token_rejected():
    token = create_session_token({"sub": "7"}, expires_delta=timedelta(seconds=-5))
    with pytest.raises(HTTPException) as exc_info:
        verify_session_token(token)
    assert exc_info.value.status_code == 401


def test_wrong_token_type_rejected():
    settings = get_settings()
    token = jwt.encode(
        {"sub": "7", "type": "refresh"},
        settings.SESSION_SECRET_KEY,
        algorithm=settings.SESSION_ALGORITHM,
    )
    with pytest.raises(HTTPException):
        verify_session_token(token)


def test_token_signed_with_other_key_rejected():
    token = jwt.encode({"sub": "7", "type": "session"}, "other-key", algorithm="HS256")
    with pytest.raises(HTTPException):
        verify_session_token(token)
    assert decode_session_user_id(token) is None


def test_decode_session_user_id():
    assert decode_session_user_id(None) is None
    assert decode_session_user_id("not-a-token") is None
    assert decode_session_user_id(create_session_token({"sub": "12"})) == "12"


# ── Token Extraction ────────────────────────────────────────────────────────


def test_token_from_cookie_preferred_over_header():
    name = get_settings().SESSION_COOKIE_NAME
    request = _request({"Cookie": f"{name}=cookie-token", "Authorization": "Bearer header-token"})
    assert session_token_from_request(request) == "cookie-token"


def test_token_from_bearer_header():
    assert session_token_from_request(_request({"Authorization": "Bearer abc"})) == "abc"
    assert session_token_from_request(_request({"Authorization": "Basic abc"})) is None
    assert session_token_from_request(_request({})) is None
