"""Authentication API endpoints.

Provides registration, login, logout and current-user lookup. A successful
register/login sets an HttpOnly cookie holding a signed session token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel

from src.app.api.deps import get_current_user, get_user_service
from src.app.config import get_settings
from src.app.core.security import create_session_token
from src.app.users.schemas import UserCreate, UserRead
from src.app.users.service import UserService

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


def _start_session(response: Response, user: UserRead) -> None:
    settings = get_settings()
    token = create_session_token(
        {"sub": str(user.id), "username": user.username, "role": user.role}
    )
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def register(
    body: UserCreate,
    response: Response,
    service: UserService = Depends(get_user_service),
):
    """Create an account and log it in."""
    user = await service.register(body)
    _start_session(response, user)
    return user


@router.post("/login", response_model=UserRead)
async def login(
    body: LoginRequest,
    response: Response,
    service: UserService = Depends(get_user_service),
):
    user = await service.authenticate(body.username, body.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )
    _start_session(response, user)
    return user


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(get_settings().SESSION_COOKIE_NAME)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=UserRead)
async def me(current_user: UserRead = Depends(get_current_user)):
    return current_user
