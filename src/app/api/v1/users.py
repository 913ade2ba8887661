"""User profile endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.app.api.deps import get_current_user, get_user_service
from src.app.users.schemas import UserRead, UserUpdate
from src.app.users.service import UserService

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("", response_model=list[UserRead])
async def list_users(
    current_user: UserRead = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    """Admin only."""
    return await service.list_users(current_user)


@router.get("/{user_id}", response_model=UserRead)
async def get_user(
    user_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    return await service.get_profile(current_user, user_id)


@router.patch("/{user_id}", response_model=UserRead)
async def update_user(
    user_id: int,
    body: UserUpdate,
    current_user: UserRead = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    return await service.update_profile(current_user, user_id, body)
