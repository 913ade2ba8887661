"""Notification endpoints for the current user."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from src.app.api.deps import get_current_user, get_notification_repository
from src.app.users.schemas import NotificationCreate, NotificationRead, UserRead

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    updated: int


@router.get("", response_model=list[NotificationRead])
async def list_notifications(
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_notification_repository),
):
    """Newest first."""
    return await repo.list_notifications(current_user.id)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_notification_repository),
):
    return UnreadCountResponse(count=await repo.count_unread(current_user.id))


@router.patch("/mark-all-read", response_model=MarkAllReadResponse)
async def mark_all_read(
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_notification_repository),
):
    return MarkAllReadResponse(updated=await repo.mark_all_read(current_user.id))


@router.patch("/{notification_id}/read", response_model=NotificationRead)
async def mark_read(
    notification_id: int,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_notification_repository),
):
    notification = await repo.get_notification(notification_id)
    if notification is None or notification.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    return await repo.mark_read(notification_id)


@router.post("", response_model=NotificationRead, status_code=status.HTTP_201_CREATED)
async def create_notification(
    body: NotificationCreate,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_notification_repository),
):
    return await repo.create_notification(body)
