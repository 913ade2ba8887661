"""Closing schedule endpoints (first/second/final close, extensions)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from src.app.api.deps import (
    get_current_user,
    get_deal_repository,
    get_deal_service,
    require_permission,
)
from src.app.core.permissions import Action
from src.app.deals.schemas import ClosingEventCreate, ClosingEventRead, ClosingEventUpdate
from src.app.deals.service import DealService
from src.app.users.schemas import UserRead

router = APIRouter(prefix="/api/closing-schedules", tags=["closing-schedules"])


@router.get("/deal/{deal_id}", response_model=list[ClosingEventRead])
async def list_closing_events(
    deal_id: int,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_deal_repository),
):
    return await repo.list_closing_events(deal_id=deal_id)


@router.get("/{event_id}", response_model=ClosingEventRead)
async def get_closing_event(
    event_id: int,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_deal_repository),
):
    event = await repo.get_closing_event(event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Closing event not found")
    return event


@router.post("", response_model=ClosingEventRead, status_code=status.HTTP_201_CREATED)
async def create_closing_event(
    body: ClosingEventCreate,
    current_user: UserRead = Depends(require_permission(Action.create, "closing_schedules")),
    service: DealService = Depends(get_deal_service),
):
    return await service.create_closing_event(body, current_user)


@router.patch("/{event_id}", response_model=ClosingEventRead)
async def update_closing_event(
    event_id: int,
    body: ClosingEventUpdate,
    current_user: UserRead = Depends(require_permission(Action.edit, "closing_schedules")),
    service: DealService = Depends(get_deal_service),
):
    """Marking an event completed without an actual_date stamps it now."""
    return await service.update_closing_event(event_id, body)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_closing_event(
    event_id: int,
    current_user: UserRead = Depends(require_permission(Action.delete, "closing_schedules")),
    repo=Depends(get_deal_repository),
):
    if not await repo.delete_closing_event(event_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Closing event not found")
