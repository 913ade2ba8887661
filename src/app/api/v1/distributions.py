"""Distribution endpoints; every change re-totals the allocation's returns."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from src.app.api.deps import get_current_user, get_distribution_service, require_permission
from src.app.core.permissions import Action
from src.app.funds.schemas import DistributionCreate, DistributionRead, DistributionUpdate
from src.app.funds.service import DistributionService
from src.app.users.schemas import UserRead

router = APIRouter(prefix="/api/distributions", tags=["distributions"])


@router.get("/allocation/{allocation_id}", response_model=list[DistributionRead])
async def list_distributions(
    allocation_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: DistributionService = Depends(get_distribution_service),
):
    return await service.list_for_allocation(allocation_id)


@router.get("/{distribution_id}", response_model=DistributionRead)
async def get_distribution(
    distribution_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: DistributionService = Depends(get_distribution_service),
):
    return await service.get_distribution(distribution_id)


@router.post("", response_model=DistributionRead, status_code=status.HTTP_201_CREATED)
async def create_distribution(
    body: DistributionCreate,
    current_user: UserRead = Depends(require_permission(Action.create, "distributions")),
    service: DistributionService = Depends(get_distribution_service),
):
    return await service.create(body)


@router.patch("/{distribution_id}", response_model=DistributionRead)
async def update_distribution(
    distribution_id: int,
    body: DistributionUpdate,
    current_user: UserRead = Depends(require_permission(Action.edit, "distributions")),
    service: DistributionService = Depends(get_distribution_service),
):
    return await service.update(distribution_id, body)


@router.delete("/{distribution_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_distribution(
    distribution_id: int,
    current_user: UserRead = Depends(require_permission(Action.delete, "distributions")),
    service: DistributionService = Depends(get_distribution_service),
):
    await service.delete(distribution_id)
