"""Allocation endpoints.

Creating an allocation also moves its deal to ``invested``, generates the
requested capital calls and refreshes the fund's statuses, weights and
AUM (see AllocationService.create_allocation).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from src.app.api.deps import (
    get_allocation_service,
    get_current_user,
    get_fund_repository,
    invalidate_derived_caches,
    require_permission,
)
from src.app.core.permissions import Action
from src.app.funds.schemas import (
    AllocationCreate,
    AllocationMetrics,
    AllocationPayment,
    AllocationPaymentResult,
    AllocationRead,
    AllocationUpdate,
)
from src.app.funds.service import AllocationService
from src.app.users.schemas import UserRead

router = APIRouter(prefix="/api/allocations", tags=["allocations"])


@router.post("", response_model=AllocationRead, status_code=status.HTTP_201_CREATED)
async def create_allocation(
    body: AllocationCreate,
    request: Request,
    current_user: UserRead = Depends(require_permission(Action.create, "allocations")),
    service: AllocationService = Depends(get_allocation_service),
):
    allocation = await service.create_allocation(body, current_user)
    await invalidate_derived_caches(request)
    return allocation


@router.get("/fund/{fund_id}", response_model=list[AllocationRead])
async def list_fund_allocations(
    fund_id: int,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_fund_repository),
):
    return await repo.list_allocations(fund_id=fund_id)


@router.get("/deal/{deal_id}", response_model=list[AllocationRead])
async def list_deal_allocations(
    deal_id: int,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_fund_repository),
):
    return await repo.list_allocations(deal_id=deal_id)


@router.get("/{allocation_id}", response_model=AllocationRead)
async def get_allocation(
    allocation_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: AllocationService = Depends(get_allocation_service),
):
    return await service.get_allocation(allocation_id)


@router.patch("/{allocation_id}", response_model=AllocationRead)
async def update_allocation(
    allocation_id: int,
    body: AllocationUpdate,
    request: Request,
    current_user: UserRead = Depends(require_permission(Action.edit, "allocations")),
    service: AllocationService = Depends(get_allocation_service),
):
    allocation = await service.update_allocation(allocation_id, body)
    await invalidate_derived_caches(request)
    return allocation


@router.delete("/{allocation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_allocation(
    allocation_id: int,
    request: Request,
    current_user: UserRead = Depends(require_permission(Action.delete, "allocations")),
    service: AllocationService = Depends(get_allocation_service),
):
    await service.delete_allocation(allocation_id, current_user)
    await invalidate_derived_caches(request)


@router.patch("/{allocation_id}/payment", response_model=AllocationPaymentResult)
async def apply_payment(
    allocation_id: int,
    body: AllocationPayment,
    request: Request,
    current_user: UserRead = Depends(require_permission(Action.edit, "allocations")),
    service: AllocationService = Depends(get_allocation_service),
):
    result = await service.apply_payment(allocation_id, body, current_user)
    await invalidate_derived_caches(request)
    return result


@router.get("/{allocation_id}/metrics", response_model=AllocationMetrics)
async def allocation_metrics(
    allocation_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: AllocationService = Depends(get_allocation_service),
):
    return await service.get_metrics(allocation_id)
