"""Fund endpoints: CRUD, metrics, deletion preview and recalculation."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status

from src.app.api.deps import (
    get_current_user,
    get_fund_service,
    invalidate_derived_caches,
    require_permission,
)
from src.app.core.permissions import Action
from src.app.funds.schemas import (
    FundCreate,
    FundDeletionPreview,
    FundDetail,
    FundRead,
    FundSummary,
    FundUpdate,
)
from src.app.funds.service import FundService
from src.app.users.schemas import UserRead

router = APIRouter(prefix="/api/funds", tags=["funds"])


@router.get("", response_model=list[FundSummary])
async def list_funds(
    current_user: UserRead = Depends(get_current_user),
    service: FundService = Depends(get_fund_service),
):
    """Every fund with committed, called and uncalled capital."""
    return await service.list_with_metrics()


@router.get("/{fund_id}", response_model=FundDetail)
async def get_fund(
    fund_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: FundService = Depends(get_fund_service),
):
    return await service.get_detail(fund_id)


@router.post("", response_model=FundRead, status_code=status.HTTP_201_CREATED)
async def create_fund(
    body: FundCreate,
    request: Request,
    current_user: UserRead = Depends(require_permission(Action.create, "funds")),
    service: FundService = Depends(get_fund_service),
):
    fund = await service.create_fund(body)
    await invalidate_derived_caches(request)
    return fund


@router.patch("/{fund_id}", response_model=FundRead)
async def update_fund(
    fund_id: int,
    body: FundUpdate,
    request: Request,
    current_user: UserRead = Depends(require_permission(Action.edit, "funds")),
    service: FundService = Depends(get_fund_service),
):
    fund = await service.update_fund(fund_id, body)
    await invalidate_derived_caches(request)
    return fund


@router.get("/{fund_id}/deletion-preview", response_model=FundDeletionPreview)
async def deletion_preview(
    fund_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: FundService = Depends(get_fund_service),
):
    return await service.deletion_preview(fund_id)


@router.delete("/{fund_id}", response_model=FundDeletionPreview)
async def delete_fund(
    fund_id: int,
    request: Request,
    force: bool = Query(default=False),
    current_user: UserRead = Depends(require_permission(Action.delete, "funds")),
    service: FundService = Depends(get_fund_service),
):
    """409 when the fund still has allocations, unless force=true."""
    deleted = await service.delete_fund(fund_id, force=force)
    await invalidate_derived_caches(request)
    return deleted


@router.post("/{fund_id}/recalculate", response_model=FundDetail)
async def recalculate_fund(
    fund_id: int,
    request: Request,
    current_user: UserRead = Depends(require_permission(Action.edit, "funds")),
    service: FundService = Depends(get_fund_service),
):
    detail = await service.recalculate(fund_id)
    await invalidate_derived_caches(request)
    return detail
