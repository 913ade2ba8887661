"""Capital call endpoints: listing, calendar, manual creation, status and
date changes, and payments."""

from __future__ import annotations

from datetime import date, datetime, time, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel

from src.app.api.deps import (
    get_capital_call_service,
    get_current_user,
    get_fund_repository,
    invalidate_derived_caches,
    require_permission,
)
from src.app.core.permissions import Action
from src.app.funds.capital_calls import CapitalCallService, summarize_capital_calls
from src.app.funds.schemas import (
    CapitalCallCreate,
    CapitalCallDatesUpdate,
    CapitalCallRead,
    CapitalCallStatusUpdate,
    CapitalCallSummary,
    PaymentCreate,
    PaymentRead,
)
from src.app.users.schemas import UserRead

router = APIRouter(prefix="/api/capital-calls", tags=["capital-calls"])


class PaymentResponse(BaseModel):
    capital_call: CapitalCallRead
    payment: PaymentRead


@router.get("", response_model=list[CapitalCallRead])
async def list_capital_calls(
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_fund_repository),
):
    return await repo.list_capital_calls()


@router.get("/calendar", response_model=list[CapitalCallRead])
async def capital_call_calendar(
    start_date: date = Query(...),
    end_date: date = Query(...),
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_fund_repository),
):
    """Calls whose due date falls within [start_date, end_date]."""
    if end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_date must not be before start_date",
        )
    return await repo.list_capital_calls(
        due_from=datetime.combine(start_date, time.min, tzinfo=timezone.utc),
        due_to=datetime.combine(end_date, time.max, tzinfo=timezone.utc),
    )


@router.get("/allocation/{allocation_id}", response_model=list[CapitalCallRead])
async def list_allocation_calls(
    allocation_id: int,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_fund_repository),
):
    return await repo.list_capital_calls(allocation_ids=[allocation_id])


@router.get("/allocation/{allocation_id}/summary", response_model=CapitalCallSummary)
async def allocation_call_summary(
    allocation_id: int,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_fund_repository),
):
    return summarize_capital_calls(await repo.list_capital_calls(allocation_ids=[allocation_id]))


@router.get("/deal/{deal_id}", response_model=list[CapitalCallRead])
async def list_deal_calls(
    deal_id: int,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_fund_repository),
):
    allocations = await repo.list_allocations(deal_id=deal_id)
    return await repo.list_capital_calls(allocation_ids=[a.id for a in allocations])


@router.get("/fund/{fund_id}", response_model=list[CapitalCallRead])
async def list_fund_calls(
    fund_id: int,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_fund_repository),
):
    allocations = await repo.list_allocations(fund_id=fund_id)
    return await repo.list_capital_calls(allocation_ids=[a.id for a in allocations])


@router.get("/{capital_call_id}", response_model=CapitalCallRead)
async def get_capital_call(
    capital_call_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: CapitalCallService = Depends(get_capital_call_service),
):
    return await service.get_call(capital_call_id)


@router.post("", response_model=CapitalCallRead, status_code=status.HTTP_201_CREATED)
async def create_capital_call(
    body: CapitalCallCreate,
    request: Request,
    current_user: UserRead = Depends(require_permission(Action.create, "capital_calls")),
    service: CapitalCallService = Depends(get_capital_call_service),
):
    call = await service.create_manual(body)
    await invalidate_derived_caches(request)
    return call


@router.patch("/{capital_call_id}/status", response_model=CapitalCallRead)
async def update_status(
    capital_call_id: int,
    body: CapitalCallStatusUpdate,
    request: Request,
    current_user: UserRead = Depends(require_permission(Action.edit, "capital_calls")),
    service: CapitalCallService = Depends(get_capital_call_service),
):
    call = await service.update_status(capital_call_id, body)
    await invalidate_derived_caches(request)
    return call


@router.patch("/{capital_call_id}/dates", response_model=CapitalCallRead)
async def update_dates(
    capital_call_id: int,
    body: CapitalCallDatesUpdate,
    current_user: UserRead = Depends(require_permission(Action.edit, "capital_calls")),
    service: CapitalCallService = Depends(get_capital_call_service),
):
    return await service.update_dates(capital_call_id, body)


@router.get("/{capital_call_id}/payments", response_model=list[PaymentRead])
async def list_payments(
    capital_call_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: CapitalCallService = Depends(get_capital_call_service),
    repo=Depends(get_fund_repository),
):
    await service.get_call(capital_call_id)
    return await repo.list_payments(capital_call_id)


@router.post(
    "/{capital_call_id}/payments",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_payment(
    capital_call_id: int,
    body: PaymentCreate,
    request: Request,
    current_user: UserRead = Depends(require_permission(Action.edit, "capital_calls")),
    service: CapitalCallService = Depends(get_capital_call_service),
):
    call, payment = await service.add_payment(capital_call_id, body, current_user.id)
    await invalidate_derived_caches(request)
    return PaymentResponse(capital_call=call, payment=payment)


@router.delete("/{capital_call_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_capital_call(
    capital_call_id: int,
    request: Request,
    current_user: UserRead = Depends(require_permission(Action.delete, "capital_calls")),
    service: CapitalCallService = Depends(get_capital_call_service),
):
    await service.delete(capital_call_id)
    await invalidate_derived_caches(request)
