"""REST API endpoints for the deal pipeline.

Provides deal CRUD plus the per-deal timeline, stars, memos, memo
comments, assignments and allocation listing. All endpoints require an
authenticated user; writes that feed the dashboard or leaderboard drop
those caches.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field

from src.app.api.deps import (
    get_allocation_service,
    get_current_user,
    get_deal_service,
    get_fund_repository,
    invalidate_derived_caches,
    require_permission,
)
from src.app.core.permissions import Action
from src.app.deals.schemas import (
    DealCreate,
    DealDetail,
    DealRead,
    DealStage,
    DealUpdate,
    MemoCommentCreate,
    MemoCommentRead,
    MemoCreate,
    MemoRead,
    MemoUpdate,
    TimelineEventRead,
    stage_label,
)
from src.app.deals.service import DealService
from src.app.funds.schemas import AllocationRead
from src.app.funds.service import AllocationService
from src.app.users.schemas import UserRead

router = APIRouter(prefix="/api/deals", tags=["deals"])


# ── Request / Response Schemas ──────────────────────────────────────────────


class DealListItem(DealRead):
    stage_label: str = ""


class NoteRequest(BaseModel):
    content: str = Field(min_length=1)


class AssignmentRequest(BaseModel):
    user_id: int


class StarResponse(BaseModel):
    deal_id: int
    starred: bool
    changed: bool


def _list_item(deal: DealRead) -> DealListItem:
    return DealListItem(**deal.model_dump(), stage_label=stage_label(deal.stage))


# ── Deals ───────────────────────────────────────────────────────────────────


@router.get("", response_model=list[DealListItem])
async def list_deals(
    stage: DealStage | None = Query(default=None),
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    """List deals, optionally filtered by stage."""
    deals = await service.list_deals(stage)
    return [_list_item(d) for d in deals]


@router.get("/{deal_id}", response_model=DealDetail)
async def get_deal(
    deal_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    return await service.get_detail(deal_id, viewer=current_user)


@router.post("", response_model=DealRead, status_code=status.HTTP_201_CREATED)
async def create_deal(
    body: DealCreate,
    request: Request,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    """POST /api/deals -> 201; creator is auto-assigned."""
    deal = await service.create_deal(body, current_user)
    await invalidate_derived_caches(request)
    return deal


@router.patch("/{deal_id}", response_model=DealRead)
async def update_deal(
    deal_id: int,
    body: DealUpdate,
    request: Request,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    deal = await service.update_deal(deal_id, body, current_user)
    await invalidate_derived_caches(request)
    return deal


@router.delete("/{deal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_deal(
    deal_id: int,
    request: Request,
    current_user: UserRead = Depends(require_permission(Action.delete, "deals")),
    service: DealService = Depends(get_deal_service),
    allocations: AllocationService = Depends(get_allocation_service),
):
    await service.get_deal(deal_id)
    await allocations.release_deal(deal_id)
    await service.delete_deal(deal_id, current_user)
    await invalidate_derived_caches(request)


# ── Timeline ────────────────────────────────────────────────────────────────


@router.get("/{deal_id}/timeline", response_model=list[TimelineEventRead])
async def get_timeline(
    deal_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    return await service.list_timeline(deal_id)


@router.post(
    "/{deal_id}/timeline",
    response_model=TimelineEventRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_note(
    deal_id: int,
    body: NoteRequest,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    return await service.add_note(deal_id, body.content, current_user)


# ── Stars ───────────────────────────────────────────────────────────────────


@router.post("/{deal_id}/star", response_model=StarResponse)
async def star_deal(
    deal_id: int,
    request: Request,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    changed = await service.star(deal_id, current_user)
    if changed:
        await invalidate_derived_caches(request)
    return StarResponse(deal_id=deal_id, starred=True, changed=changed)


@router.delete("/{deal_id}/star", response_model=StarResponse)
async def unstar_deal(
    deal_id: int,
    request: Request,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    changed = await service.unstar(deal_id, current_user)
    if changed:
        await invalidate_derived_caches(request)
    return StarResponse(deal_id=deal_id, starred=False, changed=changed)


# ── Memos ───────────────────────────────────────────────────────────────────


@router.get("/{deal_id}/memos", response_model=list[MemoRead])
async def list_memos(
    deal_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    return await service.list_memos(deal_id)


@router.post("/{deal_id}/memos", response_model=MemoRead, status_code=status.HTTP_201_CREATED)
async def create_memo(
    deal_id: int,
    body: MemoCreate,
    request: Request,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    memo = await service.create_memo(deal_id, body, current_user)
    await invalidate_derived_caches(request)
    return memo


@router.patch("/{deal_id}/memos/{memo_id}", response_model=MemoRead)
async def update_memo(
    deal_id: int,
    memo_id: int,
    body: MemoUpdate,
    request: Request,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    memo = await service.update_memo(deal_id, memo_id, body, current_user)
    await invalidate_derived_caches(request)
    return memo


@router.get("/{deal_id}/memos/{memo_id}/comments", response_model=list[MemoCommentRead])
async def list_comments(
    deal_id: int,
    memo_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    return await service.list_comments(deal_id, memo_id)


@router.post(
    "/{deal_id}/memos/{memo_id}/comments",
    response_model=MemoCommentRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    deal_id: int,
    memo_id: int,
    body: MemoCommentCreate,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    return await service.add_comment(deal_id, memo_id, body.text, current_user)


# ── Assignments ─────────────────────────────────────────────────────────────


@router.get("/{deal_id}/assignments", response_model=list[UserRead])
async def list_assignments(
    deal_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    return await service.list_assignees(deal_id)


@router.post(
    "/{deal_id}/assignments",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
)
async def assign_user(
    deal_id: int,
    body: AssignmentRequest,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    return await service.assign(deal_id, body.user_id, current_user)


@router.delete("/{deal_id}/assignments/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unassign_user(
    deal_id: int,
    user_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
):
    await service.unassign(deal_id, user_id, current_user)


# ── Allocations ─────────────────────────────────────────────────────────────


@router.get("/{deal_id}/allocations", response_model=list[AllocationRead])
async def list_deal_allocations(
    deal_id: int,
    current_user: UserRead = Depends(get_current_user),
    service: DealService = Depends(get_deal_service),
    fund_repo=Depends(get_fund_repository),
):
    await service.get_deal(deal_id)
    return await fund_repo.list_allocations(deal_id=deal_id)
