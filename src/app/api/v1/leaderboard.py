"""Deal leaderboard: deals ranked by memo score, then stars.

The ranking is cached in Redis under the ``leaderboard`` namespace and
dropped whenever deals, memos or stars change.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from src.app.api.deps import get_cache, get_current_user, get_deal_repository
from src.app.deals.scoring import LeaderboardEntry, build_leaderboard
from src.app.users.schemas import UserRead

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])

_CACHE_NAMESPACE = "leaderboard"


@router.get("", response_model=list[LeaderboardEntry])
async def get_leaderboard(
    request: Request,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_deal_repository),
):
    cache = get_cache(request)
    if cache is not None:
        cached = await cache.get_json(_CACHE_NAMESPACE, "all")
        if cached is not None:
            return [LeaderboardEntry.model_validate(e) for e in cached]

    entries = build_leaderboard(
        await repo.list_deals(), await repo.list_memos(), await repo.list_stars()
    )
    if cache is not None:
        await cache.set_json(_CACHE_NAMESPACE, "all", [e.model_dump() for e in entries])
    return entries
