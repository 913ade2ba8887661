"""Dashboard aggregates (pipeline stats and sector breakdown), cached."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from src.app.api.deps import get_cache, get_current_user, get_deal_repository, get_fund_repository
from src.app.deals.scoring import DashboardStats, SectorStat, dashboard_stats, sector_stats
from src.app.users.schemas import UserRead

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

_CACHE_NAMESPACE = "dashboard"


@router.get("/stats", response_model=DashboardStats)
async def get_stats(
    request: Request,
    current_user: UserRead = Depends(get_current_user),
    deal_repo=Depends(get_deal_repository),
    fund_repo=Depends(get_fund_repository),
):
    cache = get_cache(request)
    if cache is not None:
        cached = await cache.get_json(_CACHE_NAMESPACE, "stats")
        if cached is not None:
            return DashboardStats.model_validate(cached)

    funds = await fund_repo.list_funds()
    stats = dashboard_stats(await deal_repo.list_deals(), sum(f.aum for f in funds))
    if cache is not None:
        await cache.set_json(_CACHE_NAMESPACE, "stats", stats.model_dump())
    return stats


@router.get("/sector-stats", response_model=list[SectorStat])
async def get_sector_stats(
    request: Request,
    current_user: UserRead = Depends(get_current_user),
    deal_repo=Depends(get_deal_repository),
):
    cache = get_cache(request)
    if cache is not None:
        cached = await cache.get_json(_CACHE_NAMESPACE, "sectors")
        if cached is not None:
            return [SectorStat.model_validate(s) for s in cached]

    stats = sector_stats(await deal_repo.list_deals())
    if cache is not None:
        await cache.set_json(_CACHE_NAMESPACE, "sectors", [s.model_dump() for s in stats])
    return stats
