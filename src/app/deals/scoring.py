"""Deal scores, GP alignment, leaderboard and dashboard aggregates.

Pure functions over already-loaded read schemas; the routers cache their
results in Redis.
"""

from __future__ import annotations

import math
from collections import Counter

from pydantic import BaseModel

from src.app.deals.schemas import DealRead, DealStage, DealStarRead, MemoRead, stage_label


class LeaderboardEntry(BaseModel):
    id: int
    name: str
    stage: str
    stage_label: str
    score: int = 0
    star_count: int = 0


class DashboardStats(BaseModel):
    total_deals: int = 0
    active_deals: int = 0
    new_deals: int = 0
    in_ic_review: int = 0
    invested: int = 0
    investment_rate: float = 0.0
    active_pipeline_percentage: float = 0.0
    new_deals_percentage: float = 0.0
    ic_review_percentage: float = 0.0
    total_aum: float = 0.0


class SectorStat(BaseModel):
    sector: str
    count: int
    percentage: float


_INACTIVE_STAGES = {DealStage.CLOSED.value, DealStage.REJECTED.value}
_NEW_STAGES = {DealStage.INITIAL_REVIEW.value, DealStage.SCREENING.value}


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def deal_score(memos: list[MemoRead]) -> int | None:
    """Floor of the mean memo score, or None when nobody has written a memo."""
    if not memos:
        return None
    return math.floor(sum(m.score for m in memos) / len(memos))


def gp_alignment(
    raise_amount: float | None, gp_commitment: float | None
) -> tuple[float | None, int | None]:
    """GP commitment as a percentage of the raise, and its 1-10 alignment score."""
    if not raise_amount or not gp_commitment or raise_amount <= 0 or gp_commitment <= 0:
        return None, None
    pct = gp_commitment / raise_amount * 100
    return pct, min(10, max(1, _round_half_up(pct / 10)))


def _percentage(part: int, total: int) -> float:
    return part / total * 100 if total else 0.0


def build_leaderboard(
    deals: list[DealRead], memos: list[MemoRead], stars: list[DealStarRead]
) -> list[LeaderboardEntry]:
    memos_by_deal: dict[int, list[MemoRead]] = {}
    for memo in memos:
        memos_by_deal.setdefault(memo.deal_id, []).append(memo)
    star_counts = Counter(s.deal_id for s in stars)

    entries = [
        LeaderboardEntry(
            id=deal.id,
            name=deal.name,
            stage=deal.stage,
            stage_label=stage_label(deal.stage),
            score=deal_score(memos_by_deal.get(deal.id, [])) or 0,
            star_count=star_counts.get(deal.id, 0),
        )
        for deal in deals
    ]
    entries.sort(key=lambda e: (e.score, e.star_count), reverse=True)
    return entries


def dashboard_stats(deals: list[DealRead], total_aum: float = 0.0) -> DashboardStats:
    total = len(deals)
    active = sum(1 for d in deals if d.stage not in _INACTIVE_STAGES)
    new = sum(1 for d in deals if d.stage in _NEW_STAGES)
    ic_review = sum(1 for d in deals if d.stage == DealStage.IC_REVIEW.value)
    invested = sum(1 for d in deals if d.stage == DealStage.INVESTED.value)
    return DashboardStats(
        total_deals=total,
        active_deals=active,
        new_deals=new,
        in_ic_review=ic_review,
        invested=invested,
        investment_rate=_percentage(invested, total),
        active_pipeline_percentage=_percentage(active, total),
        new_deals_percentage=_percentage(new, total),
        ic_review_percentage=_percentage(ic_review, total),
        total_aum=total_aum,
    )


def sector_stats(deals: list[DealRead]) -> list[SectorStat]:
    counts = Counter((d.sector or "").strip() or "Other" for d in deals)
    total = len(deals)
    return [
        SectorStat(sector=sector, count=count, percentage=_percentage(count, total))
        for sector, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    ]
