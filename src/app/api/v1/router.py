"""V1 API router -- aggregates all endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.app.api.v1 import (
    allocations,
    auth,
    capital_calls,
    closing_schedules,
    dashboard,
    deals,
    distributions,
    documents,
    funds,
    health,
    leaderboard,
    notifications,
    users,
)

router = APIRouter()

router.include_router(health.router)
router.include_router(auth.router)
router.include_router(users.router)
router.include_router(deals.router)
router.include_router(documents.router)
router.include_router(notifications.router)
router.include_router(funds.router)
router.include_router(allocations.router)
router.include_router(capital_calls.router)
router.include_router(distributions.router)
router.include_router(closing_schedules.router)
router.include_router(leaderboard.router)
router.include_router(dashboard.router)
