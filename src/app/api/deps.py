"""FastAPI dependency injection for authentication and domain services.

Repositories are created once in the application lifespan and stored on
``app.state``; the helpers below assemble the domain services from them
per request. A missing repository means the app was not initialized and
yields 503.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import Depends, HTTPException, Request, status

from src.app.core.permissions import Action, has_permission
from src.app.core.security import session_token_from_request, verify_session_token
from src.app.deals.service import DealService
from src.app.funds.allocation_status import AllocationStatusService
from src.app.funds.capital_calls import CapitalCallService
from src.app.funds.service import AllocationService, DistributionService, FundService
from src.app.users.schemas import UserRead
from src.app.users.service import UserService

logger = structlog.get_logger(__name__)

# Cache namespaces derived from deals, memos, stars, funds and allocations.
DERIVED_CACHE_NAMESPACES = ("dashboard", "leaderboard")


def _require_state(request: Request, attr: str, label: str) -> Any:
    """Retrieve a component from app.state, 503 if not available."""
    component = getattr(request.app.state, attr, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return component


def get_user_repository(request: Request) -> Any:
    return _require_state(request, "user_repository", "User management")


def get_notification_repository(request: Request) -> Any:
    return _require_state(request, "notification_repository", "Notifications")


def get_deal_repository(request: Request) -> Any:
    return _require_state(request, "deal_repository", "Deal management")


def get_fund_repository(request: Request) -> Any:
    return _require_state(request, "fund_repository", "Fund management")


# ── Authentication ──────────────────────────────────────────────────────────


async def get_current_user(request: Request) -> UserRead:
    """Resolve the user behind the session cookie (or Bearer token).

    Raises:
        HTTPException(401): No token, an invalid token, or an unknown user.
    """
    token = session_token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    payload = verify_session_token(token)

    repo = get_user_repository(request)
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    user = await repo.get_user(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    await repo.touch_last_active(user.id)
    request.state.user_id = user.id
    return user


def require_permission(action: Action, resource: str):
    """Dependency factory: 403 unless the current user's role allows it."""

    async def _check(user: UserRead = Depends(get_current_user)) -> UserRead:
        if not has_permission(user.role, action.value, resource):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions to {action.value} {resource}",
            )
        return user

    return _check


# ── Services ────────────────────────────────────────────────────────────────


def get_user_service(request: Request) -> UserService:
    return UserService(get_user_repository(request))


def get_deal_service(request: Request) -> DealService:
    return DealService(
        get_deal_repository(request),
        get_user_repository(request),
        get_notification_repository(request),
    )


def get_allocation_status_service(request: Request) -> AllocationStatusService:
    return AllocationStatusService(get_fund_repository(request))


def get_capital_call_service(request: Request) -> CapitalCallService:
    repo = get_fund_repository(request)
    return CapitalCallService(repo, AllocationStatusService(repo))


def get_fund_service(request: Request) -> FundService:
    repo = get_fund_repository(request)
    return FundService(repo, AllocationStatusService(repo))


def get_allocation_service(request: Request) -> AllocationService:
    repo = get_fund_repository(request)
    status_service = AllocationStatusService(repo)
    return AllocationService(
        repo,
        get_deal_service(request),
        CapitalCallService(repo, status_service),
        status_service,
    )


def get_distribution_service(request: Request) -> DistributionService:
    return DistributionService(get_fund_repository(request))


# ── Cache ───────────────────────────────────────────────────────────────────


def get_cache(request: Request) -> Any | None:
    """ResponseCache from app.state, or None when caching is not set up."""
    return getattr(request.app.state, "response_cache", None)


async def invalidate_derived_caches(request: Request) -> None:
    cache = get_cache(request)
    if cache is not None:
        await cache.invalidate(*DERIVED_CACHE_NAMESPACES)
