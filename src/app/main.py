"""FastAPI application factory.

Creates the app with rate limiting, logging and metrics middleware, CORS,
Sentry, domain exception handlers, lifespan events for database and
repository initialization, and the API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.app.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.app.api.middleware.rate_limit import RateLimitMiddleware
from src.app.api.v1.router import router as api_router
from src.app.config import get_settings
from src.app.core.database import close_db, get_session, init_db
from src.app.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.app.core.redis import close_redis, get_response_cache
from src.app.deals.repository import DealRepository
from src.app.errors import register_exception_handlers
from src.app.funds.repository import FundRepository
from src.app.users.repository import NotificationRepository, UserRepository


def _attach_repositories(app: FastAPI) -> None:
    """Hang one repository per aggregate off app.state for the request deps."""
    app.state.user_repository = UserRepository(session_factory=get_session)
    app.state.notification_repository = NotificationRepository(session_factory=get_session)
    app.state.deal_repository = DealRepository(session_factory=get_session)
    app.state.fund_repository = FundRepository(session_factory=get_session)
    app.state.response_cache = get_response_cache()


def _cors_origins(raw: str) -> list[str]:
    if raw.strip() == "*":
        return ["*"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and repositories; close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT.value,
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        )

    _attach_repositories(app)
    log.info("app.started", environment=settings.ENVIRONMENT.value)

    yield

    await close_redis()
    await close_db()
    log.info("app.stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Dealflow API",
        version="0.1.0",
        description="Deal pipeline, fund allocation and capital call tracking",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    if settings.RATE_LIMIT_ENABLED:
        app.add_middleware(RateLimitMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings.CORS_ALLOWED_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(LoggingMiddleware)

    # Outermost, so rate-limited and failed requests are counted too
    app.add_middleware(MetricsMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/metrics", include_in_schema=False)
    async def prometheus_scrape(request: Request) -> Response:
        return get_metrics_response()

    return app


app = create_app()
