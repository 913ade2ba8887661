"""Async SQLAlchemy engine, declarative base, and session factory.

Provides:
- Base: Declarative base for every persisted model
- get_session(): Async generator yielding an AsyncSession (repository session_factory)
- init_db() / close_db(): lifespan hooks
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.app.config import get_settings

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Build the pooled engine on first use; later calls share it."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=20,
            max_overflow=10,
            pool_pre_ping=True,
            echo=False,
        )
    return _engine


# ── Declarative Base ────────────────────────────────────────────────────────


class Base(DeclarativeBase):
    """Every table (users, deals, funds and their children) hangs off this metadata."""


# ── Session Factory ─────────────────────────────────────────────────────────


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession bound to the shared engine."""
    engine = get_engine()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db() -> None:
    """Create all tables that don't exist yet.

    Alembic owns schema changes in deployed environments; this only
    bootstraps empty development databases.
    """
    # Register every model on Base.metadata before create_all
    import src.app.deals.models  # noqa: F401
    import src.app.funds.models  # noqa: F401
    import src.app.users.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Drop pooled connections so a later get_engine() starts fresh."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
