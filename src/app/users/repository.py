"""User and notification repositories -- async CRUD over the users schema.

Both repositories take a session_factory callable (an async generator of
AsyncSession) and return Pydantic read schemas, never ORM instances.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.users.models import NotificationModel, UserModel
from src.app.users.schemas import (
    NotificationCreate,
    NotificationRead,
    UserCreate,
    UserRead,
    make_initials,
)

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_user(model: UserModel) -> UserRead:
    return UserRead(
        id=model.id,
        username=model.username,
        full_name=model.full_name,
        initials=model.initials,
        email=model.email,
        role=model.role,
        avatar_color=model.avatar_color,
        last_active=model.last_active,
        created_at=model.created_at,
    )


def _model_to_notification(model: NotificationModel) -> NotificationRead:
    return NotificationRead(
        id=model.id,
        user_id=model.user_id,
        title=model.title,
        message=model.message,
        type=model.type,
        related_id=model.related_id,
        is_read=bool(model.is_read),
        created_at=model.created_at,
    )


# ── Users ───────────────────────────────────────────────────────────────────


class UserRepository:
    """Async CRUD for users.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def create_user(self, data: UserCreate, hashed_password: str) -> UserRead:
        async for session in self._session_factory():
            model = UserModel(
                username=data.username,
                hashed_password=hashed_password,
                full_name=data.full_name,
                initials=make_initials(data.full_name),
                email=data.email,
                role=data.role.value,
                avatar_color=data.avatar_color,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("user.created", user_id=model.id, role=model.role)
            return _model_to_user(model)

    async def get_user(self, user_id: int) -> UserRead | None:
        async for session in self._session_factory():
            model = await session.get(UserModel, user_id)
            return _model_to_user(model) if model else None

    async def get_user_by_username(self, username: str) -> UserRead | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(UserModel).where(UserModel.username == username)
            )
            model = result.scalar_one_or_none()
            return _model_to_user(model) if model else None

    async def get_user_by_email(self, email: str) -> UserRead | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(UserModel).where(UserModel.email == email)
            )
            model = result.scalar_one_or_none()
            return _model_to_user(model) if model else None

    async def get_credentials(self, username: str) -> tuple[UserRead, str] | None:
        """Return the user and password hash for login, or None."""
        async for session in self._session_factory():
            result = await session.execute(
                select(UserModel).where(UserModel.username == username)
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_user(model), model.hashed_password

    async def list_users(self) -> list[UserRead]:
        async for session in self._session_factory():
            result = await session.execute(select(UserModel).order_by(UserModel.id))
            return [_model_to_user(m) for m in result.scalars().all()]

    async def update_user(self, user_id: int, values: dict[str, Any]) -> UserRead | None:
        """Apply column values to a user. Unknown keys are ignored."""
        async for session in self._session_factory():
            model = await session.get(UserModel, user_id)
            if model is None:
                return None
            for key, value in values.items():
                if hasattr(model, key):
                    setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_user(model)

    async def touch_last_active(self, user_id: int) -> None:
        async for session in self._session_factory():
            await session.execute(
                update(UserModel)
                .where(UserModel.id == user_id)
                .values(last_active=datetime.now(timezone.utc))
            )
            await session.commit()


# ── Notifications ───────────────────────────────────────────────────────────


class NotificationRepository:
    """Async CRUD for user notifications."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def create_notification(self, data: NotificationCreate) -> NotificationRead:
        async for session in self._session_factory():
            model = NotificationModel(
                user_id=data.user_id,
                title=data.title,
                message=data.message,
                type=data.type.value,
                related_id=data.related_id,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_notification(model)

    async def get_notification(self, notification_id: int) -> NotificationRead | None:
        async for session in self._session_factory():
            model = await session.get(NotificationModel, notification_id)
            return _model_to_notification(model) if model else None

    async def list_notifications(self, user_id: int) -> list[NotificationRead]:
        """Notifications for a user, newest first."""
        async for session in self._session_factory():
            result = await session.execute(
                select(NotificationModel)
                .where(NotificationModel.user_id == user_id)
                .order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
            )
            return [_model_to_notification(m) for m in result.scalars().all()]

    async def count_unread(self, user_id: int) -> int:
        async for session in self._session_factory():
            result = await session.execute(
                select(func.count(NotificationModel.id)).where(
                    NotificationModel.user_id == user_id,
                    NotificationModel.is_read == False,  # noqa: E712
                )
            )
            return int(result.scalar_one())

    async def mark_read(self, notification_id: int) -> NotificationRead | None:
        async for session in self._session_factory():
            model = await session.get(NotificationModel, notification_id)
            if model is None:
                return None
            model.is_read = True
            await session.commit()
            await session.refresh(model)
            return _model_to_notification(model)

    async def mark_all_read(self, user_id: int) -> int:
        """Mark every unread notification of a user as read. Returns count."""
        async for session in self._session_factory():
            result = await session.execute(
                update(NotificationModel)
                .where(
                    NotificationModel.user_id == user_id,
                    NotificationModel.is_read == False,  # noqa: E712
                )
                .values(is_read=True)
            )
            await session.commit()
            return result.rowcount or 0
