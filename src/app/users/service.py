"""User registration, authentication, and profile access rules."""

from __future__ import annotations

from typing import Any

import structlog

from src.app.core.permissions import Role
from src.app.core.security import hash_password, verify_password
from src.app.errors import ConflictError, NotFoundError, PermissionDeniedError
from src.app.users.schemas import UserCreate, UserRead, UserUpdate, make_initials

logger = structlog.get_logger(__name__)


class UserService:
    """Wraps a UserRepository with the account and profile rules.

    - usernames and emails are unique (409 on conflict)
    - only admins list users or touch other users' profiles
    - only admins change roles; self-registration always yields an analyst
    - a new full_name regenerates initials
    """

    def __init__(self, repository: Any) -> None:
        self._repo = repository

    async def register(self, data: UserCreate) -> UserRead:
        """Self-service sign-up. Always creates an analyst; admins promote later."""
        if await self._repo.get_user_by_username(data.username):
            raise ConflictError("Username already exists")
        if await self._repo.get_user_by_email(data.email):
            raise ConflictError("Email already exists")
        if data.role != Role.analyst:
            logger.info("auth.register_role_ignored", username=data.username, requested=data.role.value)
            data = data.model_copy(update={"role": Role.analyst})
        return await self._repo.create_user(data, hash_password(data.password))

    async def authenticate(self, username: str, password: str) -> UserRead | None:
        """Return the user when the credentials match, else None."""
        credentials = await self._repo.get_credentials(username)
        if credentials is None:
            logger.info("auth.unknown_user", username=username)
            return None
        user, hashed = credentials
        if not verify_password(password, hashed):
            logger.info("auth.bad_password", user_id=user.id)
            return None
        return user

    async def list_users(self, actor: UserRead) -> list[UserRead]:
        if actor.role != Role.admin.value:
            raise PermissionDeniedError("Only administrators can list users")
        return await self._repo.list_users()

    async def get_profile(self, actor: UserRead, user_id: int) -> UserRead:
        self._check_self_or_admin(actor, user_id)
        user = await self._repo.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def update_profile(self, actor: UserRead, user_id: int, data: UserUpdate) -> UserRead:
        self._check_self_or_admin(actor, user_id)
        if data.role is not None and actor.role != Role.admin.value:
            raise PermissionDeniedError("Only administrators can change roles")

        values: dict[str, Any] = {}
        if data.full_name is not None:
            values["full_name"] = data.full_name
            values["initials"] = make_initials(data.full_name)
        if data.email is not None:
            existing = await self._repo.get_user_by_email(data.email)
            if existing and existing.id != user_id:
                raise ConflictError("Email already exists")
            values["email"] = data.email
        if data.avatar_color is not None:
            values["avatar_color"] = data.avatar_color
        if data.password is not None:
            values["hashed_password"] = hash_password(data.password)
        if data.role is not None:
            values["role"] = data.role.value

        user = await self._repo.update_user(user_id, values)
        if user is None:
            raise NotFoundError("User not found")
        logger.info("user.updated", user_id=user_id, fields=sorted(values))
        return user

    @staticmethod
    def _check_self_or_admin(actor: UserRead, user_id: int) -> None:
        if actor.id != user_id and actor.role != Role.admin.value:
            raise PermissionDeniedError("You can only access your own profile")
