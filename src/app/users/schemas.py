"""Pydantic schemas for users and notifications."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from src.app.core.permissions import Role


class NotificationType(str, Enum):
    deal = "deal"
    memo = "memo"
    assignment = "assignment"
    system = "system"


def make_initials(full_name: str) -> str:
    """First letter of each name part, upper-cased, at most two letters."""
    parts = [p for p in full_name.split() if p]
    return "".join(p[0] for p in parts).upper()[:2]


# ── Users ───────────────────────────────────────────────────────────────────


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    password: str = Field(min_length=6)
    full_name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    role: Role = Role.analyst
    avatar_color: str | None = "#0E4DA4"


class UserUpdate(BaseModel):
    """Fields a user may change on a profile (role only via admin)."""

    full_name: str | None = Field(default=None, min_length=1, max_length=200)
    email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+$")
    avatar_color: str | None = None
    password: str | None = Field(default=None, min_length=6)
    role: Role | None = None


class UserRead(BaseModel):
    """User as exposed to the rest of the application (never the hash)."""

    id: int
    username: str
    full_name: str
    initials: str
    email: str
    role: str
    avatar_color: str | None = None
    last_active: datetime | None = None
    created_at: datetime | None = None


# ── Notifications ───────────────────────────────────────────────────────────


class NotificationCreate(BaseModel):
    user_id: int
    title: str = Field(min_length=1, max_length=300)
    message: str = Field(min_length=1)
    type: NotificationType = NotificationType.system
    related_id: int | None = None


class NotificationRead(BaseModel):
    id: int
    user_id: int
    title: str
    message: str
    type: str
    related_id: int | None = None
    is_read: bool = False
    created_at: datetime | None = None
