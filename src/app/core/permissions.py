"""Role-based permission matrix.

Actions are view/create/edit/delete; resources are the API areas
(deals, funds, allocations, capital_calls, documents, users, ...).
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    admin = "admin"
    partner = "partner"
    analyst = "analyst"
    observer = "observer"
    intern = "intern"


class Action(str, Enum):
    view = "view"
    create = "create"
    edit = "edit"
    delete = "delete"


ASSIGNMENT_MANAGER_ROLES = frozenset({Role.admin.value, Role.partner.value})


def has_permission(role: str, action: str, resource: str) -> bool:
    """Return True if ``role`` may perform ``action`` on ``resource``."""
    action = Action(action).value
    if role == Role.admin.value:
        return True
    if role == Role.partner.value:
        return not (action == Action.delete.value and resource == "users")
    if role == Role.analyst.value:
        return action != Action.delete.value
    if role == Role.observer.value:
        return action == Action.view.value
    if role == Role.intern.value:
        if action == Action.view.value:
            return True
        return resource == "deals" and action in (Action.create.value, Action.edit.value)
    return False


def can_manage_assignments(role: str) -> bool:
    """Only admins and partners may (un)assign admin or partner users."""
    return role in ASSIGNMENT_MANAGER_ROLES
