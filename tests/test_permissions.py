"""Role permission matrix."""

from __future__ import annotations

import pytest

from src.app.core.permissions import can_manage_assignments, has_permission


@pytest.mark.parametrize("action", ["view", "create", "edit", "delete"])
def test_admin_can_do_everything(action):
    assert has_permission("admin", action, "users")
    assert has_permission("admin", action, "deals")


def test_partner_cannot_delete_users():
    assert has_permission("partner", "delete", "deals")
    assert has_permission("partner", "edit", "users")
    assert not has_permission("partner", "delete", "users")


def test_analyst_never_deletes():
    assert has_permission("analyst", "create", "funds")
    assert has_permission("analyst", "edit", "capital_calls")
    assert not has_permission("analyst", "delete", "deals")


def test_observer_is_read_only():
    assert has_permission("observer", "view", "funds")
    assert not has_permission("observer", "create", "deals")
    assert not has_permission("observer", "edit", "memos")


def test_intern_may_only_create_and_edit_deals():
    assert has_permission("intern", "view", "funds")
    assert has_permission("intern", "create", "deals")
    assert has_permission("intern", "edit", "deals")
    assert not has_permission("intern", "delete", "deals")
    assert not has_permission("intern", "create", "memos")


def test_unknown_role_has_no_permissions():
    assert not has_permission("visitor", "view", "deals")


def test_unknown_action_is_rejected():
    with pytest.raises(ValueError):
        has_permission("admin", "approve", "deals")


def test_assignment_managers():
    assert can_manage_assignments("admin")
    assert can_manage_assignments("partner")
    assert not can_manage_assignments("analyst")
