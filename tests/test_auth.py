"""Registration, login, logout and session lookup over the real auth path."""

from __future__ import annotations

from src.app.config import get_settings

REGISTRATION = {
    "username": "jdoe",
    "password": "correct-horse",
    "full_name": "Jane Doe",
    "email": "jane@example.com",
    "role": "analyst",
}


def _session_token(response) -> str:
    name = get_settings().SESSION_COOKIE_NAME
    for header in response.headers.get_list("set-cookie"):
        cookie, _, _ = header.partition(";")
        key, _, value = cookie.partition("=")
        if key.strip() == name:
            return value
    raise AssertionError(f"{name} cookie not set")


async def _register(auth_api, **overrides) -> str:
    response = await auth_api.client.post("/api/auth/register", json={**REGISTRATION, **overrides})
    assert response.status_code == 201
    auth_api.client.cookies.clear()
    return _session_token(response)


async def test_register_sets_session_cookie(auth_api):
    response = await auth_api.client.post("/api/auth/register", json=REGISTRATION)
    assert response.status_code == 201
    body = response.json()
    assert body["username"] == "jdoe"
    assert body["initials"] == "JD"
    assert "password" not in body and "hashed_password" not in body

    set_cookie = response.headers["set-cookie"].lower()
    assert "httponly" in set_cookie
    assert _session_token(response)


async def test_register_duplicate_username_conflicts(auth_api):
    await _register(auth_api)
    response = await auth_api.client.post(
        "/api/auth/register", json={**REGISTRATION, "email": "other@example.com"}
    )
    assert response.status_code == 409
    assert response.json()["detail"] == "Username already exists"


async def test_register_ignores_requested_role(auth_api):
    response = await auth_api.client.post(
        "/api/auth/register", json={**REGISTRATION, "role": "admin"}
    )
    assert response.status_code == 201
    assert response.json()["role"] == "analyst"
    auth_api.client.cookies.clear()

    token = _session_token(response)
    users = await auth_api.client.get("/api/users", headers={"Authorization": f"Bearer {token}"})
    assert users.status_code == 403


async def test_register_rejects_short_password(auth_api):
    response = await auth_api.client.post(
        "/api/auth/register", json={**REGISTRATION, "password": "abc"}
    )
    assert response.status_code == 422


async def test_me_with_cookie_and_bearer(auth_api):
    token = await _register(auth_api)
    name = get_settings().SESSION_COOKIE_NAME

    by_cookie = await auth_api.client.get("/api/auth/me", headers={"Cookie": f"{name}={token}"})
    assert by_cookie.status_code == 200
    assert by_cookie.json()["username"] == "jdoe"

    by_bearer = await auth_api.client.get(
        "/api/auth/me", headers={"Authorization": f"Bearer {token}"}
    )
    assert by_bearer.status_code == 200


async def test_me_requires_session(auth_api):
    response = await auth_api.client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"

    garbage = await auth_api.client.get(
        "/api/auth/me", headers={"Authorization": "Bearer not-a-token"}
    )
    assert garbage.status_code == 401


async def test_login(auth_api):
    await _register(auth_api)

    bad = await auth_api.client.post(
        "/api/auth/login", json={"username": "jdoe", "password": "wrong-password"}
    )
    assert bad.status_code == 401
    assert bad.json()["detail"] == "Invalid username or password"

    unknown = await auth_api.client.post(
        "/api/auth/login", json={"username": "nobody", "password": "whatever"}
    )
    assert unknown.status_code == 401

    good = await auth_api.client.post(
        "/api/auth/login", json={"username": "jdoe", "password": "correct-horse"}
    )
    assert good.status_code == 200
    token = _session_token(good)
    me = await auth_api.client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["email"] == "jane@example.com"


async def test_logout_clears_cookie(auth_api):
    response = await auth_api.client.post("/api/auth/logout")
    assert response.status_code == 200
    assert response.json() == {"message": "Logged out successfully"}
    assert get_settings().SESSION_COOKIE_NAME in response.headers["set-cookie"]


async def test_protected_routes_need_a_session(auth_api):
    assert (await auth_api.client.get("/api/deals")).status_code == 401
    token = await _register(auth_api)
    response = await auth_api.client.get(
        "/api/deals", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 200
    assert response.json() == []


# ── Users ───────────────────────────────────────────────────────────────────


async def test_list_users_is_admin_only(api):
    assert (await api.client.get("/api/users")).status_code == 200

    api.act_as(await api.create_user(role="analyst"))
    response = await api.client.get("/api/users")
    assert response.status_code == 403


async def test_profile_access_rules(api):
    analyst = await api.create_user(role="analyst")
    other = await api.create_user(role="analyst")
    api.act_as(analyst)

    own = await api.client.patch(f"/api/users/{analyst.id}", json={"full_name": "New Name"})
    assert own.status_code == 200
    assert own.json()["initials"] == "NN"

    assert (await api.client.get(f"/api/users/{other.id}")).status_code == 403
    promote = await api.client.patch(f"/api/users/{analyst.id}", json={"role": "admin"})
    assert promote.status_code == 403


async def test_admin_changes_roles(api):
    analyst = await api.create_user(role="analyst")
    response = await api.client.patch(f"/api/users/{analyst.id}", json={"role": "partner"})
    assert response.status_code == 200
    assert response.json()["role"] == "partner"
    assert (await api.client.get("/api/users/999")).status_code == 404
