"""Notification endpoints for the current user."""

from __future__ import annotations

from src.app.users.schemas import NotificationCreate


async def _notify(api, user_id: int, title: str = "Heads up") -> int:
    notification = await api.notifications.create_notification(
        NotificationCreate(user_id=user_id, title=title, message="Something happened")
    )
    return notification.id


async def test_list_and_unread_count(api):
    me = api.current_user.id
    other = await api.create_user()
    await _notify(api, me, "First")
    await _notify(api, me, "Second")
    await _notify(api, other.id, "Not mine")

    listed = (await api.client.get("/api/notifications")).json()
    assert [n["title"] for n in listed] == ["Second", "First"]
    assert (await api.client.get("/api/notifications/unread-count")).json() == {"count": 2}


async def test_mark_read(api):
    notification_id = await _notify(api, api.current_user.id)
    response = await api.client.patch(f"/api/notifications/{notification_id}/read")
    assert response.status_code == 200
    assert response.json()["is_read"] is True
    assert (await api.client.get("/api/notifications/unread-count")).json() == {"count": 0}


async def test_cannot_mark_someone_elses_notification(api):
    other = await api.create_user()
    notification_id = await _notify(api, other.id)
    response = await api.client.patch(f"/api/notifications/{notification_id}/read")
    assert response.status_code == 404
    assert (await api.client.patch("/api/notifications/999/read")).status_code == 404


async def test_mark_all_read(api):
    for _ in range(3):
        await _notify(api, api.current_user.id)
    response = await api.client.patch("/api/notifications/mark-all-read")
    assert response.json() == {"updated": 3}
    assert (await api.client.patch("/api/notifications/mark-all-read")).json() == {"updated": 0}


async def test_create_notification(api):
    analyst = await api.create_user()
    response = await api.client.post(
        "/api/notifications",
        json={"user_id": analyst.id, "title": "Reminder", "message": "IC at 3pm", "type": "deal"},
    )
    assert response.status_code == 201
    assert response.json()["type"] == "deal"

    api.act_as(analyst)
    assert (await api.client.get("/api/notifications/unread-count")).json() == {"count": 1}


async def test_notifications_require_login(api):
    api.act_as(None)
    assert (await api.client.get("/api/notifications")).status_code == 401
