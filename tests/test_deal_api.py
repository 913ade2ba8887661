"""Deal pipeline API: CRUD, stages, stars, memos, comments and assignments."""

from __future__ import annotations


async def _create_deal(api, **overrides) -> dict:
    payload = {"name": "Acme Robotics", "sector": "Robotics", **overrides}
    response = await api.client.post("/api/deals", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _memo(score: int, **overrides) -> dict:
    return {"thesis": "Strong team in a growing market", "score": score, **overrides}


# ── CRUD ────────────────────────────────────────────────────────────────────


async def test_create_deal_assigns_creator_and_logs_creation(api):
    deal = await _create_deal(api)
    assert deal["stage"] == "initial_review"
    assert deal["created_by"] == api.current_user.id

    detail = (await api.client.get(f"/api/deals/{deal['id']}")).json()
    assert detail["assigned_user_ids"] == [api.current_user.id]
    assert detail["stage_label"] == "Initial Review"
    assert detail["score"] is None

    timeline = (await api.client.get(f"/api/deals/{deal['id']}/timeline")).json()
    assert [e["event_type"] for e in timeline] == ["deal_creation"]


async def test_list_deals_filters_by_stage(api):
    await _create_deal(api, name="Alpha")
    await _create_deal(api, name="Beta", stage="screening")

    everything = (await api.client.get("/api/deals")).json()
    assert {d["name"] for d in everything} == {"Alpha", "Beta"}

    screening = (await api.client.get("/api/deals", params={"stage": "screening"})).json()
    assert [d["name"] for d in screening] == ["Beta"]
    assert screening[0]["stage_label"] == "Screening"


async def test_get_missing_deal(api):
    response = await api.client.get("/api/deals/404")
    assert response.status_code == 404
    assert response.json()["detail"] == "Deal not found"


async def test_stage_change_is_recorded(api):
    deal = await _create_deal(api)
    response = await api.client.patch(f"/api/deals/{deal['id']}", json={"stage": "diligence"})
    assert response.status_code == 200
    assert response.json()["stage"] == "diligence"

    timeline = (await api.client.get(f"/api/deals/{deal['id']}/timeline")).json()
    change = next(e for e in timeline if e["event_type"] == "stage_change")
    assert change["content"] == "Stage changed from Initial Review to Diligence"
    assert change["metadata"] == {"from": "initial_review", "to": "diligence"}


async def test_rejection_requires_reason(api):
    deal = await _create_deal(api)
    response = await api.client.patch(f"/api/deals/{deal['id']}", json={"stage": "rejected"})
    assert response.status_code == 400
    assert response.json()["detail"] == "A rejection reason is required when rejecting a deal"

    response = await api.client.patch(
        f"/api/deals/{deal['id']}",
        json={"stage": "rejected", "rejection_reason": "Valuation too high"},
    )
    assert response.status_code == 200
    assert response.json()["rejected_at"] is not None


async def test_delete_deal_requires_delete_permission(api):
    deal = await _create_deal(api)
    api.act_as(await api.create_user(role="analyst"))
    assert (await api.client.delete(f"/api/deals/{deal['id']}")).status_code == 403

    api.act_as(await api.create_user(role="partner"))
    assert (await api.client.delete(f"/api/deals/{deal['id']}")).status_code == 204
    assert (await api.client.get(f"/api/deals/{deal['id']}")).status_code == 404


async def test_observer_cannot_create_deals(api):
    api.act_as(await api.create_user(role="observer"))
    response = await api.client.post("/api/deals", json={"name": "Nope"})
    assert response.status_code == 403


async def test_intern_can_create_deal_but_not_memo(api):
    api.act_as(await api.create_user(role="intern"))
    deal = await _create_deal(api)
    response = await api.client.post(f"/api/deals/{deal['id']}/memos", json=_memo(7))
    assert response.status_code == 403


# ── Notes and Stars ─────────────────────────────────────────────────────────


async def test_add_note(api):
    deal = await _create_deal(api)
    response = await api.client.post(
        f"/api/deals/{deal['id']}/timeline", json={"content": "Met the founders"}
    )
    assert response.status_code == 201
    assert response.json()["event_type"] == "note"


async def test_star_and_unstar_are_idempotent(api):
    deal = await _create_deal(api)
    url = f"/api/deals/{deal['id']}/star"

    first = (await api.client.post(url)).json()
    second = (await api.client.post(url)).json()
    assert first == {"deal_id": deal["id"], "starred": True, "changed": True}
    assert second["changed"] is False

    detail = (await api.client.get(f"/api/deals/{deal['id']}")).json()
    assert detail["star_count"] == 1
    assert detail["is_starred"] is True

    removed = (await api.client.delete(url)).json()
    assert removed == {"deal_id": deal["id"], "starred": False, "changed": True}
    assert (await api.client.delete(url)).json()["changed"] is False

    timeline = (await api.client.get(f"/api/deals/{deal['id']}/timeline")).json()
    assert all(e["event_type"] != "star_added" for e in timeline)


# ── Memos ───────────────────────────────────────────────────────────────────


async def test_memos_drive_deal_score_and_alignment(api):
    deal = await _create_deal(api)
    first = await api.client.post(
        f"/api/deals/{deal['id']}/memos",
        json=_memo(7, raise_amount=1_000_000, gp_commitment=250_000),
    )
    assert first.status_code == 201
    assert first.json()["gp_alignment_percentage"] == 25.0
    assert first.json()["alignment_score"] == 3

    api.act_as(await api.create_user(role="partner"))
    await api.client.post(f"/api/deals/{deal['id']}/memos", json=_memo(8))

    detail = (await api.client.get(f"/api/deals/{deal['id']}")).json()
    assert detail["score"] == 7
    assert len((await api.client.get(f"/api/deals/{deal['id']}/memos")).json()) == 2


async def test_memo_score_is_bounded(api):
    deal = await _create_deal(api)
    response = await api.client.post(f"/api/deals/{deal['id']}/memos", json=_memo(11))
    assert response.status_code == 422


async def test_only_author_edits_memo(api):
    deal = await _create_deal(api)
    author = await api.create_user(role="analyst")
    api.act_as(author)
    memo = (await api.client.post(f"/api/deals/{deal['id']}/memos", json=_memo(5))).json()

    api.act_as(await api.create_user(role="partner"))
    response = await api.client.patch(
        f"/api/deals/{deal['id']}/memos/{memo['id']}", json={"score": 9}
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Only the memo author can edit this memo"

    api.act_as(author)
    response = await api.client.patch(
        f"/api/deals/{deal['id']}/memos/{memo['id']}", json={"score": 9}
    )
    assert response.status_code == 200
    assert (await api.client.get(f"/api/deals/{deal['id']}")).json()["score"] == 9


async def test_memo_comments(api):
    deal = await _create_deal(api)
    memo = (await api.client.post(f"/api/deals/{deal['id']}/memos", json=_memo(6))).json()
    url = f"/api/deals/{deal['id']}/memos/{memo['id']}/comments"

    created = await api.client.post(url, json={"text": "What about churn?"})
    assert created.status_code == 201
    comments = (await api.client.get(url)).json()
    assert [c["text"] for c in comments] == ["What about churn?"]

    other = await _create_deal(api, name="Other")
    wrong_deal = await api.client.get(f"/api/deals/{other['id']}/memos/{memo['id']}/comments")
    assert wrong_deal.status_code == 404


async def test_memo_notifies_other_assignees(api):
    deal = await _create_deal(api)
    analyst = await api.create_user(role="analyst")
    await api.client.post(f"/api/deals/{deal['id']}/assignments", json={"user_id": analyst.id})

    await api.client.post(f"/api/deals/{deal['id']}/memos", json=_memo(6))

    titles = [n.title for n in await api.notifications.list_notifications(analyst.id)]
    assert "New Memo" in titles
    assert await api.notifications.list_notifications(api.current_user.id) == []


# ── Assignments ─────────────────────────────────────────────────────────────


async def test_assign_user_notifies_and_rejects_duplicates(api):
    deal = await _create_deal(api, name="Orbital")
    analyst = await api.create_user(role="analyst")
    url = f"/api/deals/{deal['id']}/assignments"

    response = await api.client.post(url, json={"user_id": analyst.id})
    assert response.status_code == 201
    assert response.json()["id"] == analyst.id

    duplicate = await api.client.post(url, json={"user_id": analyst.id})
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "User is already assigned to this deal"

    [notification] = await api.notifications.list_notifications(analyst.id)
    assert notification.title == "New Deal Assignment"
    assert notification.message == "You've been assigned to deal: Orbital"

    assignees = (await api.client.get(url)).json()
    assert {u["id"] for u in assignees} == {api.current_user.id, analyst.id}

    assert (await api.client.delete(f"{url}/{analyst.id}")).status_code == 204
    assert (await api.client.delete(f"{url}/{analyst.id}")).status_code == 404


async def test_analyst_cannot_assign_partner(api):
    deal = await _create_deal(api)
    partner = await api.create_user(role="partner")
    api.act_as(await api.create_user(role="analyst"))

    response = await api.client.post(
        f"/api/deals/{deal['id']}/assignments", json={"user_id": partner.id}
    )
    assert response.status_code == 403


async def test_assign_unknown_user(api):
    deal = await _create_deal(api)
    response = await api.client.post(f"/api/deals/{deal['id']}/assignments", json={"user_id": 999})
    assert response.status_code == 404
