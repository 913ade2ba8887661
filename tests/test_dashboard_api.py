"""Dashboard and leaderboard endpoints, including their response caches."""

from __future__ import annotations

import pytest


async def _deal(api, name: str, **fields) -> dict:
    response = await api.client.post("/api/deals", json={"name": name, **fields})
    assert response.status_code == 201
    return response.json()


async def test_dashboard_stats_include_fund_aum(api):
    await _deal(api, "A", sector="Fintech")
    await _deal(api, "B", stage="ic_review", sector="Fintech")
    deal = await _deal(api, "C", sector="Health")

    fund = (await api.client.post("/api/funds", json={"name": "Fund I"})).json()
    await api.client.post(
        "/api/allocations",
        json={
            "fund_id": fund["id"],
            "deal_id": deal["id"],
            "amount": 2500,
            "security_type": "Equity",
            "capital_call_schedule": "single",
        },
    )

    stats = (await api.client.get("/api/dashboard/stats")).json()
    assert stats["total_deals"] == 3
    assert stats["invested"] == 1
    assert stats["in_ic_review"] == 1
    assert stats["new_deals"] == 1
    assert stats["total_aum"] == 2500.0
    assert stats["investment_rate"] == pytest.approx(100 / 3)

    sectors = (await api.client.get("/api/dashboard/sector-stats")).json()
    assert [(s["sector"], s["count"]) for s in sectors] == [("Fintech", 2), ("Health", 1)]


async def test_dashboard_is_cached_until_a_write(api):
    await _deal(api, "A")
    assert (await api.client.get("/api/dashboard/stats")).json()["total_deals"] == 1
    assert ("dashboard", "stats") in api.cache.store

    # a write outside the API does not drop the cache
    await api.deals.delete_deal(1)
    assert (await api.client.get("/api/dashboard/stats")).json()["total_deals"] == 1

    await _deal(api, "B")
    assert ("dashboard", "stats") not in api.cache.store
    assert (await api.client.get("/api/dashboard/stats")).json()["total_deals"] == 1


async def test_leaderboard_orders_by_score_then_stars(api):
    low = await _deal(api, "Low")
    high = await _deal(api, "High")
    starred = await _deal(api, "Starred")

    await api.client.post(f"/api/deals/{low['id']}/memos", json={"thesis": "ok", "score": 4})
    await api.client.post(f"/api/deals/{high['id']}/memos", json={"thesis": "great", "score": 9})
    await api.client.post(f"/api/deals/{starred['id']}/memos", json={"thesis": "ok", "score": 4})
    await api.client.post(f"/api/deals/{starred['id']}/star")

    entries = (await api.client.get("/api/leaderboard")).json()
    assert [e["name"] for e in entries] == ["High", "Starred", "Low"]
    assert entries[1]["star_count"] == 1
    assert ("leaderboard", "all") in api.cache.store

    await api.client.delete(f"/api/deals/{starred['id']}/star")
    assert ("leaderboard", "all") not in api.cache.store
    entries = (await api.client.get("/api/leaderboard")).json()
    assert [e["star_count"] for e in entries] == [0, 0, 0]
