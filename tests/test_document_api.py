"""Document uploads and the closing schedule."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.app.config import get_settings
from src.app.errors import ConflictError


@pytest.fixture
def upload_dir(tmp_path, monkeypatch) -> Path:
    settings = get_settings()
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path))
    return tmp_path


async def _deal(api) -> dict:
    return (await api.client.post("/api/deals", json={"name": "Acme"})).json()


async def _upload(api, deal_id: int, content: bytes = b"%PDF-1.4 deck", **form) -> dict:
    response = await api.client.post(
        "/api/documents/upload",
        data={"deal_id": str(deal_id), "document_type": "pitch_deck", **form},
        files={"file": ("Series A deck.pdf", content, "application/pdf")},
    )
    assert response.status_code == 201, response.text
    return response.json()


# ── Documents ───────────────────────────────────────────────────────────────


async def test_upload_and_download(api, upload_dir):
    deal = await _deal(api)
    document = await _upload(api, deal["id"], description="Deck")

    assert document["file_name"] == "Series A deck.pdf"
    assert document["file_size"] == len(b"%PDF-1.4 deck")
    assert document["document_type"] == "pitch_deck"
    stored = Path(document["file_path"])
    assert stored.parent == upload_dir
    assert stored.name.endswith("_Series_A_deck.pdf")

    download = await api.client.get(f"/api/documents/{document['id']}/download")
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4 deck"

    timeline = (await api.client.get(f"/api/deals/{deal['id']}/timeline")).json()
    assert timeline[0]["event_type"] == "document_upload"


async def test_upload_too_large(api, upload_dir, monkeypatch):
    monkeypatch.setattr(get_settings(), "MAX_UPLOAD_BYTES", 4)
    deal = await _deal(api)
    response = await api.client.post(
        "/api/documents/upload",
        data={"deal_id": str(deal["id"])},
        files={"file": ("big.bin", b"0123456789", "application/octet-stream")},
    )
    assert response.status_code == 413
    assert list(upload_dir.iterdir()) == []


async def test_failed_metadata_write_removes_stored_file(api, upload_dir, monkeypatch):
    deal = await _deal(api)

    async def refuse(data):
        raise ConflictError("Document already recorded")

    monkeypatch.setattr(api.deals, "create_document", refuse)
    response = await api.client.post(
        "/api/documents/upload",
        data={"deal_id": str(deal["id"])},
        files={"file": ("deck.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert response.status_code == 409
    assert list(upload_dir.iterdir()) == []


async def test_upload_to_unknown_deal(api, upload_dir):
    response = await api.client.post(
        "/api/documents/upload",
        data={"deal_id": "404"},
        files={"file": ("x.txt", b"x", "text/plain")},
    )
    assert response.status_code == 404


async def test_list_update_and_delete(api, upload_dir):
    deal = await _deal(api)
    deck = await _upload(api, deal["id"])
    await _upload(api, deal["id"], document_type="term_sheet")

    listed = (await api.client.get(f"/api/documents/deal/{deal['id']}")).json()
    assert len(listed) == 2
    decks = (await api.client.get(f"/api/documents/deal/{deal['id']}/type/pitch_deck")).json()
    assert [d["id"] for d in decks] == [deck["id"]]

    updated = await api.client.patch(
        f"/api/documents/{deck['id']}", json={"description": "Final deck", "version": 2}
    )
    assert updated.json()["version"] == 2

    assert (await api.client.delete(f"/api/documents/{deck['id']}")).status_code == 204
    assert not Path(deck["file_path"]).exists()
    assert (await api.client.get(f"/api/documents/{deck['id']}")).status_code == 404


async def test_observer_cannot_upload(api, upload_dir):
    deal = await _deal(api)
    api.act_as(await api.create_user(role="observer"))
    response = await api.client.post(
        "/api/documents/upload",
        data={"deal_id": str(deal["id"])},
        files={"file": ("x.txt", b"x", "text/plain")},
    )
    assert response.status_code == 403


# ── Closing Schedule ────────────────────────────────────────────────────────


async def test_closing_events(api):
    deal = await _deal(api)
    created = await api.client.post(
        "/api/closing-schedules",
        json={
            "deal_id": deal["id"],
            "event_type": "first_close",
            "event_name": "First close",
            "scheduled_date": "2024-09-30T12:00:00Z",
            "target_amount": 40,
        },
    )
    assert created.status_code == 201
    event = created.json()
    assert event["status"] == "scheduled"
    assert event["actual_date"] is None

    timeline = (await api.client.get(f"/api/deals/{deal['id']}/timeline")).json()
    assert timeline[0]["content"] == "First close scheduled for 2024-09-30"

    completed = await api.client.patch(
        f"/api/closing-schedules/{event['id']}", json={"status": "completed"}
    )
    assert completed.json()["status"] == "completed"
    assert completed.json()["actual_date"] is not None

    listed = (await api.client.get(f"/api/closing-schedules/deal/{deal['id']}")).json()
    assert [e["id"] for e in listed] == [event["id"]]

    assert (await api.client.delete(f"/api/closing-schedules/{event['id']}")).status_code == 204
    assert (await api.client.get(f"/api/closing-schedules/{event['id']}")).status_code == 404


async def test_closing_event_for_unknown_deal(api):
    response = await api.client.post(
        "/api/closing-schedules",
        json={
            "deal_id": 404,
            "event_type": "final_close",
            "event_name": "Final close",
            "scheduled_date": "2024-12-31T12:00:00Z",
        },
    )
    assert response.status_code == 404
