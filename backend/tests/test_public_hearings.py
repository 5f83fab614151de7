"""Tests for public hearings."""
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from comunigov.api.v1.public_hearings import starts_at
from comunigov.models.public_hearing import PublicHearing


def hearing_payload(entity_id: str, days_ahead: int = 5, **overrides) -> dict:
    payload = {
        "title": "Master plan hearing",
        "description": "Open discussion of the urban master plan",
        "date": (datetime.now(timezone.utc) + timedelta(days=days_ahead)).isoformat(),
        "start_time": "18:00",
        "end_time": "20:00",
        "location": "Municipal theater",
        "entity_id": entity_id,
    }
    payload.update(overrides)
    return payload


async def create_hearing(client: AsyncClient, headers: dict, entity_id: str, **overrides) -> dict:
    resp = await client.post("/api/v1/public-hearings", headers=headers, json=hearing_payload(entity_id, **overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_head_schedules_for_own_entity(client: AsyncClient, head_headers, test_entity, other_entity):
    data = await create_hearing(client, head_headers, test_entity.id)
    assert data["status"] == "scheduled"

    resp = await client.post(
        "/api/v1/public-hearings", headers=head_headers, json=hearing_payload(other_entity.id)
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_member_cannot_schedule(client: AsyncClient, member_headers, test_entity):
    resp = await client.post(
        "/api/v1/public-hearings", headers=member_headers, json=hearing_payload(test_entity.id)
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_validation(client: AsyncClient, master_headers, test_entity):
    resp = await client.post(
        "/api/v1/public-hearings",
        headers=master_headers,
        json=hearing_payload(test_entity.id, start_time="20:00", end_time="18:00"),
    )
    assert resp.status_code == 422

    resp = await client.post(
        "/api/v1/public-hearings", headers=master_headers, json=hearing_payload("missingentity00")
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_listing_filters(client: AsyncClient, master_headers, member_headers, test_entity, other_entity):
    await create_hearing(client, master_headers, test_entity.id)
    await create_hearing(client, master_headers, other_entity.id, status="completed", days_ahead=-30)

    resp = await client.get("/api/v1/public-hearings", headers=member_headers)
    assert resp.json()["totalItems"] == 2

    resp = await client.get(f"/api/v1/public-hearings?entity_id={other_entity.id}", headers=member_headers)
    assert resp.json()["items"][0]["status"] == "completed"

    resp = await client.get("/api/v1/public-hearings?status=scheduled", headers=member_headers)
    assert [h["entity_id"] for h in resp.json()["items"]] == [test_entity.id]

    resp = await client.get(f"/api/v1/entities/{other_entity.id}/public-hearings", headers=member_headers)
    assert len(resp.json()) == 1


@pytest.mark.asyncio
async def test_upcoming(client: AsyncClient, master_headers, member_headers, test_entity):
    await create_hearing(client, master_headers, test_entity.id, title="Next week", days_ahead=7)
    await create_hearing(client, master_headers, test_entity.id, title="Yesterday", days_ahead=-1)
    await create_hearing(client, master_headers, test_entity.id, title="Called off", days_ahead=3, status="cancelled")

    resp = await client.get("/api/v1/public-hearings/upcoming", headers=member_headers)
    assert [h["title"] for h in resp.json()] == ["Next week"]


def test_starts_at_combines_date_and_time():
    hearing = PublicHearing(date=datetime(2026, 3, 10, 0, 0), start_time="18:30")
    assert starts_at(hearing) == datetime(2026, 3, 10, 18, 30, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_update(client: AsyncClient, head_headers, outsider_headers, test_entity):
    data = await create_hearing(client, head_headers, test_entity.id)
    url = f"/api/v1/public-hearings/{data['id']}"

    resp = await client.patch(url, headers=outsider_headers, json={"status": "cancelled"})
    assert resp.status_code == 403

    resp = await client.patch(url, headers=head_headers, json={"end_time": "17:00"})
    assert resp.status_code == 400

    resp = await client.patch(url, headers=head_headers, json={"end_time": None})
    assert resp.status_code == 422

    resp = await client.patch(url, headers=head_headers, json={"status": "in_progress"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "in_progress"


@pytest.mark.asyncio
async def test_files_are_public_to_authenticated_users(
    client: AsyncClient, head_headers, outsider_headers, test_entity
):
    data = await create_hearing(client, head_headers, test_entity.id)

    resp = await client.post(
        f"/api/v1/public-hearings/{data['id']}/files",
        headers=outsider_headers,
        files={"file": ("agenda.txt", b"1. Opening", "text/plain")},
    )
    assert resp.status_code == 403

    resp = await client.post(
        f"/api/v1/public-hearings/{data['id']}/files",
        headers=head_headers,
        files={"file": ("agenda.txt", b"1. Opening", "text/plain")},
    )
    assert resp.status_code == 201
    file_id = resp.json()["id"]

    resp = await client.get(f"/api/v1/public-hearings/{data['id']}", headers=outsider_headers)
    assert resp.status_code == 200
    detail = resp.json()
    assert detail["entity"]["name"] == "Health Secretariat"
    assert [f["id"] for f in detail["files"]] == [file_id]

    resp = await client.get(detail["files"][0]["download_url"], headers=outsider_headers)
    assert resp.status_code == 200
    assert resp.content == b"1. Opening"


@pytest.mark.asyncio
async def test_download_missing_on_disk(client: AsyncClient, head_headers, test_entity, isolated_files):
    data = await create_hearing(client, head_headers, test_entity.id)
    resp = await client.post(
        f"/api/v1/public-hearings/{data['id']}/files",
        headers=head_headers,
        files={"file": ("agenda.txt", b"1. Opening", "text/plain")},
    )
    file_id = resp.json()["id"]

    for path in (isolated_files / "uploads").rglob("*agenda.txt"):
        path.unlink()

    resp = await client.get(f"/api/v1/files/{file_id}/download", headers=head_headers)
    assert resp.status_code == 404
