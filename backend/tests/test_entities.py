"""Tests for entity endpoints and CSV imports through the API."""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from comunigov.core.config import settings
from comunigov.models.badge import UserBadge
from comunigov.models.user import User


ENTITY_PAYLOAD = {
    "name": "Education Secretariat",
    "type": "secretariat",
    "head_name": "Edna Educator",
    "head_position": "Secretary",
    "head_email": "edna@education.example.com",
    "tags": ["education"],
}


@pytest.mark.asyncio
async def test_master_creates_entity_and_earns_badge(
    client: AsyncClient, db_session, master_user, master_headers, default_badges
):
    resp = await client.post("/api/v1/entities", headers=master_headers, json=ENTITY_PAYLOAD)
    assert resp.status_code == 201, resp.text
    assert resp.json()["tags"] == ["education"]

    badges = await db_session.execute(select(UserBadge).where(UserBadge.user_id == master_user.id))
    assert len(badges.scalars().all()) == 1


@pytest.mark.asyncio
async def test_only_master_creates_entities(client: AsyncClient, head_headers):
    resp = await client.post("/api/v1/entities", headers=head_headers, json=ENTITY_PAYLOAD)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_list_filters(client: AsyncClient, member_headers, test_entity, other_entity):
    resp = await client.get("/api/v1/entities", headers=member_headers)
    assert resp.json()["totalItems"] == 2

    resp = await client.get("/api/v1/entities?type=association", headers=member_headers)
    assert [e["id"] for e in resp.json()["items"]] == [other_entity.id]

    resp = await client.get("/api/v1/entities?tag=priority", headers=member_headers)
    assert [e["id"] for e in resp.json()["items"]] == [test_entity.id]

    resp = await client.get("/api/v1/entities?search=health", headers=member_headers)
    assert [e["id"] for e in resp.json()["items"]] == [test_entity.id]


@pytest.mark.asyncio
async def test_tag_filter_matches_whole_accented_tags(client: AsyncClient, master_headers):
    payload = dict(ENTITY_PAYLOAD, name="Secretaria de Saúde", tags=["saúde", "atenção básica"])
    resp = await client.post("/api/v1/entities", headers=master_headers, json=payload)
    assert resp.status_code == 201
    entity_id = resp.json()["id"]

    resp = await client.get("/api/v1/entities", headers=master_headers, params={"tag": "saúde"})
    assert [e["id"] for e in resp.json()["items"]] == [entity_id]

    resp = await client.get("/api/v1/entities", headers=master_headers, params={"tag": "atenção básica"})
    assert resp.json()["totalItems"] == 1

    resp = await client.get("/api/v1/entities", headers=master_headers, params={"tag": "saú"})
    assert resp.json()["totalItems"] == 0


@pytest.mark.asyncio
async def test_update_entity(client: AsyncClient, master_headers, test_entity):
    resp = await client.patch(
        f"/api/v1/entities/{test_entity.id}",
        headers=master_headers,
        json={"phone": "+55 11 4002-8922", "tags": ["health"]},
    )
    assert resp.status_code == 200
    assert resp.json()["phone"] == "+55 11 4002-8922"
    assert resp.json()["tags"] == ["health"]


@pytest.mark.asyncio
async def test_entity_users_scoped(
    client: AsyncClient, test_entity, other_entity, member_user, member_headers, outsider_user
):
    resp = await client.get(f"/api/v1/entities/{test_entity.id}/users", headers=member_headers)
    assert resp.status_code == 200
    assert [u["id"] for u in resp.json()] == [member_user.id]

    resp = await client.get(f"/api/v1/entities/{other_entity.id}/users", headers=member_headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_entity_not_found_before_access(client: AsyncClient, member_headers, member_user):
    resp = await client.get("/api/v1/entities/missingentity00/users", headers=member_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_entity_activity_logs_for_head(
    client: AsyncClient, test_entity, head_headers, member_headers, member_user
):
    await client.post("/api/v1/auth/logout", headers=member_headers)

    resp = await client.get(f"/api/v1/entities/{test_entity.id}/activity-logs", headers=head_headers)
    assert resp.status_code == 200
    assert resp.json()["totalItems"] == 1

    resp = await client.get(f"/api/v1/entities/{test_entity.id}/activity-logs", headers=member_headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_import_entities_csv(client: AsyncClient, master_headers):
    csv_content = (
        "name,type,headName,headPosition,headEmail,tags\n"
        "Culture Council,council,Carla,President,carla@culture.example.com,\"culture, arts\"\n"
        "Broken Unit,spaceship,Bob,Chief,bob@example.com,\n"
    )
    resp = await client.post(
        "/api/v1/entities/import",
        headers=master_headers,
        files={"file": ("entities.csv", csv_content.encode(), "text/csv")},
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["success"] == 1
    assert data["failed"] == 1
    assert data["errors"][0].startswith("Row 3:")

    resp = await client.get("/api/v1/entities?tag=arts", headers=master_headers)
    assert resp.json()["items"][0]["name"] == "Culture Council"


@pytest.mark.asyncio
async def test_import_entities_missing_columns(client: AsyncClient, master_headers):
    resp = await client.post(
        "/api/v1/entities/import",
        headers=master_headers,
        files={"file": ("entities.csv", b"name,type\nX,council\n", "text/csv")},
    )
    assert resp.status_code == 400
    assert "headName" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_import_members_csv(client: AsyncClient, db_session, master_headers, test_entity):
    csv_content = (
        "Nome Completo,E-mail,Cargo,WhatsApp\n"
        "Ana Souza,ana.souza@example.com,Analyst,+5511988887777\n"
    )
    resp = await client.post(
        f"/api/v1/entities/{test_entity.id}/members/import",
        headers=master_headers,
        files={"file": ("members.csv", csv_content.encode(), "text/csv")},
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["success"] == 1
    assert data["created_users"][0]["username"] == "ana.souza"

    user = (await db_session.execute(select(User).where(User.username == "ana.souza"))).scalar_one()
    assert user.entity_id == test_entity.id
    assert user.require_password_change is True


@pytest.mark.asyncio
async def test_import_members_form_entity(client: AsyncClient, master_headers, test_entity):
    resp = await client.post(
        "/api/v1/entities/members/import",
        headers=master_headers,
        data={"entity_id": test_entity.id},
        files={"file": ("members.csv", b"fullName,email,position\nJo,jo@example.com,Clerk\n", "text/csv")},
    )
    assert resp.status_code == 200
    assert resp.json()["success"] == 1


@pytest.mark.asyncio
async def test_import_csv_too_large(client: AsyncClient, master_headers, monkeypatch):
    monkeypatch.setattr(settings, "MAX_CSV_SIZE", 10)

    resp = await client.post(
        "/api/v1/entities/import",
        headers=master_headers,
        files={"file": ("entities.csv", b"name,type,headName,headPosition,headEmail\n", "text/csv")},
    )
    assert resp.status_code == 413
