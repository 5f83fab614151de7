"""
Tests for user management.

Tests cover:
- Listing scope per role
- Creation rules for masters and entity heads
- Master-only fields on update
- Notification preferences, password reset, badges
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from comunigov.models.activity_log import UserActivityLog
from comunigov.models.badge import AchievementBadge


def new_user_payload(**overrides) -> dict:
    payload = {
        "username": "new.person",
        "email": "new.person@example.com",
        "password": "Welcome123",
        "full_name": "New Person",
        "role": "entity_member",
    }
    payload.update(overrides)
    return payload


class TestUserListing:
    """Listing is scoped by role."""

    @pytest.mark.asyncio
    async def test_master_sees_everyone(
        self, client: AsyncClient, master_headers, head_user, member_user, outsider_user
    ):
        resp = await client.get("/api/v1/users", headers=master_headers)
        assert resp.status_code == 200
        assert resp.json()["totalItems"] == 4

    @pytest.mark.asyncio
    async def test_member_sees_own_entity(
        self, client: AsyncClient, member_headers, head_user, member_user, outsider_user
    ):
        resp = await client.get("/api/v1/users", headers=member_headers)
        assert resp.status_code == 200
        usernames = {u["username"] for u in resp.json()["items"]}
        assert usernames == {"helena.head", "mario.member"}

    @pytest.mark.asyncio
    async def test_get_user_other_entity_denied(
        self, client: AsyncClient, db_session, member_headers, member_user, outsider_user
    ):
        resp = await client.get(f"/api/v1/users/{outsider_user.id}", headers=member_headers)
        assert resp.status_code == 403

        denied = await db_session.execute(
            select(UserActivityLog).where(UserActivityLog.user_id == member_user.id)
        )
        entry = denied.scalar_one()
        assert entry.extra == {"access_denied": True}
        assert entry.entity_id == outsider_user.id

    @pytest.mark.asyncio
    async def test_get_user_not_found(self, client: AsyncClient, master_headers):
        resp = await client.get("/api/v1/users/doesnotexist123", headers=master_headers)
        assert resp.status_code == 404


class TestUserCreation:

    @pytest.mark.asyncio
    async def test_master_creates_user_and_sends_welcome(
        self, client: AsyncClient, master_headers, test_entity, isolated_files
    ):
        resp = await client.post(
            "/api/v1/users",
            headers=master_headers,
            json=new_user_payload(entity_id=test_entity.id),
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["entity_id"] == test_entity.id

        email_log = (isolated_files / "emails.log").read_text()
        assert "new.person@example.com" in email_log
        assert "Health Secretariat" in email_log

    @pytest.mark.asyncio
    async def test_duplicate_username_rejected(self, client: AsyncClient, master_headers, member_user):
        resp = await client.post(
            "/api/v1/users",
            headers=master_headers,
            json=new_user_payload(username="mario.member"),
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_entity_rejected(self, client: AsyncClient, master_headers):
        resp = await client.post(
            "/api/v1/users",
            headers=master_headers,
            json=new_user_payload(entity_id="missingentity00"),
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_head_creates_user_in_own_entity(
        self, client: AsyncClient, head_headers, test_entity
    ):
        resp = await client.post("/api/v1/users", headers=head_headers, json=new_user_payload())
        assert resp.status_code == 201
        assert resp.json()["entity_id"] == test_entity.id

    @pytest.mark.asyncio
    async def test_head_cannot_create_master(self, client: AsyncClient, head_headers):
        resp = await client.post(
            "/api/v1/users",
            headers=head_headers,
            json=new_user_payload(role="master_implementer"),
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_head_cannot_create_in_other_entity(
        self, client: AsyncClient, head_headers, other_entity
    ):
        resp = await client.post(
            "/api/v1/users",
            headers=head_headers,
            json=new_user_payload(entity_id=other_entity.id),
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_member_cannot_create(self, client: AsyncClient, member_headers):
        resp = await client.post("/api/v1/users", headers=member_headers, json=new_user_payload())
        assert resp.status_code == 403


class TestUserUpdate:

    @pytest.mark.asyncio
    async def test_self_update_profile(self, client: AsyncClient, member_user, member_headers):
        resp = await client.patch(
            f"/api/v1/users/{member_user.id}",
            headers=member_headers,
            json={"position": "Nurse", "phone": "+55 11 3333-4444"},
        )
        assert resp.status_code == 200
        assert resp.json()["position"] == "Nurse"

    @pytest.mark.asyncio
    async def test_self_cannot_change_role(self, client: AsyncClient, member_user, member_headers):
        resp = await client.patch(
            f"/api/v1/users/{member_user.id}",
            headers=member_headers,
            json={"role": "master_implementer"},
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_cannot_update_someone_else(
        self, client: AsyncClient, head_user, member_headers
    ):
        resp = await client.patch(
            f"/api/v1/users/{head_user.id}",
            headers=member_headers,
            json={"position": "Hacker"},
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_master_changes_role(self, client: AsyncClient, member_user, master_headers):
        resp = await client.patch(
            f"/api/v1/users/{member_user.id}",
            headers=master_headers,
            json={"role": "entity_head"},
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "entity_head"

    @pytest.mark.asyncio
    async def test_notification_preferences(self, client: AsyncClient, member_user, member_headers):
        resp = await client.put(
            f"/api/v1/users/{member_user.id}/notifications",
            headers=member_headers,
            json={"notify_email": False, "notify_system": True, "notify_whatsapp": True, "notify_telegram": False},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["notify_email"] is False
        assert data["notify_whatsapp"] is True

    @pytest.mark.asyncio
    async def test_reset_password_master_only(
        self, client: AsyncClient, member_user, master_headers, head_headers, isolated_files
    ):
        resp = await client.post(
            f"/api/v1/users/{member_user.id}/reset-password",
            headers=head_headers,
            json={"new_password": "Temporary123"},
        )
        assert resp.status_code == 403

        resp = await client.post(
            f"/api/v1/users/{member_user.id}/reset-password",
            headers=master_headers,
            json={"new_password": "Temporary123"},
        )
        assert resp.status_code == 200
        assert member_user.require_password_change is True
        assert "Temporary123" in (isolated_files / "emails.log").read_text()


class TestUserBadges:

    @pytest.mark.asyncio
    async def test_award_and_list(
        self, client: AsyncClient, db_session, member_user, master_headers, member_headers, default_badges
    ):
        badge = (await db_session.execute(
            select(AchievementBadge).where(AchievementBadge.name == "First Meeting")
        )).scalar_one()

        resp = await client.post(
            f"/api/v1/users/{member_user.id}/badges",
            headers=master_headers,
            json={"badge_id": badge.id},
        )
        assert resp.status_code == 201
        assert resp.json()["badge"]["name"] == "First Meeting"

        resp = await client.post(
            f"/api/v1/users/{member_user.id}/badges",
            headers=master_headers,
            json={"badge_id": badge.id},
        )
        assert resp.status_code == 409

        resp = await client.get(f"/api/v1/users/{member_user.id}/badges", headers=member_headers)
        assert resp.status_code == 200
        assert len(resp.json()) == 1

    @pytest.mark.asyncio
    async def test_badges_of_other_user_denied(
        self, client: AsyncClient, head_user, member_headers
    ):
        resp = await client.get(f"/api/v1/users/{head_user.id}/badges", headers=member_headers)
        assert resp.status_code == 403
