"""Tests for login, token handling and password changes."""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from comunigov.core.security import decode_token
from comunigov.models.activity_log import UserActivityLog, UserAction
from comunigov.models.badge import UserBadge
from comunigov.services.activity_logger import ActivityLogger
from tests.conftest import TEST_PASSWORD


@pytest.mark.asyncio
async def test_login_returns_token_and_record(client: AsyncClient, member_user, default_badges):
    resp = await client.post(
        "/api/v1/auth/login",
        json={"username": "mario.member", "password": TEST_PASSWORD},
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["record"]["id"] == member_user.id
    assert data["record"]["role"] == "entity_member"

    payload = decode_token(data["token"])
    assert payload["sub"] == member_user.id
    assert payload["role"] == "entity_member"


@pytest.mark.asyncio
async def test_login_records_activity_and_first_login_badge(
    client: AsyncClient, db_session, member_user, default_badges
):
    resp = await client.post(
        "/api/v1/auth/login",
        json={"username": "mario.member", "password": TEST_PASSWORD},
    )
    assert resp.status_code == 200

    logs = await db_session.execute(
        select(UserActivityLog).where(
            UserActivityLog.user_id == member_user.id,
            UserActivityLog.action == UserAction.LOGIN,
        )
    )
    assert len(logs.scalars().all()) == 1

    badges = await db_session.execute(select(UserBadge).where(UserBadge.user_id == member_user.id))
    earned = badges.scalars().all()
    assert len(earned) == 1
    assert earned[0].seen is False


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, member_user):
    resp = await client.post(
        "/api/v1/auth/login",
        json={"username": "mario.member", "password": "not-the-password"},
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_login_inactive_user(client: AsyncClient, db_session, member_user):
    member_user.is_active = False
    await db_session.flush()

    resp = await client.post(
        "/api/v1/auth/login",
        json={"username": "mario.member", "password": TEST_PASSWORD},
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_me_requires_token(client: AsyncClient):
    resp = await client.get("/api/v1/auth/me")
    assert resp.status_code == 401

    resp = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_me_and_refresh(client: AsyncClient, head_user, head_headers):
    resp = await client.get("/api/v1/auth/me", headers=head_headers)
    assert resp.status_code == 200
    assert resp.json()["username"] == "helena.head"

    resp = await client.post("/api/v1/auth/refresh", headers=head_headers)
    assert resp.status_code == 200
    assert decode_token(resp.json()["token"])["sub"] == head_user.id


@pytest.mark.asyncio
async def test_logout_is_logged(client: AsyncClient, db_session, member_user, member_headers):
    resp = await client.post("/api/v1/auth/logout", headers=member_headers)
    assert resp.status_code == 200

    logs = await db_session.execute(
        select(UserActivityLog).where(UserActivityLog.action == UserAction.LOGOUT)
    )
    assert logs.scalar_one().user_id == member_user.id


@pytest.mark.asyncio
async def test_change_password(client: AsyncClient, db_session, member_user, member_headers):
    member_user.require_password_change = True
    await db_session.flush()

    resp = await client.post(
        "/api/v1/auth/change-password",
        headers=member_headers,
        json={"current_password": "wrong-password", "new_password": "NewPassword456"},
    )
    assert resp.status_code == 400

    resp = await client.post(
        "/api/v1/auth/change-password",
        headers=member_headers,
        json={"current_password": TEST_PASSWORD, "new_password": "NewPassword456"},
    )
    assert resp.status_code == 200
    assert member_user.require_password_change is False

    resp = await client.post(
        "/api/v1/auth/login",
        json={"username": "mario.member", "password": "NewPassword456"},
    )
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_failed_activity_write_keeps_session_usable(db_session, member_user):
    assert await ActivityLogger.log(db_session, member_user.id, UserAction.VIEW, None, "auth") is None

    assert await ActivityLogger.log_login(db_session, member_user.id) is not None
    logs = await db_session.execute(select(UserActivityLog).where(UserActivityLog.user_id == member_user.id))
    assert [log.action for log in logs.scalars().all()] == [UserAction.LOGIN]
