"""
Tests for dashboard counters, analytics and admin statistics.
"""
import csv
import io
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient

from comunigov.models.meeting import Meeting, MeetingAttendee
from comunigov.models.task import Task, TaskStatus


async def add_task(db_session, subject, creator, assignee, status=TaskStatus.PENDING) -> Task:
    task = Task(
        title=f"Task {status.value}",
        description="Follow up",
        deadline=datetime.now(timezone.utc) + timedelta(days=7),
        status=status,
        subject_id=subject.id,
        is_registered_user=True,
        assigned_to_user_id=assignee.id,
        entity_id=assignee.entity_id,
        created_by_id=creator.id,
    )
    db_session.add(task)
    await db_session.flush()
    return task


async def add_meeting(db_session, creator, days_ahead: int, attendees=()) -> Meeting:
    meeting = Meeting(
        name="Council session",
        agenda="Ordinary session",
        date=datetime.now(timezone.utc) + timedelta(days=days_ahead),
        start_time="14:00",
        end_time="16:00",
        created_by_id=creator.id,
    )
    db_session.add(meeting)
    await db_session.flush()
    for user in attendees:
        db_session.add(MeetingAttendee(meeting_id=meeting.id, user_id=user.id))
    await db_session.flush()
    return meeting


@pytest_asyncio.fixture
async def activity(db_session, test_subject, head_user, member_user, outsider_user, master_user):
    """Two tasks in the head's entity (one completed), one elsewhere."""
    await add_task(db_session, test_subject, head_user, member_user)
    await add_task(db_session, test_subject, head_user, member_user, TaskStatus.COMPLETED)
    await add_task(db_session, test_subject, master_user, outsider_user)
    await add_meeting(db_session, head_user, 2, attendees=[member_user])
    await add_meeting(db_session, head_user, -2, attendees=[member_user])
    await add_meeting(db_session, master_user, 4)


class TestDashboard:

    @pytest.mark.asyncio
    async def test_member_stats(self, client: AsyncClient, member_headers, activity):
        resp = await client.get("/api/v1/dashboard/stats", headers=member_headers)
        assert resp.status_code == 200
        assert resp.json() == {
            "entities": 2,
            "users": 4,
            "upcoming_meetings": 1,
            "pending_tasks": 1,
        }

    @pytest.mark.asyncio
    async def test_master_stats(self, client: AsyncClient, master_headers, activity):
        resp = await client.get("/api/v1/dashboard/stats", headers=master_headers)
        data = resp.json()
        assert data["upcoming_meetings"] == 2
        assert data["pending_tasks"] == 2

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient):
        resp = await client.get("/api/v1/dashboard/stats")
        assert resp.status_code == 401


class TestAnalytics:

    @pytest.mark.asyncio
    async def test_member_denied(self, client: AsyncClient, member_headers):
        resp = await client.get("/api/v1/analytics", headers=member_headers)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_invalid_period(self, client: AsyncClient, head_headers):
        resp = await client.get("/api/v1/analytics?period=2d", headers=head_headers)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_head_summary_is_scoped(self, client: AsyncClient, head_headers, activity):
        resp = await client.get("/api/v1/analytics?period=7d", headers=head_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["period"] == "7d"
        assert data["total_tasks"] == 2
        assert data["tasks_by_status"]["completed"] == 1
        assert data["tasks_by_status"]["cancelled"] == 0
        assert data["completion_rate"] == 50.0
        assert data["users_by_role"] == {"entity_head": 1, "entity_member": 1}
        assert data["meetings"] == 3

    @pytest.mark.asyncio
    async def test_master_summary(self, client: AsyncClient, master_headers, activity):
        resp = await client.get("/api/v1/analytics", headers=master_headers)
        data = resp.json()
        assert data["total_tasks"] == 3
        assert data["completion_rate"] == 33.3
        assert data["users_by_role"]["master_implementer"] == 1

    @pytest.mark.asyncio
    async def test_entity_rows(self, client: AsyncClient, head_headers, master_headers, test_entity, activity):
        resp = await client.get("/api/v1/analytics/entities", headers=head_headers)
        assert resp.json() == [{
            "entity_id": test_entity.id,
            "name": "Health Secretariat",
            "type": "secretariat",
            "users": 2,
            "tasks": 2,
            "completed_tasks": 1,
            "public_hearings": 0,
        }]

        resp = await client.get("/api/v1/analytics/entities", headers=master_headers)
        assert [row["name"] for row in resp.json()] == ["Health Secretariat", "Neighborhood Association"]

    @pytest.mark.asyncio
    async def test_activity(self, client: AsyncClient, head_headers, member_headers, outsider_headers):
        await client.post("/api/v1/auth/logout", headers=member_headers)
        await client.post("/api/v1/auth/logout", headers=outsider_headers)

        resp = await client.get("/api/v1/analytics/activity", headers=head_headers)
        data = resp.json()
        assert data["by_action"] == {"logout": 1}
        assert sum(day["count"] for day in data["by_day"]) == 1

    @pytest.mark.asyncio
    async def test_communication_channels(
        self, client: AsyncClient, head_headers, member_headers, member_user, outsider_user
    ):
        resp = await client.post(
            "/api/v1/communications",
            headers=head_headers,
            json={
                "subject": "Reminder",
                "content": "Meeting tomorrow",
                "channel": "email",
                "recipients": [{"user_id": member_user.id}, {"user_id": outsider_user.id}],
            },
        )
        communication_id = resp.json()["id"]
        await client.post(f"/api/v1/communications/{communication_id}/read", headers=member_headers)

        resp = await client.get("/api/v1/analytics/communication-channels", headers=head_headers)
        data = resp.json()
        assert data["by_channel"] == {"email": 1}
        assert data["total_recipients"] == 2
        assert data["read_recipients"] == 1
        assert data["read_rate"] == 50.0

    @pytest.mark.asyncio
    async def test_export_csv(self, client: AsyncClient, master_headers, test_entity, activity):
        resp = await client.get("/api/v1/analytics/export", headers=master_headers)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert resp.headers["content-disposition"].startswith('attachment; filename="comunigov_analytics_')

        rows = list(csv.reader(io.StringIO(resp.text)))
        assert rows[0] == ["entity_id", "name", "type", "users", "tasks", "completed_tasks", "public_hearings"]
        assert rows[1] == [test_entity.id, "Health Secretariat", "secretariat", "2", "2", "1", "0"]
        assert len(rows) == 3


@pytest.mark.asyncio
async def test_database_stats(client: AsyncClient, master_headers, head_headers, activity):
    resp = await client.get("/api/v1/admin/database-stats", headers=head_headers)
    assert resp.status_code == 403

    resp = await client.get("/api/v1/admin/database-stats", headers=master_headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["tables"]["tasks"] == 3
    assert data["tables"]["meetings"] == 3
    assert data["tables"]["entities"] == 2
    assert data["total_rows"] == sum(data["tables"].values())
