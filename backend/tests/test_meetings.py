"""
Tests for meetings.

Tests cover:
- Creation with attendees and invitations
- Visibility for attendees, entity heads and outsiders
- Attendee management, documents and reactions
"""
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from comunigov.models.meeting import Meeting, MeetingAttendee


def meeting_payload(days_ahead: int = 3, **overrides) -> dict:
    payload = {
        "name": "Budget review",
        "agenda": "Review the quarterly budget",
        "date": (datetime.now(timezone.utc) + timedelta(days=days_ahead)).isoformat(),
        "start_time": "09:00",
        "end_time": "10:30",
        "location": "City Hall, room 2",
    }
    payload.update(overrides)
    return payload


async def create_meeting(client: AsyncClient, headers: dict, **overrides) -> dict:
    resp = await client.post("/api/v1/meetings", headers=headers, json=meeting_payload(**overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestMeetingCreation:

    @pytest.mark.asyncio
    async def test_create_with_attendees(
        self, client: AsyncClient, head_headers, member_user, isolated_files, default_badges
    ):
        data = await create_meeting(
            client, head_headers,
            attendees=[member_user.id, {"user_id": member_user.id, "confirmed": True}, "unknownuser0000"],
        )
        assert len(data["attendees"]) == 1
        attendee = data["attendees"][0]
        assert attendee["user_id"] == member_user.id
        assert attendee["confirmed"] is False
        assert attendee["user"]["username"] == "mario.member"

        email_log = (isolated_files / "emails.log").read_text()
        assert "mario.member@example.com" in email_log
        assert "Budget review" in email_log

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self, client: AsyncClient, head_headers):
        resp = await client.post(
            "/api/v1/meetings",
            headers=head_headers,
            json=meeting_payload(start_time="11:00", end_time="10:00"),
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_subject_rejected(self, client: AsyncClient, head_headers):
        resp = await client.post(
            "/api/v1/meetings",
            headers=head_headers,
            json=meeting_payload(subject_id="missingsubject0"),
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_registered_subject_flag(self, client: AsyncClient, head_headers, test_subject):
        data = await create_meeting(client, head_headers, subject_id=test_subject.id)
        assert data["is_registered_subject"] is True


class TestMeetingVisibility:

    @pytest.mark.asyncio
    async def test_listing_scope(
        self, client: AsyncClient, head_headers, member_headers, outsider_headers, master_headers,
        member_user
    ):
        await create_meeting(client, head_headers, name="With member", attendees=[member_user.id])
        await create_meeting(client, head_headers, name="Heads only")

        resp = await client.get("/api/v1/meetings", headers=member_headers)
        assert [m["name"] for m in resp.json()["items"]] == ["With member"]

        resp = await client.get("/api/v1/meetings", headers=outsider_headers)
        assert resp.json()["totalItems"] == 0

        resp = await client.get("/api/v1/meetings", headers=master_headers)
        assert resp.json()["totalItems"] == 2

    @pytest.mark.asyncio
    async def test_entity_head_sees_member_meetings(
        self, client: AsyncClient, head_headers, member_headers
    ):
        created = await create_meeting(client, member_headers)

        resp = await client.get(f"/api/v1/meetings/{created['id']}", headers=head_headers)
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_outsider_denied(self, client: AsyncClient, head_headers, outsider_headers):
        created = await create_meeting(client, head_headers)

        resp = await client.get(f"/api/v1/meetings/{created['id']}", headers=outsider_headers)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_upcoming_excludes_past(self, client: AsyncClient, head_headers):
        await create_meeting(client, head_headers, name="Next week", days_ahead=7)
        await create_meeting(client, head_headers, name="Last week", days_ahead=-7)

        resp = await client.get("/api/v1/meetings/upcoming", headers=head_headers)
        assert [m["name"] for m in resp.json()] == ["Next week"]

    @pytest.mark.asyncio
    async def test_upcoming_uses_start_time(self, client: AsyncClient, head_headers):
        await create_meeting(
            client, head_headers, name="Early today", days_ahead=0, start_time="00:00", end_time="00:01"
        )
        await create_meeting(client, head_headers, name="Tomorrow", days_ahead=1)

        resp = await client.get("/api/v1/meetings/upcoming", headers=head_headers)
        assert [m["name"] for m in resp.json()] == ["Tomorrow"]

        resp = await client.get("/api/v1/dashboard/stats", headers=head_headers)
        assert resp.json()["upcoming_meetings"] == 1


class TestMeetingUpdates:

    @pytest.mark.asyncio
    async def test_only_creator_updates(
        self, client: AsyncClient, head_headers, member_headers, member_user
    ):
        created = await create_meeting(client, head_headers, attendees=[member_user.id])

        resp = await client.patch(
            f"/api/v1/meetings/{created['id']}", headers=member_headers, json={"name": "Renamed"}
        )
        assert resp.status_code == 403

        resp = await client.patch(
            f"/api/v1/meetings/{created['id']}", headers=head_headers, json={"end_time": "08:00"}
        )
        assert resp.status_code == 400

        resp = await client.patch(
            f"/api/v1/meetings/{created['id']}", headers=head_headers, json={"name": "Renamed"}
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Renamed"

    @pytest.mark.asyncio
    async def test_null_required_fields_rejected(self, client: AsyncClient, head_headers):
        created = await create_meeting(client, head_headers)
        url = f"/api/v1/meetings/{created['id']}"

        for body in ({"start_time": None}, {"name": None}, {"date": None}):
            resp = await client.patch(url, headers=head_headers, json=body)
            assert resp.status_code == 422, body

        resp = await client.patch(url, headers=head_headers, json={"location": None})
        assert resp.status_code == 200
        assert resp.json()["location"] is None
        assert resp.json()["start_time"] == "09:00"

    @pytest.mark.asyncio
    async def test_add_attendee_and_duplicate(
        self, client: AsyncClient, head_headers, member_user
    ):
        created = await create_meeting(client, head_headers)
        url = f"/api/v1/meetings/{created['id']}/attendees"

        resp = await client.post(url, headers=head_headers, json={"user_id": member_user.id})
        assert resp.status_code == 201

        resp = await client.post(url, headers=head_headers, json={"user_id": member_user.id})
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_attendee_cannot_add_attendees(
        self, client: AsyncClient, head_headers, member_headers, member_user, head_user
    ):
        created = await create_meeting(client, head_headers, attendees=[member_user.id])

        resp = await client.post(
            f"/api/v1/meetings/{created['id']}/attendees",
            headers=member_headers,
            json={"user_id": head_user.id},
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_attendee_confirms_own_attendance(
        self, client: AsyncClient, db_session, head_headers, member_headers, member_user
    ):
        created = await create_meeting(client, head_headers, attendees=[member_user.id])
        attendee_id = created["attendees"][0]["id"]

        resp = await client.patch(
            f"/api/v1/meetings/{created['id']}/attendees/{attendee_id}",
            headers=member_headers,
            json={"confirmed": True},
        )
        assert resp.status_code == 200

        attendee = (await db_session.execute(
            select(MeetingAttendee).where(MeetingAttendee.id == attendee_id)
        )).scalar_one()
        assert attendee.confirmed is True
        assert attendee.attended is False


class TestDocumentsAndReactions:

    @pytest.mark.asyncio
    async def test_upload_and_download_document(
        self, client: AsyncClient, head_headers, member_headers, outsider_headers, member_user
    ):
        created = await create_meeting(client, head_headers, attendees=[member_user.id])

        resp = await client.post(
            f"/api/v1/meetings/{created['id']}/documents",
            headers=head_headers,
            data={"name": "Minutes", "type": "minutes"},
            files={"file": ("minutes.txt", b"Approved unanimously.", "text/plain")},
        )
        assert resp.status_code == 201, resp.text
        document = resp.json()
        assert document["name"] == "Minutes"
        assert document["file_size"] == len(b"Approved unanimously.")

        resp = await client.get(f"/api/v1/files/{document['id']}/download", headers=member_headers)
        assert resp.status_code == 200
        assert resp.content == b"Approved unanimously."
        assert resp.headers["content-type"].startswith("application/octet-stream")
        assert "attachment" in resp.headers["content-disposition"]

        resp = await client.get(f"/api/v1/files/{document['id']}/download", headers=outsider_headers)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_reaction_toggle(self, client: AsyncClient, head_headers):
        created = await create_meeting(client, head_headers)
        url = f"/api/v1/meetings/{created['id']}/reactions"

        resp = await client.post(url, headers=head_headers, json={"emoji": "👍"})
        assert resp.status_code == 201
        assert resp.json()["reaction"]["emoji"] == "👍"

        resp = await client.post(url, headers=head_headers, json={"emoji": "🎉"})
        assert resp.status_code == 201

        resp = await client.post(url, headers=head_headers, json={"emoji": "👍"})
        assert resp.status_code == 200
        assert resp.json()["removed"] is True

        resp = await client.get(url, headers=head_headers)
        assert [r["emoji"] for r in resp.json()] == ["🎉"]

    @pytest.mark.asyncio
    async def test_invalid_emoji(self, client: AsyncClient, head_headers):
        created = await create_meeting(client, head_headers)
        resp = await client.post(
            f"/api/v1/meetings/{created['id']}/reactions", headers=head_headers, json={"emoji": "🦄"}
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_delete_someone_elses_reaction(
        self, client: AsyncClient, head_headers, member_headers, member_user
    ):
        created = await create_meeting(client, head_headers, attendees=[member_user.id])
        resp = await client.post(
            f"/api/v1/meetings/{created['id']}/reactions", headers=head_headers, json={"emoji": "😄"}
        )
        reaction_id = resp.json()["reaction"]["id"]

        url = f"/api/v1/meetings/{created['id']}/reactions/{reaction_id}"
        resp = await client.delete(url, headers=member_headers)
        assert resp.status_code == 403

        resp = await client.delete(url, headers=head_headers)
        assert resp.status_code == 200


@pytest.mark.asyncio
async def test_meeting_milestone_badge(client: AsyncClient, db_session, head_user, head_headers, default_badges):
    await create_meeting(client, head_headers)

    resp = await client.get(f"/api/v1/users/{head_user.id}/badges", headers=head_headers)
    assert [b["badge"]["name"] for b in resp.json()] == ["First Meeting"]

    count = len((await db_session.execute(select(Meeting))).scalars().all())
    assert count == 1
