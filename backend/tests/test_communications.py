"""
Tests for communications.

Tests cover:
- Delivery on the requested channel with fallback
- Deferred delivery until attachments are uploaded
- Visibility, read receipts and file downloads
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from comunigov.core.config import settings
from comunigov.models.communication import Communication


def communication_payload(recipients: list[dict], **overrides) -> dict:
    payload = {
        "subject": "Vaccination schedule",
        "content": "The campaign starts Monday at 8am.",
        "channel": "email",
        "recipients": recipients,
    }
    payload.update(overrides)
    return payload


async def send(client: AsyncClient, headers: dict, recipients: list[dict], **overrides) -> dict:
    resp = await client.post(
        "/api/v1/communications", headers=headers, json=communication_payload(recipients, **overrides)
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestSending:

    @pytest.mark.asyncio
    async def test_email_to_user_and_entity(
        self, client: AsyncClient, head_headers, member_user, other_entity, outsider_user, isolated_files
    ):
        data = await send(
            client, head_headers, [{"user_id": member_user.id}, {"entity_id": other_entity.id}]
        )

        assert data["delivery_pending"] is False
        assert len(data["recipients"]) == 2
        # member, the other entity's head, and its member
        assert len(data["delivery"]) == 3
        for attempts in data["delivery"].values():
            assert attempts[0]["channel"] == "email"
            assert attempts[0]["success"] is True

        email_log = (isolated_files / "emails.log").read_text()
        assert "mario.member@example.com" in email_log
        assert "president@association.example.com" in email_log
        assert "olga.outsider@example.com" in email_log

    @pytest.mark.asyncio
    async def test_whatsapp_falls_back_to_email(
        self, client: AsyncClient, head_headers, member_user, outsider_user
    ):
        data = await send(
            client, head_headers,
            [{"user_id": member_user.id}, {"user_id": outsider_user.id}],
            channel="whatsapp",
        )

        assert data["recipients_without_whatsapp"] == ["Olga Outsider"]
        for attempts in data["delivery"].values():
            assert [a["channel"] for a in attempts] == ["whatsapp", "email"]
            assert attempts[0]["success"] is False
            assert attempts[-1]["success"] is True

    @pytest.mark.asyncio
    async def test_system_notification(self, client: AsyncClient, head_headers, member_user, isolated_files):
        data = await send(client, head_headers, [{"user_id": member_user.id}], channel="system_notification")

        [attempts] = data["delivery"].values()
        assert attempts == [{
            "channel": "system_notification", "success": True,
            "recipient": member_user.id, "message_id": None, "error": None,
        }]
        assert not (isolated_files / "emails.log").exists()

    @pytest.mark.asyncio
    async def test_unknown_recipient(self, client: AsyncClient, head_headers):
        resp = await client.post(
            "/api/v1/communications",
            headers=head_headers,
            json=communication_payload([{"user_id": "missinguser0000"}]),
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_recipients_required(self, client: AsyncClient, head_headers):
        resp = await client.post("/api/v1/communications", headers=head_headers, json=communication_payload([]))
        assert resp.status_code == 422

        resp = await client.post("/api/v1/communications", headers=head_headers, json=communication_payload([{}]))
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_first_communication_badge(
        self, client: AsyncClient, head_user, head_headers, member_user, default_badges
    ):
        await send(client, head_headers, [{"user_id": member_user.id}])

        resp = await client.get(f"/api/v1/users/{head_user.id}/badges", headers=head_headers)
        assert [b["badge"]["name"] for b in resp.json()] == ["First Communication"]


class TestAttachments:

    @pytest.mark.asyncio
    async def test_delivery_waits_for_files(
        self, client: AsyncClient, db_session, head_headers, member_headers, outsider_headers,
        member_user, isolated_files
    ):
        data = await send(client, head_headers, [{"user_id": member_user.id}], expect_attachments=True)
        assert data["delivery_pending"] is True
        assert data["delivery"] == {}
        assert not (isolated_files / "emails.log").exists()

        url = f"/api/v1/communications/{data['id']}/files"
        upload = [
            ("files", ("schedule.pdf", b"%PDF-1.4 schedule", "application/pdf")),
            ("files", ("notes.txt", b"bring ID", "text/plain")),
        ]

        resp = await client.post(url, headers=member_headers, files=upload)
        assert resp.status_code == 403

        resp = await client.post(url, headers=head_headers, files=upload)
        assert resp.status_code == 201, resp.text
        sent = resp.json()
        assert sent["delivery_pending"] is False
        assert sent["has_attachments"] is True
        assert sorted(f["name"] for f in sent["files"]) == ["notes.txt", "schedule.pdf"]
        assert len(sent["delivery"]) == 1

        email_log = (isolated_files / "emails.log").read_text()
        assert "ATTACHMENTS:" in email_log
        assert "schedule.pdf" in email_log

        pdf = next(f for f in sent["files"] if f["name"] == "schedule.pdf")
        resp = await client.get(f"/api/v1/files/{pdf['id']}/download?embed=true", headers=member_headers)
        assert resp.status_code == 200
        assert resp.content == b"%PDF-1.4 schedule"
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.headers["content-disposition"].startswith("inline")

        resp = await client.get(f"/api/v1/files/{pdf['id']}/download", headers=outsider_headers)
        assert resp.status_code == 403

        communication = (await db_session.execute(
            select(Communication).where(Communication.id == data["id"])
        )).scalar_one()
        assert communication.delivery_pending is False

    @pytest.mark.asyncio
    async def test_later_files_do_not_redeliver(
        self, client: AsyncClient, head_headers, member_user
    ):
        data = await send(client, head_headers, [{"user_id": member_user.id}])

        resp = await client.post(
            f"/api/v1/communications/{data['id']}/files",
            headers=head_headers,
            files=[("files", ("late.txt", b"late", "text/plain"))],
        )
        assert resp.status_code == 201
        assert resp.json()["delivery"] == {}

    @pytest.mark.asyncio
    async def test_upload_too_large(self, client: AsyncClient, head_headers, member_user, monkeypatch):
        monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", 4)

        data = await send(client, head_headers, [{"user_id": member_user.id}])
        resp = await client.post(
            f"/api/v1/communications/{data['id']}/files",
            headers=head_headers,
            files=[("files", ("big.txt", b"too big", "text/plain"))],
        )
        assert resp.status_code == 413

    @pytest.mark.asyncio
    async def test_rejected_batch_leaves_no_files(
        self, client: AsyncClient, head_headers, member_user, monkeypatch, isolated_files
    ):
        monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", 10)

        data = await send(client, head_headers, [{"user_id": member_user.id}], expect_attachments=True)
        resp = await client.post(
            f"/api/v1/communications/{data['id']}/files",
            headers=head_headers,
            files=[
                ("files", ("small.txt", b"ok", "text/plain")),
                ("files", ("big.txt", b"far too big", "text/plain")),
            ],
        )
        assert resp.status_code == 413
        assert [p for p in (isolated_files / "uploads").rglob("*") if p.is_file()] == []

        resp = await client.get(f"/api/v1/communications/{data['id']}", headers=head_headers)
        assert resp.json()["files"] == []

    @pytest.mark.asyncio
    async def test_download_unknown_file(self, client: AsyncClient, member_headers):
        resp = await client.get("/api/v1/files/missingfile0000/download", headers=member_headers)
        assert resp.status_code == 404


class TestVisibility:

    @pytest.mark.asyncio
    async def test_listing_and_detail(
        self, client: AsyncClient, head_headers, member_headers, outsider_headers, master_headers,
        member_user
    ):
        data = await send(client, head_headers, [{"user_id": member_user.id}])

        resp = await client.get("/api/v1/communications", headers=member_headers)
        assert [c["id"] for c in resp.json()["items"]] == [data["id"]]

        resp = await client.get("/api/v1/communications", headers=outsider_headers)
        assert resp.json()["totalItems"] == 0

        resp = await client.get(f"/api/v1/communications/{data['id']}", headers=outsider_headers)
        assert resp.status_code == 403

        resp = await client.get(f"/api/v1/communications/{data['id']}", headers=master_headers)
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_entity_recipient_reaches_members(
        self, client: AsyncClient, master_headers, member_headers, test_entity
    ):
        data = await send(client, master_headers, [{"entity_id": test_entity.id}], channel="telegram")

        resp = await client.get(f"/api/v1/communications/{data['id']}", headers=member_headers)
        assert resp.status_code == 200

        resp = await client.get("/api/v1/communications?channel=telegram", headers=member_headers)
        assert resp.json()["totalItems"] == 1

        resp = await client.get("/api/v1/communications?channel=email", headers=member_headers)
        assert resp.json()["totalItems"] == 0


class TestReadReceipts:

    @pytest.mark.asyncio
    async def test_mark_read(
        self, client: AsyncClient, master_headers, member_headers, head_headers, outsider_headers,
        member_user, test_entity
    ):
        data = await send(
            client, master_headers, [{"user_id": member_user.id}, {"entity_id": test_entity.id}]
        )
        url = f"/api/v1/communications/{data['id']}/read"

        resp = await client.post(url, headers=member_headers)
        assert resp.status_code == 200
        assert resp.json()["user_id"] == member_user.id
        assert resp.json()["read"] is True
        assert resp.json()["read_at"] is not None

        # the head is reached through the entity row
        resp = await client.post(url, headers=head_headers)
        assert resp.status_code == 200
        assert resp.json()["entity_id"] == test_entity.id

        resp = await client.post(url, headers=outsider_headers)
        assert resp.status_code == 404
