"""Tests for the CSV import service."""
import pytest
from sqlalchemy import select

from comunigov.models.entity import Entity, EntityType
from comunigov.models.user import User, UserRole
from comunigov.services import csv_import
from comunigov.services.csv_import import (
    CSVImportError, decode_csv, import_entities, import_entity_members, read_rows,
    MEMBER_HEADER_ALIASES, MEMBER_REQUIRED
)


def test_decode_rejects_empty_file():
    with pytest.raises(CSVImportError):
        decode_csv(b"   \n")


def test_decode_strips_bom():
    assert decode_csv("\ufeffname\n".encode("utf-8")) == "name\n"


def test_read_rows_maps_aliases_and_skips_blank_lines():
    text = "Nome,Email,Função,Telefone\nAna,ana@example.com,Clerk,123\n,,,\n"
    rows = read_rows(text, MEMBER_REQUIRED, MEMBER_HEADER_ALIASES)
    assert rows == [{
        "fullName": "Ana", "email": "ana@example.com", "position": "Clerk", "phone": "123"
    }]


def test_read_rows_reports_missing_columns():
    with pytest.raises(CSVImportError) as exc:
        read_rows("fullName,position\nAna,Clerk\n", MEMBER_REQUIRED, MEMBER_HEADER_ALIASES)
    assert "email" in str(exc.value)


class TestEntityImport:

    @pytest.mark.asyncio
    async def test_rows_are_independent(self, db_session, master_user):
        content = (
            "name,type,headName,headPosition,headEmail,website\n"
            "Water Agency,government_agency,Wes,Director,WES@water.example.com,https://water.example.com\n"
            "No Email,council,Nina,Chair,not-an-email,\n"
            ",council,Nobody,Chair,nobody@example.com,\n"
        ).encode()

        result = await import_entities(db_session, content, master_user.id)

        assert result.total_processed == 3
        assert result.success == 1
        assert result.failed == 2
        assert result.errors[0].startswith("Row 3: Invalid head email")
        assert result.errors[1] == "Row 4: Missing required field(s): name"

        entity = (await db_session.execute(
            select(Entity).where(Entity.id == result.created_ids[0])
        )).scalar_one()
        assert entity.type == EntityType.GOVERNMENT_AGENCY
        assert entity.head_email == "wes@water.example.com"
        assert entity.website == "https://water.example.com"
        assert entity.tags == []


class TestMemberImport:

    @pytest.mark.asyncio
    async def test_creates_members_with_unique_usernames(
        self, db_session, master_user, test_entity, member_user, isolated_files
    ):
        content = (
            "fullName,email,position,role\n"
            "Mario Second,mario.member@other.example.com,Driver,\n"
            "Heidi Head,heidi@example.com,Coordinator,entity_head\n"
        ).encode()

        result = await import_entity_members(db_session, content, test_entity.id, master_user.id)

        assert result.success == 2
        usernames = [u["username"] for u in result.created_users]
        assert usernames == ["mario.member1", "heidi"]

        heidi = (await db_session.execute(select(User).where(User.username == "heidi"))).scalar_one()
        assert heidi.role == UserRole.ENTITY_HEAD
        assert heidi.require_password_change is True
        assert "heidi@example.com" in (isolated_files / "emails.log").read_text()

    @pytest.mark.asyncio
    async def test_duplicate_emails_fail(self, db_session, master_user, test_entity, member_user):
        content = (
            "fullName,email,position\n"
            "Copy Of Mario,MARIO.MEMBER@example.com,Driver\n"
            "Pat,pat@example.com,Clerk\n"
            "Pat Again,pat@example.com,Clerk\n"
        ).encode()

        result = await import_entity_members(
            db_session, content, test_entity.id, master_user.id, send_welcome=False
        )

        assert result.success == 1
        assert result.failed == 2
        assert result.errors[0].startswith("Row 2:")
        assert result.errors[1].startswith("Row 4:")

    @pytest.mark.asyncio
    async def test_database_error_fails_only_its_row(
        self, db_session, master_user, test_entity, member_user, monkeypatch
    ):
        async def clashing_username(db, base, taken):
            return "mario.member" if base == "clash" else base

        monkeypatch.setattr(csv_import, "_unique_username", clashing_username)
        content = (
            "fullName,email,position\n"
            "Clash,clash@example.com,Clerk\n"
            "Pat,pat@example.com,Clerk\n"
        ).encode()

        result = await import_entity_members(
            db_session, content, test_entity.id, master_user.id, send_welcome=False
        )

        assert result.success == 1
        assert result.errors[0].startswith("Row 2: Could not save member")
        emails = (await db_session.execute(
            select(User.email).where(User.entity_id == test_entity.id).order_by(User.email)
        )).scalars().all()
        assert emails == ["mario.member@example.com", "pat@example.com"]

    @pytest.mark.asyncio
    async def test_unknown_entity(self, db_session, master_user):
        with pytest.raises(CSVImportError):
            await import_entity_members(db_session, b"fullName,email,position\n", "missingentity00", master_user.id)
