"""
CSV bulk import of entities and entity members.

Rows are processed independently: a bad row is reported as
``"Row N: <reason>"`` (N counts the header as row 1) and the import goes on.
File-level problems raise ``CSVImportError``.
"""
import csv
import io
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Optional

from pydantic.networks import validate_email
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.core.security import generate_temporary_password, get_password_hash
from comunigov.models.entity import Entity, EntityType
from comunigov.models.user import User, UserRole
from comunigov.services.activity_logger import ActivityLogger
from comunigov.services.email import email_service

logger = logging.getLogger(__name__)

ENTITY_REQUIRED = ["name", "type", "headName", "headPosition", "headEmail"]

MEMBER_REQUIRED = ["fullName", "email", "position"]

# normalized header -> canonical column
MEMBER_HEADER_ALIASES = {
    "fullname": "fullName",
    "nomecompleto": "fullName",
    "nome": "fullName",
    "name": "fullName",
    "email": "email",
    "e-mail": "email",
    "position": "position",
    "cargo": "position",
    "funcao": "position",
    "phone": "phone",
    "telefone": "phone",
    "celular": "phone",
    "whatsapp": "whatsapp",
    "telegram": "telegram",
    "role": "role",
    "papel": "role",
    "perfil": "role",
}

VALID_ENTITY_TYPES = [t.value for t in EntityType]
USERNAME_CLEAN_RE = re.compile(r"[^a-z0-9._]")


class CSVImportError(Exception):
    """The uploaded file cannot be imported at all."""


@dataclass
class ImportResult:
    total_processed: int = 0
    success: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    created_ids: list[str] = field(default_factory=list)
    created_users: list[dict] = field(default_factory=list)

    def add_error(self, row_number: int, reason: str) -> None:
        self.failed += 1
        self.errors.append(f"Row {row_number}: {reason}")


def decode_csv(content: bytes) -> str:
    if not content or not content.strip():
        raise CSVImportError("The uploaded file is empty")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise CSVImportError("The file must be UTF-8 encoded")


def _normalize_header(header: str) -> str:
    text = unicodedata.normalize("NFKD", header or "")
    text = "".join(c for c in text if not unicodedata.combining(c))
    return re.sub(r"[\s_]", "", text.strip().lower())


def read_rows(text: str, required: list[str], aliases: Optional[dict[str, str]] = None) -> list[dict]:
    """Parse CSV text into dicts keyed by canonical column names."""
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise CSVImportError("The CSV file has no header row")

    mapping = {}
    for header in reader.fieldnames:
        if header is None:
            continue
        if aliases is not None:
            canonical = aliases.get(_normalize_header(header))
        else:
            canonical = header.strip()
        if canonical and canonical not in mapping.values():
            mapping[header] = canonical

    missing = [c for c in required if c not in mapping.values()]
    if missing:
        raise CSVImportError(f"Missing required columns: {', '.join(missing)}")

    rows = []
    for raw in reader:
        row = {
            canonical: (raw.get(header) or "").strip()
            for header, canonical in mapping.items()
        }
        # skip blank lines
        if any(row.values()):
            rows.append(row)
    return rows


def _check_email(value: str) -> str:
    _, email = validate_email(value)
    return email.lower()


def _db_error(exc: SQLAlchemyError) -> str:
    return str(getattr(exc, "orig", None) or exc).splitlines()[0]


async def import_entities(db: AsyncSession, content: bytes, user_id: str) -> ImportResult:
    """Create one entity per CSV row."""
    rows = read_rows(decode_csv(content), ENTITY_REQUIRED)
    result = ImportResult(total_processed=len(rows))

    for index, row in enumerate(rows, start=2):
        missing = [c for c in ENTITY_REQUIRED if not row.get(c)]
        if missing:
            result.add_error(index, f"Missing required field(s): {', '.join(missing)}")
            continue

        entity_type = row["type"].strip().lower()
        if entity_type not in VALID_ENTITY_TYPES:
            result.add_error(
                index,
                f'Invalid entity type "{entity_type}". Valid types are: {", ".join(VALID_ENTITY_TYPES)}'
            )
            continue

        try:
            head_email = _check_email(row["headEmail"])
        except ValueError:
            result.add_error(index, f'Invalid head email "{row["headEmail"]}"')
            continue

        tags = [t.strip() for t in row.get("tags", "").split(",") if t.strip()]
        entity = Entity(
            name=row["name"],
            type=EntityType(entity_type),
            head_name=row["headName"],
            head_position=row["headPosition"],
            head_email=head_email,
            address=row.get("address") or None,
            phone=row.get("phone") or None,
            website=row.get("website") or None,
            social_media=row.get("socialMedia") or None,
            tags=tags,
        )
        try:
            async with db.begin_nested():
                db.add(entity)
                await db.flush()
        except SQLAlchemyError as e:
            logger.warning("Entity import row %d not saved: %s", index, e)
            result.add_error(index, f"Could not save entity: {_db_error(e)}")
            continue

        await ActivityLogger.log_create(
            db, user_id, "entity", entity.id,
            f'Imported entity "{entity.name}" from CSV'
        )
        result.success += 1
        result.created_ids.append(entity.id)

    logger.info(
        "Entity import by %s: %d created, %d failed", user_id, result.success, result.failed
    )
    return result


def _username_base(email: str) -> str:
    local = email.split("@", 1)[0].lower()
    return USERNAME_CLEAN_RE.sub("", local) or "user"


async def _unique_username(db: AsyncSession, base: str, taken: set[str]) -> str:
    candidate = base
    suffix = 1
    while True:
        if candidate not in taken:
            exists = await db.execute(select(User.id).where(User.username == candidate))
            if exists.first() is None:
                return candidate
        candidate = f"{base}{suffix}"
        suffix += 1


async def import_entity_members(
    db: AsyncSession,
    content: bytes,
    entity_id: str,
    user_id: str,
    send_welcome: bool = True,
) -> ImportResult:
    """Create one user of ``entity_id`` per CSV row.

    Each user gets a temporary password and must change it on first login.
    """
    entity_result = await db.execute(select(Entity).where(Entity.id == entity_id))
    entity = entity_result.scalar_one_or_none()
    if entity is None:
        raise CSVImportError("Entity not found")

    rows = read_rows(decode_csv(content), MEMBER_REQUIRED, MEMBER_HEADER_ALIASES)
    result = ImportResult(total_processed=len(rows))
    taken_usernames: set[str] = set()
    seen_emails: set[str] = set()

    for index, row in enumerate(rows, start=2):
        missing = [c for c in MEMBER_REQUIRED if not row.get(c)]
        if missing:
            result.add_error(index, f"Missing required field(s): {', '.join(missing)}")
            continue

        try:
            email = _check_email(row["email"])
        except ValueError:
            result.add_error(index, f'Invalid email "{row["email"]}"')
            continue

        existing = await db.execute(
            select(User.id).where(func.lower(User.email) == email)
        )
        if email in seen_emails or existing.first() is not None:
            result.add_error(index, f'A user with email "{email}" already exists')
            continue

        role_value = (row.get("role") or "").strip().lower()
        role = UserRole.ENTITY_HEAD if role_value == UserRole.ENTITY_HEAD.value else UserRole.ENTITY_MEMBER

        username = await _unique_username(db, _username_base(email), taken_usernames)
        password = generate_temporary_password()

        user = User(
            username=username,
            email=email,
            password_hash=get_password_hash(password),
            full_name=row["fullName"],
            role=role,
            position=row.get("position") or None,
            phone=row.get("phone") or None,
            whatsapp=row.get("whatsapp") or None,
            telegram=row.get("telegram") or None,
            entity_id=entity.id,
            require_password_change=True,
        )
        try:
            async with db.begin_nested():
                db.add(user)
                await db.flush()
        except SQLAlchemyError as e:
            logger.warning("Member import row %d not saved: %s", index, e)
            result.add_error(index, f"Could not save member: {_db_error(e)}")
            continue

        taken_usernames.add(username)
        seen_emails.add(email)
        await ActivityLogger.log_create(
            db, user_id, "user", user.id,
            f'Imported member "{user.full_name}" into entity "{entity.name}"'
        )
        result.success += 1
        result.created_ids.append(user.id)
        result.created_users.append({
            "id": user.id,
            "username": username,
            "email": email,
            "full_name": user.full_name,
            "temporary_password": password,
        })

        if send_welcome:
            sent = await email_service.send_welcome_email(
                email, user.full_name, username, password, entity.name
            )
            if not sent:
                logger.warning("Welcome email to imported member %s failed", user.id)

    logger.info(
        "Member import into %s by %s: %d created, %d failed",
        entity_id, user_id, result.success, result.failed
    )
    return result
