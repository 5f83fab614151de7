"""
Test configuration and fixtures for ComuniGov backend tests.
"""
import os
import pytest
import pytest_asyncio
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from comunigov.main import app
from comunigov.core.config import settings
from comunigov.db.base import Base, get_db
from comunigov.core.security import get_password_hash, create_access_token
from comunigov.models.user import User, UserRole
from comunigov.models.entity import Entity, EntityType
from comunigov.models.subject import Subject
from comunigov.services.achievements import ensure_default_badges
from comunigov.services.email import email_service


# Use a file-based SQLite DB to avoid :memory: multiple-connection issues
# with SQLAlchemy + aiosqlite (each new connection would see an empty DB).
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

TEST_PASSWORD = "Password123"


@pytest.fixture(autouse=True)
def isolated_files(tmp_path, monkeypatch):
    """Uploads and the development email log go to a per-test directory."""
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(email_service, "debug", True)
    monkeypatch.setattr(email_service, "email_log_path", tmp_path / "emails.log")
    return tmp_path


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
    # Clean up test database file
    try:
        os.remove("./test.db")
    except OSError:
        pass


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def default_badges(db_session: AsyncSession) -> int:
    """Seed the milestone badges."""
    return await ensure_default_badges(db_session)


async def make_user(
    db_session: AsyncSession,
    username: str,
    role: UserRole,
    entity: Entity = None,
    **fields
) -> User:
    user = User(
        username=username,
        email=fields.pop("email", f"{username}@example.com"),
        full_name=fields.pop("full_name", username.replace(".", " ").title()),
        password_hash=get_password_hash(TEST_PASSWORD),
        role=role,
        entity_id=entity.id if entity else None,
        **fields
    )
    db_session.add(user)
    await db_session.flush()
    return user


def headers_for(user: User) -> dict:
    """Authorization headers for a user."""
    token = create_access_token(user.id, role=user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_entity(db_session: AsyncSession) -> Entity:
    """Create the main test entity."""
    entity = Entity(
        name="Health Secretariat",
        type=EntityType.SECRETARIAT,
        head_name="Helena Head",
        head_position="Secretary",
        head_email="secretary@health.example.com",
        tags=["health", "priority"],
    )
    db_session.add(entity)
    await db_session.flush()
    return entity


@pytest_asyncio.fixture
async def other_entity(db_session: AsyncSession) -> Entity:
    """Create a second, unrelated entity."""
    entity = Entity(
        name="Neighborhood Association",
        type=EntityType.ASSOCIATION,
        head_name="Otto Other",
        head_position="President",
        head_email="president@association.example.com",
        tags=["community"],
    )
    db_session.add(entity)
    await db_session.flush()
    return entity


@pytest_asyncio.fixture
async def master_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "master", UserRole.MASTER_IMPLEMENTER, full_name="Master User")


@pytest_asyncio.fixture
async def head_user(db_session: AsyncSession, test_entity: Entity) -> User:
    return await make_user(db_session, "helena.head", UserRole.ENTITY_HEAD, test_entity)


@pytest_asyncio.fixture
async def member_user(db_session: AsyncSession, test_entity: Entity) -> User:
    return await make_user(
        db_session, "mario.member", UserRole.ENTITY_MEMBER, test_entity,
        whatsapp="+5511999998888", telegram="@mario_member"
    )


@pytest_asyncio.fixture
async def outsider_user(db_session: AsyncSession, other_entity: Entity) -> User:
    return await make_user(db_session, "olga.outsider", UserRole.ENTITY_MEMBER, other_entity)


@pytest_asyncio.fixture
async def master_headers(master_user: User) -> dict:
    return headers_for(master_user)


@pytest_asyncio.fixture
async def head_headers(head_user: User) -> dict:
    return headers_for(head_user)


@pytest_asyncio.fixture
async def member_headers(member_user: User) -> dict:
    return headers_for(member_user)


@pytest_asyncio.fixture
async def outsider_headers(outsider_user: User) -> dict:
    return headers_for(outsider_user)


@pytest_asyncio.fixture
async def test_subject(db_session: AsyncSession, head_user: User) -> Subject:
    """Subject created by the entity head."""
    subject = Subject(name="Vaccination campaign", description="Winter campaign", created_by_id=head_user.id)
    db_session.add(subject)
    await db_session.flush()
    return subject
