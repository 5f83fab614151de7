#!/usr/bin/env python3
"""
Seeding script for ComuniGov.

Creates:
- The default achievement badges
- A master implementer account (when none exists)
- Optionally (--demo) a demo secretariat with an entity head and a member

Usage:
    python scripts/seed.py [--demo]

Requires:
    - DATABASE_URL pointing at a migrated database
    - SEED_ADMIN_PASSWORD to choose the master password (a random one is printed otherwise)
"""
import argparse
import asyncio
import os
import sys

from sqlalchemy import select

from comunigov.core.security import generate_temporary_password, get_password_hash
from comunigov.db.base import async_session_maker
from comunigov.models.entity import Entity, EntityType
from comunigov.models.user import User, UserRole
from comunigov.services.achievements import ensure_default_badges

# Configuration
ADMIN_USERNAME = os.getenv("SEED_ADMIN_USERNAME", "admin")
ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@comunigov.local")
DEMO_PASSWORD = "Demo123!"


async def create_master(session) -> None:
    result = await session.execute(
        select(User).where(User.role == UserRole.MASTER_IMPLEMENTER).limit(1)
    )
    if result.scalar_one_or_none() is not None:
        print("Master implementer already exists, skipping")
        return

    password = os.getenv("SEED_ADMIN_PASSWORD") or generate_temporary_password(12)
    session.add(User(
        username=ADMIN_USERNAME,
        email=ADMIN_EMAIL,
        full_name="Master Implementer",
        password_hash=get_password_hash(password),
        role=UserRole.MASTER_IMPLEMENTER,
        require_password_change=not os.getenv("SEED_ADMIN_PASSWORD"),
    ))
    await session.flush()
    print(f"Created master implementer '{ADMIN_USERNAME}'")
    if not os.getenv("SEED_ADMIN_PASSWORD"):
        print(f"  Temporary password: {password}")


async def create_demo_entity(session) -> None:
    result = await session.execute(select(Entity).where(Entity.name == "Demo Secretariat"))
    if result.scalar_one_or_none() is not None:
        print("Demo entity already exists, skipping")
        return

    entity = Entity(
        name="Demo Secretariat",
        type=EntityType.SECRETARIAT,
        head_name="Demo Head",
        head_position="Secretary",
        head_email="head@demo.comunigov.local",
        tags=["demo"],
    )
    session.add(entity)
    await session.flush()

    for username, role, full_name in (
        ("demo.head", UserRole.ENTITY_HEAD, "Demo Head"),
        ("demo.member", UserRole.ENTITY_MEMBER, "Demo Member"),
    ):
        session.add(User(
            username=username,
            email=f"{username}@demo.comunigov.local",
            full_name=full_name,
            password_hash=get_password_hash(DEMO_PASSWORD),
            role=role,
            entity_id=entity.id,
        ))
    await session.flush()
    print(f"Created demo entity '{entity.name}' with users demo.head / demo.member ({DEMO_PASSWORD})")


async def main(demo: bool) -> int:
    async with async_session_maker() as session:
        created = await ensure_default_badges(session)
        print(f"Default badges: {created} created")
        await create_master(session)
        if demo:
            await create_demo_entity(session)
        await session.commit()
    print("\nSeeding complete")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a ComuniGov database")
    parser.add_argument("--demo", action="store_true", help="also create demo entity and users")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.demo)))
