"""
Achievement badge endpoints.

Endpoints:
- GET /api/v1/badges - List badges (filter by category)
- POST /api/v1/badges - Create badge (master)
- GET /api/v1/badges/{badge_id} - Get badge
- PATCH /api/v1/badges/{badge_id} - Update badge (master)
- PATCH /api/v1/user-badges/{user_badge_id} - Feature/seen flags
- POST /api/v1/user-badges/mark-seen - Mark own badges as seen
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.api.v1.converters import badge_to_response, user_badge_to_response
from comunigov.core.deps import get_current_user, require_master_implementer
from comunigov.core.permissions import deny, is_master
from comunigov.db.base import get_db
from comunigov.models.badge import AchievementBadge, UserBadge
from comunigov.models.user import User
from comunigov.schemas.badge import (
    BadgeCreate, BadgeUpdate, BadgeResponse,
    UserBadgeUpdate, UserBadgeResponse, MarkSeenRequest
)
from comunigov.schemas.common import MessageResponse
from comunigov.services.activity_logger import ActivityLogger

router = APIRouter()
user_badges_router = APIRouter()


async def _get_badge(db: AsyncSession, badge_id: str) -> AchievementBadge:
    result = await db.execute(select(AchievementBadge).where(AchievementBadge.id == badge_id))
    badge = result.scalar_one_or_none()
    if badge is None:
        raise HTTPException(status_code=404, detail="Badge not found")
    return badge


async def _name_taken(db: AsyncSession, name: str, exclude_id: Optional[str] = None) -> bool:
    query = select(AchievementBadge.id).where(AchievementBadge.name == name)
    if exclude_id:
        query = query.where(AchievementBadge.id != exclude_id)
    return (await db.execute(query)).first() is not None


@router.get("", response_model=list[BadgeResponse])
async def list_badges(
    category: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(AchievementBadge)
    if category:
        query = query.where(AchievementBadge.category == category)
    query = query.order_by(AchievementBadge.category, AchievementBadge.level)
    result = await db.execute(query)
    return [badge_to_response(b) for b in result.scalars().all()]


@router.post("", response_model=BadgeResponse, status_code=status.HTTP_201_CREATED)
async def create_badge(
    data: BadgeCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_master_implementer)
):
    if await _name_taken(db, data.name):
        raise HTTPException(status_code=409, detail="A badge with this name already exists")

    badge = AchievementBadge(**data.model_dump())
    db.add(badge)
    await db.flush()
    await ActivityLogger.log_create(db, current_user.id, "badge", badge.id, f'Created badge "{badge.name}"', request)
    return badge_to_response(badge)


@router.get("/{badge_id}", response_model=BadgeResponse)
async def get_badge(
    badge_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return badge_to_response(await _get_badge(db, badge_id))


@router.patch("/{badge_id}", response_model=BadgeResponse)
async def update_badge(
    badge_id: str,
    data: BadgeUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_master_implementer)
):
    badge = await _get_badge(db, badge_id)
    update_data = data.model_dump(exclude_unset=True)
    if "name" in update_data and await _name_taken(db, update_data["name"], badge.id):
        raise HTTPException(status_code=409, detail="A badge with this name already exists")

    for field, value in update_data.items():
        setattr(badge, field, value)
    await db.flush()
    await db.refresh(badge)
    await ActivityLogger.log_update(db, current_user.id, "badge", badge.id, request=request)
    return badge_to_response(badge)


@user_badges_router.post("/mark-seen", response_model=MessageResponse)
async def mark_badges_seen(
    data: MarkSeenRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Mark the caller's badges (by badge id) as seen."""
    await db.execute(
        update(UserBadge)
        .where(UserBadge.user_id == current_user.id, UserBadge.badge_id.in_(data.badge_ids))
        .values(seen=True)
    )
    await ActivityLogger.log_update(
        db, current_user.id, "user_badge", None,
        f"Marked {len(data.badge_ids)} badge(s) as seen", request,
        metadata={"badge_ids": data.badge_ids}
    )
    return MessageResponse(message="Badges marked as seen")


@user_badges_router.patch("/{user_badge_id}", response_model=UserBadgeResponse)
async def update_user_badge(
    user_badge_id: str,
    data: UserBadgeUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Owners may toggle ``featured``; masters may also set ``seen`` and ``progress``."""
    result = await db.execute(select(UserBadge).where(UserBadge.id == user_badge_id))
    user_badge = result.scalar_one_or_none()
    if user_badge is None:
        raise HTTPException(status_code=404, detail="User badge not found")

    update_data = data.model_dump(exclude_unset=True)
    if not is_master(current_user):
        if user_badge.user_id != current_user.id:
            await deny(db, current_user, "user_badge", user_badge_id, request)
        if set(update_data) - {"featured"}:
            raise HTTPException(status_code=403, detail="Only the featured flag can be changed")

    for field, value in update_data.items():
        setattr(user_badge, field, value)
    await db.flush()
    await db.refresh(user_badge)

    badge = await _get_badge(db, user_badge.badge_id)
    return user_badge_to_response(user_badge, badge)
