"""
User management endpoints.

Endpoints:
- GET /api/v1/users - List users (scoped)
- POST /api/v1/users - Create user (master, or entity head within own entity)
- GET /api/v1/users/me/activity-logs - Own activity
- GET /api/v1/users/{user_id} - Get user
- GET /api/v1/users/{user_id}/entity - Get the user's entity
- PATCH /api/v1/users/{user_id} - Update user (self or master)
- PUT /api/v1/users/{user_id}/notifications - Notification preferences (self)
- POST /api/v1/users/{user_id}/reset-password - Set a new password (master)
- GET /api/v1/users/{user_id}/badges - Earned badges (self or master)
- GET /api/v1/users/{user_id}/featured-badges - Featured badges
- POST /api/v1/users/{user_id}/badges - Award a badge (master)
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select, or_, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from comunigov.api.v1.converters import (
    activity_log_to_response, entity_to_response, user_badge_to_response, user_to_response
)
from comunigov.api.v1.pagination import paginate
from comunigov.core.deps import get_current_user, require_master_implementer
from comunigov.core.permissions import deny, is_master, is_entity_head
from comunigov.core.security import get_password_hash
from comunigov.db.base import get_db
from comunigov.models.activity_log import UserActivityLog
from comunigov.models.badge import AchievementBadge, UserBadge
from comunigov.models.entity import Entity
from comunigov.models.user import User, UserRole
from comunigov.schemas.activity_log import ActivityLogResponse
from comunigov.schemas.badge import UserBadgeAward, UserBadgeResponse
from comunigov.schemas.common import MessageResponse, PaginatedResponse
from comunigov.schemas.entity import EntityResponse
from comunigov.schemas.user import (
    UserCreate, UserUpdate, UserResponse, NotificationPreferences, PasswordReset
)
from comunigov.services.activity_logger import ActivityLogger
from comunigov.services.email import email_service

logger = logging.getLogger(__name__)

router = APIRouter()

MASTER_ONLY_FIELDS = {"role", "entity_id", "username", "is_active"}


async def get_user_or_404(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def _get_entity(db: AsyncSession, entity_id: str) -> Optional[Entity]:
    result = await db.execute(select(Entity).where(Entity.id == entity_id))
    return result.scalar_one_or_none()


async def _ensure_unique(
    db: AsyncSession,
    username: Optional[str] = None,
    email: Optional[str] = None,
    exclude_id: Optional[str] = None
):
    if username:
        query = select(User.id).where(User.username == username)
        if exclude_id:
            query = query.where(User.id != exclude_id)
        if (await db.execute(query)).first() is not None:
            raise HTTPException(status_code=400, detail="Username already in use")
    if email:
        query = select(User.id).where(func.lower(User.email) == email.lower())
        if exclude_id:
            query = query.where(User.id != exclude_id)
        if (await db.execute(query)).first() is not None:
            raise HTTPException(status_code=400, detail="Email already in use")


@router.get("", response_model=PaginatedResponse[UserResponse])
async def list_users(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=500),
    entity_id: Optional[str] = None,
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List users. Non-masters see the users of their own entity."""
    query = select(User)

    if not is_master(current_user):
        if current_user.entity_id:
            query = query.where(User.entity_id == current_user.entity_id)
        else:
            query = query.where(User.id == current_user.id)

    if entity_id:
        query = query.where(User.entity_id == entity_id)
    if role:
        query = query.where(User.role == role)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(
            User.full_name.ilike(pattern),
            User.username.ilike(pattern),
            User.email.ilike(pattern),
        ))

    query = query.order_by(User.full_name.asc())
    return await paginate(db, query, page, perPage, user_to_response)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: UserCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Create a user.

    Masters may create any role in any entity. Entity heads may only create
    entity heads or members inside their own entity.
    """
    entity_id = data.entity_id
    if is_entity_head(current_user):
        if data.role == UserRole.MASTER_IMPLEMENTER:
            await deny(db, current_user, "user", request=request,
                       detail="Entity heads cannot create master implementers")
        if entity_id and entity_id != current_user.entity_id:
            await deny(db, current_user, "entity", entity_id, request,
                       detail="Entity heads can only create users in their own entity")
        entity_id = current_user.entity_id
    elif not is_master(current_user):
        await deny(db, current_user, "user", request=request)

    await _ensure_unique(db, data.username, data.email)

    entity = None
    if entity_id:
        entity = await _get_entity(db, entity_id)
        if entity is None:
            raise HTTPException(status_code=400, detail="Entity does not exist")

    user = User(
        username=data.username,
        email=data.email,
        password_hash=get_password_hash(data.password),
        full_name=data.full_name,
        role=data.role,
        entity_id=entity_id,
        phone=data.phone,
        whatsapp=data.whatsapp,
        telegram=data.telegram,
        position=data.position,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)

    await ActivityLogger.log_create(db, current_user.id, "user", user.id, f'Created user "{user.username}"', request)

    if entity is not None and user.role in (UserRole.ENTITY_HEAD, UserRole.ENTITY_MEMBER):
        sent = await email_service.send_welcome_email(
            user.email, user.full_name, user.username, data.password, entity.name
        )
        if not sent:
            logger.warning("Welcome email to user %s failed", user.id)

    return user_to_response(user)


@router.get("/me/activity-logs", response_model=PaginatedResponse[ActivityLogResponse])
async def my_activity_logs(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = (
        select(UserActivityLog)
        .where(UserActivityLog.user_id == current_user.id)
        .order_by(UserActivityLog.created.desc())
    )
    return await paginate(db, query, page, perPage, activity_log_to_response)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    user = await get_user_or_404(db, user_id)
    same_entity = user.entity_id is not None and user.entity_id == current_user.entity_id
    if not (is_master(current_user) or user.id == current_user.id or same_entity):
        await deny(db, current_user, "user", user_id, request)
    return user_to_response(user)


@router.get("/{user_id}/entity", response_model=EntityResponse)
async def get_user_entity(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    user = await get_user_or_404(db, user_id)
    if not user.entity_id:
        raise HTTPException(status_code=404, detail="User has no entity")
    entity = await _get_entity(db, user.entity_id)
    if entity is None:
        raise HTTPException(status_code=404, detail="Entity not found")
    return entity_to_response(entity)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    data: UserUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Update a user. Self or master; some fields are master-only."""
    user = await get_user_or_404(db, user_id)
    if not (is_master(current_user) or user.id == current_user.id):
        await deny(db, current_user, "user", user_id, request)

    update_data = data.model_dump(exclude_unset=True)
    if not is_master(current_user):
        restricted = MASTER_ONLY_FIELDS & set(update_data)
        if restricted:
            raise HTTPException(
                status_code=403,
                detail=f"Only a master implementer can change: {', '.join(sorted(restricted))}"
            )

    await _ensure_unique(db, update_data.get("username"), update_data.get("email"), user.id)
    if update_data.get("entity_id") and await _get_entity(db, update_data["entity_id"]) is None:
        raise HTTPException(status_code=400, detail="Entity does not exist")

    for field, value in update_data.items():
        setattr(user, field, value)

    await db.flush()
    await db.refresh(user)
    await ActivityLogger.log_update(db, current_user.id, "user", user.id, request=request,
                                    metadata={"fields": sorted(update_data)})
    return user_to_response(user)


@router.put("/{user_id}/notifications", response_model=UserResponse)
async def update_notifications(
    user_id: str,
    data: NotificationPreferences,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    user = await get_user_or_404(db, user_id)
    if user.id != current_user.id:
        await deny(db, current_user, "user", user_id, request)

    for field, value in data.model_dump().items():
        setattr(user, field, value)
    await db.flush()
    await db.refresh(user)
    await ActivityLogger.log_update(db, current_user.id, "user", user.id, "Updated notification preferences", request)
    return user_to_response(user)


@router.post("/{user_id}/reset-password", response_model=MessageResponse)
async def reset_password(
    user_id: str,
    data: PasswordReset,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_master_implementer)
):
    """Set a new password and force a change on next login."""
    user = await get_user_or_404(db, user_id)
    user.password_hash = get_password_hash(data.new_password)
    user.require_password_change = True
    await ActivityLogger.log_update(db, current_user.id, "user", user.id, "Reset password", request)

    if user.role in (UserRole.ENTITY_HEAD, UserRole.ENTITY_MEMBER):
        sent = await email_service.send_password_reset_email(
            user.email, user.full_name, user.username, data.new_password
        )
        if not sent:
            logger.warning("Password reset email to user %s failed", user.id)

    return MessageResponse(message="Password reset successfully")


@router.get("/{user_id}/badges", response_model=list[UserBadgeResponse])
async def get_user_badges(
    user_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_user_or_404(db, user_id)
    if not (is_master(current_user) or user_id == current_user.id):
        await deny(db, current_user, "user_badge", user_id, request)

    result = await db.execute(
        select(UserBadge)
        .options(selectinload(UserBadge.badge))
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at.desc())
    )
    return [user_badge_to_response(ub, ub.badge) for ub in result.scalars().all()]


@router.get("/{user_id}/featured-badges", response_model=list[UserBadgeResponse])
async def get_featured_badges(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_user_or_404(db, user_id)
    result = await db.execute(
        select(UserBadge)
        .options(selectinload(UserBadge.badge))
        .where(UserBadge.user_id == user_id, UserBadge.featured.is_(True))
        .order_by(UserBadge.earned_at.desc())
    )
    return [user_badge_to_response(ub, ub.badge) for ub in result.scalars().all()]


@router.post("/{user_id}/badges", response_model=UserBadgeResponse, status_code=status.HTTP_201_CREATED)
async def award_badge(
    user_id: str,
    data: UserBadgeAward,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_master_implementer)
):
    await get_user_or_404(db, user_id)
    badge_result = await db.execute(select(AchievementBadge).where(AchievementBadge.id == data.badge_id))
    badge = badge_result.scalar_one_or_none()
    if badge is None:
        raise HTTPException(status_code=404, detail="Badge not found")

    existing = await db.execute(
        select(UserBadge.id).where(UserBadge.user_id == user_id, UserBadge.badge_id == badge.id)
    )
    if existing.first() is not None:
        raise HTTPException(status_code=409, detail="User already has this badge")

    user_badge = UserBadge(user_id=user_id, badge_id=badge.id, progress=data.progress)
    db.add(user_badge)
    await db.flush()
    await db.refresh(user_badge)
    await ActivityLogger.log_create(db, current_user.id, "user_badge", user_badge.id,
                                    f'Awarded badge "{badge.name}"', request)
    return user_badge_to_response(user_badge, badge)
