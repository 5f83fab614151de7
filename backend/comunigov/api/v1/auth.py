"""
Authentication endpoints.

Endpoints:
- POST /api/v1/auth/login - Username/password login
- POST /api/v1/auth/logout - Record logout (token is discarded client-side)
- POST /api/v1/auth/refresh - Issue a fresh token
- GET /api/v1/auth/me - Current user
- POST /api/v1/auth/change-password - Change own password
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.api.v1.converters import user_to_response
from comunigov.core.deps import get_current_user
from comunigov.core.security import create_access_token, get_password_hash, verify_password
from comunigov.db.base import get_db
from comunigov.models.user import User
from comunigov.schemas.auth import LoginRequest, PasswordChange, TokenResponse
from comunigov.schemas.common import MessageResponse
from comunigov.schemas.user import UserResponse
from comunigov.services.achievements import record_milestone
from comunigov.services.activity_logger import ActivityLogger

logger = logging.getLogger(__name__)

router = APIRouter()


def _token_for(user: User) -> str:
    return create_access_token(user.id, role=user.role.value, entity_id=user.entity_id)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Authenticate with username and password."""
    result = await db.execute(select(User).where(User.username == credentials.username))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(credentials.password, user.password_hash):
        logger.info("Failed login for username %s", credentials.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password"
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is inactive"
        )

    await ActivityLogger.log_login(db, user.id, request)
    await record_milestone(db, user.id, "first_login")

    return TokenResponse(token=_token_for(user), record=user_to_response(user))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ActivityLogger.log_logout(db, current_user.id, request)
    return MessageResponse(message="Logged out")


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(current_user: User = Depends(get_current_user)):
    return TokenResponse(token=_token_for(current_user), record=user_to_response(current_user))


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return user_to_response(current_user)


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    data: PasswordChange,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Change own password and clear the forced-change flag."""
    if not verify_password(data.current_password, current_user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect"
        )

    current_user.password_hash = get_password_hash(data.new_password)
    current_user.require_password_change = False
    await ActivityLogger.log_update(db, current_user.id, "user", current_user.id, "Changed password", request)

    return MessageResponse(message="Password changed successfully")
