"""
Activity log endpoints.

Endpoints:
- GET /api/v1/activity-logs - All activity (master)
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.api.v1.converters import activity_log_to_response
from comunigov.api.v1.pagination import paginate
from comunigov.core.deps import require_master_implementer
from comunigov.db.base import get_db
from comunigov.models.activity_log import UserActivityLog, UserAction
from comunigov.models.user import User
from comunigov.schemas.activity_log import ActivityLogResponse
from comunigov.schemas.common import PaginatedResponse

router = APIRouter()


@router.get("", response_model=PaginatedResponse[ActivityLogResponse])
async def list_activity_logs(
    page: int = Query(1, ge=1),
    perPage: int = Query(50, ge=1, le=500),
    user_id: Optional[str] = None,
    action: Optional[UserAction] = None,
    entity_type: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_master_implementer)
):
    query = select(UserActivityLog)
    if user_id:
        query = query.where(UserActivityLog.user_id == user_id)
    if action:
        query = query.where(UserActivityLog.action == action)
    if entity_type:
        query = query.where(UserActivityLog.entity_type == entity_type)

    query = query.order_by(UserActivityLog.created.desc())
    return await paginate(db, query, page, perPage, activity_log_to_response)
