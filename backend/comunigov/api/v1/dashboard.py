"""
Dashboard endpoints.

Endpoints:
- GET /api/v1/dashboard/stats - Summary counters for the home screen
"""
from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.core.deps import get_current_user
from comunigov.core.permissions import meeting_visibility, task_visibility
from comunigov.db.base import get_db
from comunigov.models.base import utcnow
from comunigov.models.entity import Entity
from comunigov.models.meeting import Meeting
from comunigov.models.task import Task, TaskStatus
from comunigov.models.user import User
from comunigov.schemas.dashboard import DashboardStats

router = APIRouter()


async def _count(db: AsyncSession, query) -> int:
    result = await db.execute(select(func.count()).select_from(query.subquery()))
    return result.scalar() or 0


@router.get("/stats", response_model=DashboardStats)
async def dashboard_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Entity and user totals plus the caller's upcoming meetings and open tasks."""
    meetings = select(Meeting.id).where(Meeting.starts_after(utcnow()))
    visibility = meeting_visibility(current_user)
    if visibility is not None:
        meetings = meetings.where(visibility)

    tasks = select(Task.id).where(Task.status != TaskStatus.COMPLETED)
    visibility = task_visibility(current_user)
    if visibility is not None:
        tasks = tasks.where(visibility)

    return DashboardStats(
        entities=await _count(db, select(Entity.id)),
        users=await _count(db, select(User.id)),
        upcoming_meetings=await _count(db, meetings),
        pending_tasks=await _count(db, tasks),
    )
