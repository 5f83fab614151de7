"""
Analytics endpoints (entity heads and master implementers).

Endpoints:
- GET /api/v1/analytics - Summary for a period
- GET /api/v1/analytics/entities - Per-entity counters
- GET /api/v1/analytics/activity - Activity log counts by action and day
- GET /api/v1/analytics/communication-channels - Communications per channel and read rate
- GET /api/v1/analytics/export - Per-entity counters as CSV

Entity heads only see their own entity's tasks, users, activity and entities.
"""
import csv
import io
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.core.deps import get_current_user
from comunigov.core.permissions import ensure_analytics_access, entity_user_ids, is_master
from comunigov.db.base import get_db
from comunigov.models.activity_log import UserActivityLog
from comunigov.models.base import utcnow
from comunigov.models.communication import Communication, CommunicationRecipient
from comunigov.models.entity import Entity
from comunigov.models.meeting import Meeting
from comunigov.models.public_hearing import PublicHearing
from comunigov.models.task import Task, TaskStatus
from comunigov.models.user import User
from comunigov.schemas.dashboard import (
    AnalyticsSummary, ActivityAnalytics, ChannelAnalytics, DailyCount, EntityAnalytics
)

router = APIRouter()

PERIOD_DAYS = {"7d": 7, "30d": 30, "90d": 90, "365d": 365}
PERIOD_PATTERN = "^(7d|30d|90d|365d)$"


def period_start(period: str) -> datetime:
    return utcnow() - timedelta(days=PERIOD_DAYS[period])


def _scoped_entity(user: User):
    """Entity the caller is restricted to, ``None`` for master implementers."""
    return None if is_master(user) else (user.entity_id or "")


def _key(value) -> str:
    return value.value if hasattr(value, "value") else str(value)


async def _grouped(db: AsyncSession, query) -> dict[str, int]:
    result = await db.execute(query)
    return {_key(k): count for k, count in result.all() if k is not None}


async def _count(db: AsyncSession, query) -> int:
    result = await db.execute(select(func.count()).select_from(query.subquery()))
    return result.scalar() or 0


async def _activity_by_day(db: AsyncSession, since: datetime, entity_id) -> list[DailyCount]:
    day = func.date(UserActivityLog.created)
    query = select(day, func.count()).where(UserActivityLog.created >= since)
    if entity_id is not None:
        query = query.where(UserActivityLog.user_id.in_(entity_user_ids(entity_id)))
    result = await db.execute(query.group_by(day).order_by(day))
    return [DailyCount(date=str(d), count=c) for d, c in result.all()]


async def _entity_rows(db: AsyncSession, user: User) -> list[EntityAnalytics]:
    entity_id = _scoped_entity(user)
    query = select(Entity).order_by(Entity.name)
    if entity_id is not None:
        query = query.where(Entity.id == entity_id)
    entities = (await db.execute(query)).scalars().all()

    users = await _grouped(db, select(User.entity_id, func.count()).group_by(User.entity_id))
    tasks = await _grouped(db, select(Task.entity_id, func.count()).group_by(Task.entity_id))
    completed = await _grouped(
        db,
        select(Task.entity_id, func.count())
        .where(Task.status == TaskStatus.COMPLETED)
        .group_by(Task.entity_id)
    )
    hearings = await _grouped(
        db, select(PublicHearing.entity_id, func.count()).group_by(PublicHearing.entity_id)
    )

    return [
        EntityAnalytics(
            entity_id=e.id,
            name=e.name,
            type=e.type.value,
            users=users.get(e.id, 0),
            tasks=tasks.get(e.id, 0),
            completed_tasks=completed.get(e.id, 0),
            public_hearings=hearings.get(e.id, 0),
        )
        for e in entities
    ]


@router.get("", response_model=AnalyticsSummary)
async def analytics_summary(
    request: Request,
    period: str = Query("30d", pattern=PERIOD_PATTERN),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ensure_analytics_access(db, current_user, request)
    since = period_start(period)
    entity_id = _scoped_entity(current_user)

    tasks_query = select(Task.status, func.count()).group_by(Task.status)
    users_query = select(User.role, func.count()).group_by(User.role)
    if entity_id is not None:
        tasks_query = tasks_query.where(Task.entity_id == entity_id)
        users_query = users_query.where(User.entity_id == entity_id)

    tasks_by_status = {s.value: 0 for s in TaskStatus}
    tasks_by_status.update(await _grouped(db, tasks_query))
    total_tasks = sum(tasks_by_status.values())
    completed = tasks_by_status[TaskStatus.COMPLETED.value]

    return AnalyticsSummary(
        period=period,
        tasks_by_status=tasks_by_status,
        total_tasks=total_tasks,
        completion_rate=round(completed / total_tasks * 100, 1) if total_tasks else 0.0,
        meetings=await _count(db, select(Meeting.id).where(Meeting.created >= since)),
        communications=await _count(db, select(Communication.id).where(Communication.sent_at >= since)),
        public_hearings=await _count(db, select(PublicHearing.id).where(PublicHearing.date >= since)),
        users_by_role=await _grouped(db, users_query),
        activity_by_day=await _activity_by_day(db, since, entity_id),
    )


@router.get("/entities", response_model=list[EntityAnalytics])
async def entity_analytics(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ensure_analytics_access(db, current_user, request)
    return await _entity_rows(db, current_user)


@router.get("/activity", response_model=ActivityAnalytics)
async def activity_analytics(
    request: Request,
    period: str = Query("30d", pattern=PERIOD_PATTERN),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ensure_analytics_access(db, current_user, request)
    since = period_start(period)
    entity_id = _scoped_entity(current_user)

    query = (
        select(UserActivityLog.action, func.count())
        .where(UserActivityLog.created >= since)
        .group_by(UserActivityLog.action)
    )
    if entity_id is not None:
        query = query.where(UserActivityLog.user_id.in_(entity_user_ids(entity_id)))

    return ActivityAnalytics(
        period=period,
        by_action=await _grouped(db, query),
        by_day=await _activity_by_day(db, since, entity_id),
    )


@router.get("/communication-channels", response_model=ChannelAnalytics)
async def channel_analytics(
    request: Request,
    period: str = Query("30d", pattern=PERIOD_PATTERN),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ensure_analytics_access(db, current_user, request)
    since = period_start(period)

    by_channel = await _grouped(
        db,
        select(Communication.channel, func.count())
        .where(Communication.sent_at >= since)
        .group_by(Communication.channel)
    )

    recipients = (
        select(CommunicationRecipient.id)
        .join(Communication, Communication.id == CommunicationRecipient.communication_id)
        .where(Communication.sent_at >= since)
    )
    total = await _count(db, recipients)
    read = await _count(db, recipients.where(CommunicationRecipient.read.is_(True)))

    return ChannelAnalytics(
        period=period,
        by_channel=by_channel,
        total_recipients=total,
        read_recipients=read,
        read_rate=round(read / total * 100, 1) if total else 0.0,
    )


@router.get("/export")
async def export_analytics(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Per-entity counters as a CSV attachment."""
    await ensure_analytics_access(db, current_user, request)
    rows = await _entity_rows(db, current_user)

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["entity_id", "name", "type", "users", "tasks", "completed_tasks", "public_hearings"])
    for row in rows:
        writer.writerow([
            row.entity_id, row.name, row.type, row.users,
            row.tasks, row.completed_tasks, row.public_hearings
        ])

    filename = f"comunigov_analytics_{utcnow().strftime('%Y%m%d')}.csv"
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )
