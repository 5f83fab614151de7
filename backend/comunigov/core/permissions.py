"""Role-scoped access checks and listing filters.

Every ``ensure_*`` helper loads the resource first (404 when missing), then
evaluates access. Denials are written to the activity log before the 403.
"""
from typing import Optional

from fastapi import HTTPException, Request, status
from sqlalchemy import select, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.models.user import User, UserRole
from comunigov.models.entity import Entity
from comunigov.models.subject import Subject, SubjectEntity
from comunigov.models.meeting import Meeting, MeetingAttendee
from comunigov.models.task import Task
from comunigov.models.communication import Communication, CommunicationRecipient
from comunigov.services.activity_logger import ActivityLogger


def is_master(user: User) -> bool:
    return user.role == UserRole.MASTER_IMPLEMENTER


def is_entity_head(user: User) -> bool:
    return user.role == UserRole.ENTITY_HEAD


async def deny(
    db: AsyncSession,
    user: User,
    resource_type: str,
    resource_id: Optional[str] = None,
    request: Optional[Request] = None,
    detail: str = "Access denied",
) -> None:
    """Log the denied attempt and raise 403."""
    await ActivityLogger.log_access_denied(db, user.id, resource_type, resource_id, request)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def entity_user_ids(entity_id: str):
    """Subquery of user ids belonging to an entity."""
    return select(User.id).where(User.entity_id == entity_id)


async def _user_entity_id(db: AsyncSession, user_id: Optional[str]) -> Optional[str]:
    if user_id is None:
        return None
    result = await db.execute(select(User.entity_id).where(User.id == user_id))
    return result.scalar_one_or_none()


async def ensure_entity_access(
    db: AsyncSession,
    user: User,
    entity_id: str,
    request: Optional[Request] = None,
) -> Entity:
    """Master: any entity. Others: only the entity they belong to."""
    result = await db.execute(select(Entity).where(Entity.id == entity_id))
    entity = result.scalar_one_or_none()
    if entity is None:
        raise HTTPException(status_code=404, detail="Entity not found")

    if is_master(user) or user.entity_id == entity_id:
        return entity

    await deny(db, user, "entity", entity_id, request)


async def ensure_subject_access(
    db: AsyncSession,
    user: User,
    subject_id: str,
    request: Optional[Request] = None,
) -> Subject:
    """Master; creator; entity head of the creator's entity or of a linked entity;
    member with a registered task assigned in the subject."""
    result = await db.execute(select(Subject).where(Subject.id == subject_id))
    subject = result.scalar_one_or_none()
    if subject is None:
        raise HTTPException(status_code=404, detail="Subject not found")

    if is_master(user) or subject.created_by_id == user.id:
        return subject

    if is_entity_head(user):
        if user.entity_id:
            if await _user_entity_id(db, subject.created_by_id) == user.entity_id:
                return subject
            linked = await db.execute(
                select(SubjectEntity.id).where(
                    SubjectEntity.subject_id == subject_id,
                    SubjectEntity.entity_id == user.entity_id,
                )
            )
            if linked.first() is not None:
                return subject
    else:
        assigned = await db.execute(
            select(Task.id).where(
                Task.subject_id == subject_id,
                Task.is_registered_user.is_(True),
                Task.assigned_to_user_id == user.id,
            ).limit(1)
        )
        if assigned.first() is not None:
            return subject

    await deny(db, user, "subject", subject_id, request)


async def ensure_meeting_access(
    db: AsyncSession,
    user: User,
    meeting_id: str,
    request: Optional[Request] = None,
) -> Meeting:
    """Master; creator; attendee; entity head of the creator's entity."""
    result = await db.execute(select(Meeting).where(Meeting.id == meeting_id))
    meeting = result.scalar_one_or_none()
    if meeting is None:
        raise HTTPException(status_code=404, detail="Meeting not found")

    if is_master(user) or meeting.created_by_id == user.id:
        return meeting

    attendee = await db.execute(
        select(MeetingAttendee.id).where(
            MeetingAttendee.meeting_id == meeting_id,
            MeetingAttendee.user_id == user.id,
        )
    )
    if attendee.first() is not None:
        return meeting

    if is_entity_head(user) and user.entity_id:
        if await _user_entity_id(db, meeting.created_by_id) == user.entity_id:
            return meeting

    await deny(db, user, "meeting", meeting_id, request)


async def ensure_task_access(
    db: AsyncSession,
    user: User,
    task_id: str,
    request: Optional[Request] = None,
) -> Task:
    """Master; creator; registered assignee; entity head of the task's entity
    or of its creator's entity."""
    result = await db.execute(select(Task).where(Task.id == task_id))
    task = result.scalar_one_or_none()
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")

    if is_master(user) or task.created_by_id == user.id:
        return task
    if task.is_registered_user and task.assigned_to_user_id == user.id:
        return task

    if is_entity_head(user) and user.entity_id:
        if task.entity_id == user.entity_id:
            return task
        if await _user_entity_id(db, task.created_by_id) == user.entity_id:
            return task

    await deny(db, user, "task", task_id, request)


async def ensure_analytics_access(
    db: AsyncSession,
    user: User,
    request: Optional[Request] = None,
) -> None:
    if is_master(user) or is_entity_head(user):
        return
    await deny(db, user, "analytics", request=request)


# Listing filters. ``None`` means unrestricted.

def meeting_visibility(user: User):
    if is_master(user):
        return None
    clauses = [
        Meeting.created_by_id == user.id,
        Meeting.id.in_(
            select(MeetingAttendee.meeting_id).where(MeetingAttendee.user_id == user.id)
        ),
    ]
    if is_entity_head(user) and user.entity_id:
        clauses.append(Meeting.created_by_id.in_(entity_user_ids(user.entity_id)))
    return or_(*clauses)


def task_visibility(user: User):
    if is_master(user):
        return None
    clauses = [
        Task.created_by_id == user.id,
        and_(Task.is_registered_user.is_(True), Task.assigned_to_user_id == user.id),
    ]
    if is_entity_head(user) and user.entity_id:
        clauses.append(Task.entity_id == user.entity_id)
        clauses.append(Task.created_by_id.in_(entity_user_ids(user.entity_id)))
    return or_(*clauses)


def subject_visibility(user: User):
    if is_master(user):
        return None
    clauses = [Subject.created_by_id == user.id]
    if is_entity_head(user):
        if user.entity_id:
            clauses.append(Subject.created_by_id.in_(entity_user_ids(user.entity_id)))
            clauses.append(Subject.id.in_(
                select(SubjectEntity.subject_id).where(SubjectEntity.entity_id == user.entity_id)
            ))
    else:
        clauses.append(Subject.id.in_(
            select(Task.subject_id).where(
                Task.is_registered_user.is_(True),
                Task.assigned_to_user_id == user.id,
            )
        ))
    return or_(*clauses)


def communication_visibility(user: User):
    """Sent by the user, or addressed to the user directly or through their entity."""
    if is_master(user):
        return None
    addressed = [CommunicationRecipient.user_id == user.id]
    if user.entity_id:
        addressed.append(CommunicationRecipient.entity_id == user.entity_id)
    return or_(
        Communication.sent_by_id == user.id,
        Communication.id.in_(
            select(CommunicationRecipient.communication_id).where(or_(*addressed))
        ),
    )
