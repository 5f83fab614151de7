"""
Subject endpoints.

Endpoints:
- GET /api/v1/subjects - List subjects (scoped)
- POST /api/v1/subjects - Create subject, optionally linked to entities
- GET /api/v1/subjects/{subject_id} - Get subject with linked entity ids
- PATCH /api/v1/subjects/{subject_id} - Update subject (creator or master)
- DELETE /api/v1/subjects/{subject_id} - Delete subject (no tasks may reference it)
- GET /api/v1/subjects/{subject_id}/tasks - Tasks in the subject
- GET /api/v1/subjects/{subject_id}/users - Registered users with tasks in the subject
- POST /api/v1/subjects/{subject_id}/entities/{entity_id} - Link entity
- DELETE /api/v1/subjects/{subject_id}/entities/{entity_id} - Unlink entity
"""
from math import ceil
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.api.v1.converters import subject_to_response, task_to_response, user_to_response
from comunigov.core.deps import get_current_user
from comunigov.core.permissions import deny, ensure_subject_access, is_master, subject_visibility
from comunigov.db.base import get_db
from comunigov.models.entity import Entity
from comunigov.models.subject import Subject, SubjectEntity
from comunigov.models.task import Task
from comunigov.models.user import User
from comunigov.schemas.common import MessageResponse, PaginatedResponse
from comunigov.schemas.subject import SubjectCreate, SubjectUpdate, SubjectResponse
from comunigov.schemas.task import TaskResponse
from comunigov.schemas.user import UserResponse
from comunigov.services.achievements import record_milestone
from comunigov.services.activity_logger import ActivityLogger

router = APIRouter()


async def _linked_entity_ids(db: AsyncSession, subject_ids: list[str]) -> dict[str, list[str]]:
    if not subject_ids:
        return {}
    result = await db.execute(
        select(SubjectEntity.subject_id, SubjectEntity.entity_id)
        .where(SubjectEntity.subject_id.in_(subject_ids))
    )
    linked: dict[str, list[str]] = {}
    for subject_id, entity_id in result.all():
        linked.setdefault(subject_id, []).append(entity_id)
    return linked


async def _ensure_entity_exists(db: AsyncSession, entity_id: str) -> None:
    result = await db.execute(select(Entity.id).where(Entity.id == entity_id))
    if result.first() is None:
        raise HTTPException(status_code=404, detail="Entity not found")


async def _require_owner(db: AsyncSession, user: User, subject: Subject, request: Request) -> None:
    if not (is_master(user) or subject.created_by_id == user.id):
        await deny(db, user, "subject", subject.id, request)


@router.get("", response_model=PaginatedResponse[SubjectResponse])
async def list_subjects(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=500),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(Subject)
    visibility = subject_visibility(current_user)
    if visibility is not None:
        query = query.where(visibility)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Subject.name.ilike(pattern), Subject.description.ilike(pattern)))

    count_query = select(func.count()).select_from(query.subquery())
    total_items = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(Subject.name.asc()).offset((page - 1) * perPage).limit(perPage)
    subjects = (await db.execute(query)).scalars().all()
    linked = await _linked_entity_ids(db, [s.id for s in subjects])

    return PaginatedResponse(
        page=page,
        perPage=perPage,
        totalItems=total_items,
        totalPages=ceil(total_items / perPage) if total_items > 0 else 1,
        items=[subject_to_response(s, linked.get(s.id)) for s in subjects]
    )


@router.post("", response_model=SubjectResponse, status_code=status.HTTP_201_CREATED)
async def create_subject(
    data: SubjectCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    entity_ids = list(dict.fromkeys(data.entity_ids))
    for entity_id in entity_ids:
        result = await db.execute(select(Entity.id).where(Entity.id == entity_id))
        if result.first() is None:
            raise HTTPException(status_code=400, detail=f"Entity {entity_id} does not exist")

    subject = Subject(name=data.name, description=data.description, created_by_id=current_user.id)
    db.add(subject)
    await db.flush()
    for entity_id in entity_ids:
        db.add(SubjectEntity(subject_id=subject.id, entity_id=entity_id))
    await db.flush()
    await db.refresh(subject)

    await ActivityLogger.log_create(db, current_user.id, "subject", subject.id, f'Created subject "{subject.name}"', request)
    await record_milestone(db, current_user.id, "subject_created")
    return subject_to_response(subject, entity_ids)


@router.get("/{subject_id}", response_model=SubjectResponse)
async def get_subject(
    subject_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    subject = await ensure_subject_access(db, current_user, subject_id, request)
    linked = await _linked_entity_ids(db, [subject.id])
    return subject_to_response(subject, linked.get(subject.id))


@router.patch("/{subject_id}", response_model=SubjectResponse)
async def update_subject(
    subject_id: str,
    data: SubjectUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    subject = await ensure_subject_access(db, current_user, subject_id, request)
    await _require_owner(db, current_user, subject, request)

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(subject, field, value)
    await db.flush()
    await db.refresh(subject)

    await ActivityLogger.log_update(db, current_user.id, "subject", subject.id, request=request)
    linked = await _linked_entity_ids(db, [subject.id])
    return subject_to_response(subject, linked.get(subject.id))


@router.delete("/{subject_id}", response_model=MessageResponse)
async def delete_subject(
    subject_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a subject that no task references."""
    subject = await ensure_subject_access(db, current_user, subject_id, request)
    await _require_owner(db, current_user, subject, request)

    task_count = (await db.execute(
        select(func.count()).select_from(Task).where(Task.subject_id == subject_id)
    )).scalar() or 0
    if task_count:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete subject: {task_count} task(s) still reference it"
        )

    await db.execute(delete(SubjectEntity).where(SubjectEntity.subject_id == subject_id))
    await db.delete(subject)
    await ActivityLogger.log_delete(db, current_user.id, "subject", subject_id,
                                    f'Deleted subject "{subject.name}"', request)
    return MessageResponse(message="Subject deleted")


@router.get("/{subject_id}/tasks", response_model=list[TaskResponse])
async def list_subject_tasks(
    subject_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ensure_subject_access(db, current_user, subject_id, request)
    result = await db.execute(
        select(Task).where(Task.subject_id == subject_id).order_by(Task.deadline.asc())
    )
    return [task_to_response(t) for t in result.scalars().all()]


@router.get("/{subject_id}/users", response_model=list[UserResponse])
async def list_subject_users(
    subject_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Distinct registered users assigned to tasks of the subject."""
    await ensure_subject_access(db, current_user, subject_id, request)
    assignees = select(Task.assigned_to_user_id).where(
        Task.subject_id == subject_id,
        Task.is_registered_user.is_(True),
        Task.assigned_to_user_id.is_not(None),
    )
    result = await db.execute(
        select(User).where(User.id.in_(assignees)).order_by(User.full_name.asc())
    )
    return [user_to_response(u) for u in result.scalars().all()]


@router.post("/{subject_id}/entities/{entity_id}", response_model=SubjectResponse)
async def link_entity(
    subject_id: str,
    entity_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    subject = await ensure_subject_access(db, current_user, subject_id, request)
    await _require_owner(db, current_user, subject, request)
    await _ensure_entity_exists(db, entity_id)

    existing = await db.execute(
        select(SubjectEntity.id).where(
            SubjectEntity.subject_id == subject_id,
            SubjectEntity.entity_id == entity_id,
        )
    )
    if existing.first() is not None:
        raise HTTPException(status_code=409, detail="Entity is already linked to this subject")

    db.add(SubjectEntity(subject_id=subject_id, entity_id=entity_id))
    await db.flush()
    await ActivityLogger.log_update(db, current_user.id, "subject", subject_id,
                                    f"Linked entity {entity_id}", request)
    linked = await _linked_entity_ids(db, [subject_id])
    return subject_to_response(subject, linked.get(subject_id))


@router.delete("/{subject_id}/entities/{entity_id}", response_model=SubjectResponse)
async def unlink_entity(
    subject_id: str,
    entity_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    subject = await ensure_subject_access(db, current_user, subject_id, request)
    await _require_owner(db, current_user, subject, request)

    result = await db.execute(
        select(SubjectEntity).where(
            SubjectEntity.subject_id == subject_id,
            SubjectEntity.entity_id == entity_id,
        )
    )
    link = result.scalar_one_or_none()
    if link is None:
        raise HTTPException(status_code=404, detail="Entity is not linked to this subject")

    await db.delete(link)
    await db.flush()
    await ActivityLogger.log_update(db, current_user.id, "subject", subject_id,
                                    f"Unlinked entity {entity_id}", request)
    linked = await _linked_entity_ids(db, [subject_id])
    return subject_to_response(subject, linked.get(subject_id))
