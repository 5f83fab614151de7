"""
Task endpoints.

Endpoints:
- GET /api/v1/tasks - List tasks (scoped; status, subject, meeting, entity, assignee filters)
- POST /api/v1/tasks - Create task for a registered user or an external owner
- GET /api/v1/tasks/{task_id} - Get task with assignee
- PATCH /api/v1/tasks/{task_id} - Update task
- GET/POST /api/v1/tasks/{task_id}/comments - List/add comments
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from comunigov.api.v1.converters import task_to_response
from comunigov.api.v1.pagination import paginate
from comunigov.core.deps import get_current_user
from comunigov.core.permissions import ensure_task_access, task_visibility
from comunigov.db.base import get_db
from comunigov.models.entity import Entity
from comunigov.models.meeting import Meeting
from comunigov.models.subject import Subject
from comunigov.models.task import Task, TaskComment, TaskStatus
from comunigov.models.user import User
from comunigov.schemas.common import PaginatedResponse
from comunigov.schemas.task import (
    TaskCreate, TaskUpdate, TaskResponse, CommentCreate, CommentResponse
)
from comunigov.services.achievements import record_milestone
from comunigov.services.activity_logger import ActivityLogger

logger = logging.getLogger(__name__)

router = APIRouter()


async def _exists(db: AsyncSession, model, object_id: str) -> bool:
    result = await db.execute(select(model.id).where(model.id == object_id))
    return result.first() is not None


async def _get_user(db: AsyncSession, user_id: Optional[str]) -> Optional[User]:
    if not user_id:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def resolve_owner(
    db: AsyncSession,
    is_registered_user: bool,
    assigned_to_user_id: Optional[str],
    owner_name: Optional[str],
    owner_email: Optional[str],
    owner_phone: Optional[str],
) -> Optional[User]:
    """Apply the task owner rule, returning the assignee of a registered owner.

    A registered owner needs an existing ``assigned_to_user_id``; an external
    owner needs a name and an email or phone.
    """
    if is_registered_user:
        if not assigned_to_user_id:
            raise HTTPException(status_code=400, detail="assigned_to_user_id is required for registered users")
        assignee = await _get_user(db, assigned_to_user_id)
        if assignee is None:
            raise HTTPException(status_code=400, detail="Assigned user does not exist")
        return assignee
    if not owner_name or not (owner_email or owner_phone):
        raise HTTPException(
            status_code=400,
            detail="External owners need owner_name and owner_email or owner_phone"
        )
    return None


async def _check_references(db: AsyncSession, entity_id: Optional[str], meeting_id: Optional[str]) -> None:
    if entity_id and not await _exists(db, Entity, entity_id):
        raise HTTPException(status_code=400, detail="Entity does not exist")
    if meeting_id and not await _exists(db, Meeting, meeting_id):
        raise HTTPException(status_code=400, detail="Meeting does not exist")


@router.get("", response_model=PaginatedResponse[TaskResponse])
async def list_tasks(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=500),
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    subject_id: Optional[str] = None,
    meeting_id: Optional[str] = None,
    entity_id: Optional[str] = None,
    assigned_to: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(Task).options(selectinload(Task.assignee))
    visibility = task_visibility(current_user)
    if visibility is not None:
        query = query.where(visibility)
    if status_filter:
        query = query.where(Task.status == status_filter)
    if subject_id:
        query = query.where(Task.subject_id == subject_id)
    if meeting_id:
        query = query.where(Task.meeting_id == meeting_id)
    if entity_id:
        query = query.where(Task.entity_id == entity_id)
    if assigned_to:
        query = query.where(Task.assigned_to_user_id == assigned_to)

    query = query.order_by(Task.deadline.asc())
    return await paginate(db, query, page, perPage, lambda t: task_to_response(t, t.assignee))


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    data: TaskCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if not await _exists(db, Subject, data.subject_id):
        raise HTTPException(status_code=400, detail="Subject does not exist")
    await _check_references(db, data.entity_id, data.meeting_id)

    assignee = await resolve_owner(
        db, data.is_registered_user, data.assigned_to_user_id,
        data.owner_name, data.owner_email, data.owner_phone
    )

    task = Task(
        title=data.title,
        description=data.description,
        deadline=data.deadline,
        status=data.status,
        subject_id=data.subject_id,
        is_registered_user=data.is_registered_user,
        assigned_to_user_id=assignee.id if assignee else None,
        owner_name=None if assignee else data.owner_name,
        owner_email=None if assignee else data.owner_email,
        owner_phone=None if assignee else data.owner_phone,
        created_by_id=current_user.id,
        entity_id=data.entity_id or (assignee.entity_id if assignee else None),
        meeting_id=data.meeting_id,
    )
    db.add(task)
    await db.flush()
    await db.refresh(task)

    await ActivityLogger.log_create(db, current_user.id, "task", task.id, f'Created task "{task.title}"', request)
    if assignee is not None:
        await record_milestone(db, assignee.id, "task_assigned")
        if task.status == TaskStatus.COMPLETED:
            await record_milestone(db, assignee.id, "task_completed")

    return task_to_response(task, assignee)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = await ensure_task_access(db, current_user, task_id, request)
    assignee = await _get_user(db, task.assigned_to_user_id)
    await ActivityLogger.log_view(db, current_user.id, "task", task_id, request=request)
    return task_to_response(task, assignee)


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    data: TaskUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Update a task. Moving into ``completed`` counts toward the assignee's milestone."""
    task = await ensure_task_access(db, current_user, task_id, request)
    update_data = data.model_dump(exclude_unset=True)
    await _check_references(db, update_data.get("entity_id"), update_data.get("meeting_id"))

    owner_fields = {"is_registered_user", "assigned_to_user_id", "owner_name", "owner_email", "owner_phone"}
    if owner_fields & update_data.keys():
        if update_data.get("assigned_to_user_id") and "is_registered_user" not in update_data:
            update_data["is_registered_user"] = True
        merged = {f: update_data.get(f, getattr(task, f)) for f in owner_fields}
        await resolve_owner(
            db, merged["is_registered_user"], merged["assigned_to_user_id"],
            merged["owner_name"], merged["owner_email"], merged["owner_phone"]
        )
        if merged["is_registered_user"]:
            update_data.update(owner_name=None, owner_email=None, owner_phone=None)
        else:
            update_data["assigned_to_user_id"] = None

    previous_status = task.status
    previous_assignee = task.assigned_to_user_id
    for field, value in update_data.items():
        setattr(task, field, value)

    await db.flush()
    await db.refresh(task)

    await ActivityLogger.log_update(db, current_user.id, "task", task.id, request=request,
                                    metadata={"fields": sorted(update_data)})

    if task.assigned_to_user_id and task.assigned_to_user_id != previous_assignee:
        await record_milestone(db, task.assigned_to_user_id, "task_assigned")
    if (
        task.status == TaskStatus.COMPLETED
        and previous_status != TaskStatus.COMPLETED
        and task.assigned_to_user_id
    ):
        await record_milestone(db, task.assigned_to_user_id, "task_completed")

    assignee = await _get_user(db, task.assigned_to_user_id)
    return task_to_response(task, assignee)


@router.get("/{task_id}/comments", response_model=list[CommentResponse])
async def list_comments(
    task_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ensure_task_access(db, current_user, task_id, request)
    result = await db.execute(
        select(TaskComment).where(TaskComment.task_id == task_id).order_by(TaskComment.created.asc())
    )
    return [CommentResponse.model_validate(c) for c in result.scalars().all()]


@router.post("/{task_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def add_comment(
    task_id: str,
    data: CommentCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ensure_task_access(db, current_user, task_id, request)
    comment = TaskComment(task_id=task_id, user_id=current_user.id, content=data.content)
    db.add(comment)
    await db.flush()
    await db.refresh(comment)
    await ActivityLogger.log_create(db, current_user.id, "task_comment", comment.id, request=request)
    return CommentResponse.model_validate(comment)
