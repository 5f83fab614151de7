"""
Entity endpoints.

Endpoints:
- GET /api/v1/entities - List entities (search, type, tag)
- POST /api/v1/entities - Create entity (master)
- POST /api/v1/entities/import - Import entities from CSV (master)
- POST /api/v1/entities/members/import - Import members from CSV, entity in form (master)
- GET /api/v1/entities/{entity_id} - Get entity
- PATCH /api/v1/entities/{entity_id} - Update entity (master)
- GET /api/v1/entities/{entity_id}/users - Entity users
- GET /api/v1/entities/{entity_id}/tasks - Entity tasks
- GET /api/v1/entities/{entity_id}/public-hearings - Entity public hearings
- GET /api/v1/entities/{entity_id}/activity-logs - Activity of the entity's users (entity head+)
- POST /api/v1/entities/{entity_id}/members/import - Import members from CSV (master)
"""
import logging
from typing import Optional

from fastapi import (
    APIRouter, Depends, HTTPException, Query, Request, status,
    UploadFile, File as UploadFileField, Form
)
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.api.v1.converters import (
    activity_log_to_response, entity_to_response, hearing_to_response,
    task_to_response, user_to_response
)
from comunigov.api.v1.pagination import paginate
from comunigov.core.config import settings
from comunigov.core.deps import get_current_user, require_entity_head, require_master_implementer
from comunigov.core.permissions import ensure_entity_access
from comunigov.db.base import get_db
from comunigov.models.activity_log import UserActivityLog
from comunigov.models.entity import Entity, EntityType
from comunigov.models.public_hearing import PublicHearing
from comunigov.models.task import Task
from comunigov.models.user import User
from comunigov.schemas.activity_log import ActivityLogResponse
from comunigov.schemas.common import PaginatedResponse
from comunigov.schemas.entity import (
    EntityCreate, EntityUpdate, EntityResponse, ImportResponse, ImportedMember
)
from comunigov.schemas.public_hearing import PublicHearingResponse
from comunigov.schemas.task import TaskResponse
from comunigov.schemas.user import UserResponse
from comunigov.services.achievements import record_milestone
from comunigov.services.activity_logger import ActivityLogger
from comunigov.services.csv_import import (
    CSVImportError, ImportResult, import_entities, import_entity_members
)

logger = logging.getLogger(__name__)

router = APIRouter()


def has_tag(db: AsyncSession, tag: str):
    """EXISTS clause matching entities whose ``tags`` array holds ``tag`` exactly."""
    if db.get_bind().dialect.name == "postgresql":
        elements = func.json_array_elements_text(Entity.tags).table_valued("value")
    else:
        elements = func.json_each(Entity.tags).table_valued("value")
    return select(elements.c.value).where(elements.c.value == tag).exists()


async def get_entity_or_404(db: AsyncSession, entity_id: str) -> Entity:
    result = await db.execute(select(Entity).where(Entity.id == entity_id))
    entity = result.scalar_one_or_none()
    if entity is None:
        raise HTTPException(status_code=404, detail="Entity not found")
    return entity


async def read_csv_upload(upload: UploadFile) -> bytes:
    """Read an uploaded CSV, 413 above MAX_CSV_SIZE."""
    content = await upload.read()
    if len(content) > settings.MAX_CSV_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="CSV file is too large"
        )
    return content


def import_to_response(result: ImportResult) -> ImportResponse:
    return ImportResponse(
        success=result.success,
        failed=result.failed,
        errors=result.errors,
        created_ids=result.created_ids,
        created_users=[ImportedMember(**u) for u in result.created_users],
    )


async def _import_members(
    db: AsyncSession,
    upload: UploadFile,
    entity_id: str,
    current_user: User,
    request: Request,
) -> ImportResponse:
    await get_entity_or_404(db, entity_id)
    content = await read_csv_upload(upload)
    try:
        result = await import_entity_members(db, content, entity_id, current_user.id)
    except CSVImportError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await ActivityLogger.log_upload(
        db, current_user.id, "entity_members", entity_id,
        f"Imported {result.success} member(s) from CSV", request,
        metadata={"filename": upload.filename, "success": result.success, "failed": result.failed}
    )
    return import_to_response(result)


@router.get("", response_model=PaginatedResponse[EntityResponse])
async def list_entities(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=500),
    search: Optional[str] = None,
    type: Optional[EntityType] = None,
    tag: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(Entity)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Entity.name.ilike(pattern), Entity.head_name.ilike(pattern)))
    if type:
        query = query.where(Entity.type == type)
    if tag:
        query = query.where(has_tag(db, tag))

    query = query.order_by(Entity.name.asc())
    return await paginate(db, query, page, perPage, entity_to_response)


@router.post("", response_model=EntityResponse, status_code=status.HTTP_201_CREATED)
async def create_entity(
    data: EntityCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_master_implementer)
):
    entity = Entity(**data.model_dump())
    db.add(entity)
    await db.flush()
    await db.refresh(entity)

    await ActivityLogger.log_create(db, current_user.id, "entity", entity.id, f'Created entity "{entity.name}"', request)
    await record_milestone(db, current_user.id, "entity_created")
    return entity_to_response(entity)


@router.post("/import", response_model=ImportResponse)
async def import_entities_csv(
    request: Request,
    file: UploadFile = UploadFileField(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_master_implementer)
):
    """Bulk-create entities from a CSV file."""
    content = await read_csv_upload(file)
    try:
        result = await import_entities(db, content, current_user.id)
    except CSVImportError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await ActivityLogger.log_upload(
        db, current_user.id, "entities", None,
        f"Imported {result.success} entit{'y' if result.success == 1 else 'ies'} from CSV", request,
        metadata={"filename": file.filename, "success": result.success, "failed": result.failed}
    )
    if result.success:
        await record_milestone(db, current_user.id, "entity_created")
    return import_to_response(result)


@router.post("/members/import", response_model=ImportResponse)
async def import_members_csv(
    request: Request,
    entity_id: str = Form(...),
    file: UploadFile = UploadFileField(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_master_implementer)
):
    return await _import_members(db, file, entity_id, current_user, request)


@router.get("/{entity_id}", response_model=EntityResponse)
async def get_entity(
    entity_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return entity_to_response(await get_entity_or_404(db, entity_id))


@router.patch("/{entity_id}", response_model=EntityResponse)
async def update_entity(
    entity_id: str,
    data: EntityUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_master_implementer)
):
    entity = await get_entity_or_404(db, entity_id)
    update_data = data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(entity, field, value)

    await db.flush()
    await db.refresh(entity)
    await ActivityLogger.log_update(db, current_user.id, "entity", entity.id, request=request,
                                    metadata={"fields": sorted(update_data)})
    return entity_to_response(entity)


@router.get("/{entity_id}/users", response_model=list[UserResponse])
async def get_entity_users(
    entity_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ensure_entity_access(db, current_user, entity_id, request)
    result = await db.execute(
        select(User).where(User.entity_id == entity_id).order_by(User.full_name.asc())
    )
    return [user_to_response(u) for u in result.scalars().all()]


@router.get("/{entity_id}/tasks", response_model=list[TaskResponse])
async def get_entity_tasks(
    entity_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ensure_entity_access(db, current_user, entity_id, request)
    result = await db.execute(
        select(Task).where(Task.entity_id == entity_id).order_by(Task.deadline.asc())
    )
    return [task_to_response(t) for t in result.scalars().all()]


@router.get("/{entity_id}/public-hearings", response_model=list[PublicHearingResponse])
async def get_entity_public_hearings(
    entity_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_entity_or_404(db, entity_id)
    result = await db.execute(
        select(PublicHearing)
        .where(PublicHearing.entity_id == entity_id)
        .order_by(PublicHearing.date.desc())
    )
    return [hearing_to_response(h) for h in result.scalars().all()]


@router.get("/{entity_id}/activity-logs", response_model=PaginatedResponse[ActivityLogResponse])
async def get_entity_activity_logs(
    entity_id: str,
    request: Request,
    page: int = Query(1, ge=1),
    perPage: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_entity_head)
):
    await ensure_entity_access(db, current_user, entity_id, request)
    query = (
        select(UserActivityLog)
        .where(UserActivityLog.user_id.in_(select(User.id).where(User.entity_id == entity_id)))
        .order_by(UserActivityLog.created.desc())
    )
    return await paginate(db, query, page, perPage, activity_log_to_response)


@router.post("/{entity_id}/members/import", response_model=ImportResponse)
async def import_entity_members_csv(
    entity_id: str,
    request: Request,
    file: UploadFile = UploadFileField(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_master_implementer)
):
    return await _import_members(db, file, entity_id, current_user, request)
