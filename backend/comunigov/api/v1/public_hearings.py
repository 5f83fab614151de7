"""
Public hearing endpoints.

Endpoints:
- GET /api/v1/public-hearings - List public hearings
- GET /api/v1/public-hearings/upcoming - Hearings that have not started yet
- POST /api/v1/public-hearings - Create hearing (master or head of the entity)
- GET /api/v1/public-hearings/{hearing_id} - Hearing with entity and files
- PATCH /api/v1/public-hearings/{hearing_id} - Update hearing
- POST /api/v1/public-hearings/{hearing_id}/files - Upload a file
"""
import logging
from datetime import datetime, time, timezone
from typing import Optional

from fastapi import (
    APIRouter, Depends, HTTPException, Query, Request, status,
    UploadFile, File as UploadFileField
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.api.v1.converters import (
    entity_to_response, hearing_file_to_response, hearing_to_response
)
from comunigov.api.v1.pagination import paginate
from comunigov.core.deps import get_current_user
from comunigov.core.permissions import deny, is_entity_head, is_master
from comunigov.db.base import get_db
from comunigov.models.base import as_utc, start_of_today, utcnow
from comunigov.models.entity import Entity
from comunigov.models.public_hearing import PublicHearing, PublicHearingFile, PublicHearingStatus
from comunigov.models.user import User
from comunigov.schemas.common import PaginatedResponse
from comunigov.schemas.public_hearing import (
    PublicHearingCreate, PublicHearingUpdate, PublicHearingResponse,
    PublicHearingDetailResponse, PublicHearingFileResponse
)
from comunigov.services.activity_logger import ActivityLogger
from comunigov.services.storage import save_upload

logger = logging.getLogger(__name__)

router = APIRouter()


def starts_at(hearing: PublicHearing) -> datetime:
    hours, minutes = (int(part) for part in hearing.start_time.split(":"))
    return datetime.combine(as_utc(hearing.date).date(), time(hours, minutes), tzinfo=timezone.utc)


def can_manage(user: User, entity_id: str) -> bool:
    return is_master(user) or (is_entity_head(user) and user.entity_id == entity_id)


async def get_hearing_or_404(db: AsyncSession, hearing_id: str) -> PublicHearing:
    result = await db.execute(select(PublicHearing).where(PublicHearing.id == hearing_id))
    hearing = result.scalar_one_or_none()
    if hearing is None:
        raise HTTPException(status_code=404, detail="Public hearing not found")
    return hearing


@router.get("", response_model=PaginatedResponse[PublicHearingResponse])
async def list_public_hearings(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=500),
    entity_id: Optional[str] = None,
    hearing_status: Optional[PublicHearingStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(PublicHearing)
    if entity_id:
        query = query.where(PublicHearing.entity_id == entity_id)
    if hearing_status:
        query = query.where(PublicHearing.status == hearing_status)

    query = query.order_by(PublicHearing.date.desc(), PublicHearing.start_time.desc())
    return await paginate(db, query, page, perPage, hearing_to_response)


@router.get("/upcoming", response_model=list[PublicHearingResponse])
async def upcoming_public_hearings(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    now = utcnow()
    result = await db.execute(
        select(PublicHearing)
        .where(
            PublicHearing.date >= start_of_today(),
            PublicHearing.status != PublicHearingStatus.CANCELLED,
        )
        .order_by(PublicHearing.date.asc(), PublicHearing.start_time.asc())
    )
    # Hearings later today are filtered on their start time
    hearings = [h for h in result.scalars().all() if starts_at(h) > now]
    return [hearing_to_response(h) for h in hearings[:limit]]


@router.post("", response_model=PublicHearingResponse, status_code=status.HTTP_201_CREATED)
async def create_public_hearing(
    data: PublicHearingCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    entity = await db.execute(select(Entity.id).where(Entity.id == data.entity_id))
    if entity.first() is None:
        raise HTTPException(status_code=400, detail="Entity does not exist")
    if not can_manage(current_user, data.entity_id):
        await deny(db, current_user, "public_hearing", request=request,
                   detail="Only the head of the entity can schedule its public hearings")

    hearing = PublicHearing(
        **data.model_dump(),
        created_by_id=current_user.id,
    )
    db.add(hearing)
    await db.flush()
    await db.refresh(hearing)

    await ActivityLogger.log_create(db, current_user.id, "public_hearing", hearing.id,
                                    f'Created public hearing "{hearing.title}"', request)
    logger.info("Public hearing %s scheduled for entity %s", hearing.id, hearing.entity_id)
    return hearing_to_response(hearing)


@router.get("/{hearing_id}", response_model=PublicHearingDetailResponse)
async def get_public_hearing(
    hearing_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    hearing = await get_hearing_or_404(db, hearing_id)

    entity = await db.execute(select(Entity).where(Entity.id == hearing.entity_id))
    entity = entity.scalar_one_or_none()
    files = await db.execute(
        select(PublicHearingFile)
        .where(PublicHearingFile.public_hearing_id == hearing_id)
        .order_by(PublicHearingFile.created.asc())
    )

    await ActivityLogger.log_view(db, current_user.id, "public_hearing", hearing_id, request=request)
    return PublicHearingDetailResponse(
        **hearing_to_response(hearing).model_dump(),
        entity=entity_to_response(entity) if entity else None,
        files=[hearing_file_to_response(f) for f in files.scalars().all()],
    )


@router.patch("/{hearing_id}", response_model=PublicHearingResponse)
async def update_public_hearing(
    hearing_id: str,
    data: PublicHearingUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    hearing = await get_hearing_or_404(db, hearing_id)
    if not can_manage(current_user, hearing.entity_id):
        await deny(db, current_user, "public_hearing", hearing_id, request)

    update_data = data.model_dump(exclude_unset=True)
    start = update_data.get("start_time", hearing.start_time)
    end = update_data.get("end_time", hearing.end_time)
    if end <= start:
        raise HTTPException(status_code=400, detail="end_time must be after start_time")

    for field, value in update_data.items():
        setattr(hearing, field, value)

    await db.flush()
    await db.refresh(hearing)

    await ActivityLogger.log_update(db, current_user.id, "public_hearing", hearing_id,
                                    f'Updated public hearing "{hearing.title}"', request,
                                    metadata={"fields": list(update_data.keys())})
    return hearing_to_response(hearing)


@router.post("/{hearing_id}/files", response_model=PublicHearingFileResponse, status_code=status.HTTP_201_CREATED)
async def upload_public_hearing_file(
    hearing_id: str,
    request: Request,
    file: UploadFile = UploadFileField(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    hearing = await get_hearing_or_404(db, hearing_id)
    if not can_manage(current_user, hearing.entity_id):
        await deny(db, current_user, "public_hearing", hearing_id, request)

    stored = await save_upload(file, "public_hearings", hearing_id)
    hearing_file = PublicHearingFile(
        id=stored.id,
        public_hearing_id=hearing_id,
        name=stored.name,
        type=stored.content_type,
        file_path=stored.path,
        file_size=stored.size,
        uploaded_by_id=current_user.id,
    )
    db.add(hearing_file)
    await db.flush()
    await db.refresh(hearing_file)

    await ActivityLogger.log_upload(db, current_user.id, "public_hearing_file", hearing_file.id,
                                    f'Uploaded "{hearing_file.name}" to public hearing', request)
    return hearing_file_to_response(hearing_file)
