"""
Communication endpoints.

Endpoints:
- GET /api/v1/communications - List communications (sent by or addressed to the caller)
- POST /api/v1/communications - Create and deliver a communication
- GET /api/v1/communications/{communication_id} - Communication with recipients and files
- POST /api/v1/communications/{communication_id}/files - Attach files (delivers pending ones)
- POST /api/v1/communications/{communication_id}/read - Mark as read
"""
import logging
from typing import Optional

from fastapi import (
    APIRouter, Depends, HTTPException, Query, Request, status,
    UploadFile, File as UploadFileField
)
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.api.v1.converters import communication_file_to_response, communication_to_response
from comunigov.api.v1.pagination import paginate
from comunigov.core.deps import get_current_user
from comunigov.core.permissions import communication_visibility, deny, is_master
from comunigov.db.base import get_db
from comunigov.models.base import utcnow
from comunigov.models.communication import (
    Communication, CommunicationChannel, CommunicationFile, CommunicationRecipient
)
from comunigov.models.entity import Entity
from comunigov.models.user import User
from comunigov.schemas.common import PaginatedResponse
from comunigov.schemas.communication import (
    CommunicationCreate, CommunicationResponse, CommunicationDetailResponse,
    CommunicationSendResponse, RecipientResponse
)
from comunigov.services.achievements import record_milestone
from comunigov.services.activity_logger import ActivityLogger
from comunigov.services.messaging import deliver_communication
from comunigov.services.storage import remove_stored, save_upload

logger = logging.getLogger(__name__)

router = APIRouter()


async def get_communication_or_404(db: AsyncSession, communication_id: str) -> Communication:
    result = await db.execute(select(Communication).where(Communication.id == communication_id))
    communication = result.scalar_one_or_none()
    if communication is None:
        raise HTTPException(status_code=404, detail="Communication not found")
    return communication


async def _recipient_rows(db: AsyncSession, communication_id: str) -> list[CommunicationRecipient]:
    result = await db.execute(
        select(CommunicationRecipient)
        .where(CommunicationRecipient.communication_id == communication_id)
        .order_by(CommunicationRecipient.created.asc())
    )
    return list(result.scalars().all())


async def _build_detail(
    db: AsyncSession,
    communication: Communication,
    response_class=CommunicationDetailResponse,
    **extra
):
    recipients = await _recipient_rows(db, communication.id)
    files = await db.execute(
        select(CommunicationFile)
        .where(CommunicationFile.communication_id == communication.id)
        .order_by(CommunicationFile.created.asc())
    )
    return response_class(
        **communication_to_response(communication).model_dump(),
        recipients=[RecipientResponse.model_validate(r) for r in recipients],
        files=[communication_file_to_response(f) for f in files.scalars().all()],
        **extra
    )


def _is_addressed_to(user: User, recipients: list[CommunicationRecipient]) -> bool:
    for r in recipients:
        if r.user_id == user.id:
            return True
        if user.entity_id and r.entity_id == user.entity_id:
            return True
    return False


async def _deliver(db: AsyncSession, communication: Communication, sender: User) -> dict:
    results, missing_whatsapp = await deliver_communication(db, communication, sender)
    communication.delivery_pending = False
    communication.sent_at = utcnow()
    return {"delivery": results, "recipients_without_whatsapp": missing_whatsapp}


@router.get("", response_model=PaginatedResponse[CommunicationResponse])
async def list_communications(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=500),
    channel: Optional[CommunicationChannel] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(Communication)
    visibility = communication_visibility(current_user)
    if visibility is not None:
        query = query.where(visibility)
    if channel:
        query = query.where(Communication.channel == channel)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Communication.subject.ilike(pattern), Communication.content.ilike(pattern)))

    query = query.order_by(Communication.sent_at.desc())
    return await paginate(db, query, page, perPage, communication_to_response)


@router.post("", response_model=CommunicationSendResponse, status_code=status.HTTP_201_CREATED)
async def create_communication(
    data: CommunicationCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Store a communication and deliver it unless attachments are still to come."""
    for item in data.recipients:
        if item.user_id:
            found = await db.execute(select(User.id).where(User.id == item.user_id))
            if found.first() is None:
                raise HTTPException(status_code=400, detail=f"Recipient user {item.user_id} does not exist")
        if item.entity_id:
            found = await db.execute(select(Entity.id).where(Entity.id == item.entity_id))
            if found.first() is None:
                raise HTTPException(status_code=400, detail=f"Recipient entity {item.entity_id} does not exist")

    communication = Communication(
        subject=data.subject,
        content=data.content,
        channel=data.channel,
        sent_by_id=current_user.id,
        has_attachments=data.has_attachments,
        delivery_pending=data.expect_attachments,
    )
    db.add(communication)
    await db.flush()

    for item in data.recipients:
        db.add(CommunicationRecipient(
            communication_id=communication.id,
            user_id=item.user_id,
            entity_id=item.entity_id,
        ))
    await db.flush()

    await ActivityLogger.log_send(
        db, current_user.id, "communication", communication.id,
        f'Sent communication "{communication.subject}" via {communication.channel.value}', request,
        metadata={"recipients": len(data.recipients)}
    )
    await record_milestone(db, current_user.id, "communication_sent")

    extra = {}
    if data.expect_attachments:
        logger.info("Communication %s waits for attachments before delivery", communication.id)
    else:
        extra = await _deliver(db, communication, current_user)

    await db.flush()
    await db.refresh(communication)
    return await _build_detail(db, communication, CommunicationSendResponse, **extra)


@router.get("/{communication_id}", response_model=CommunicationDetailResponse)
async def get_communication(
    communication_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    communication = await get_communication_or_404(db, communication_id)
    if not (is_master(current_user) or communication.sent_by_id == current_user.id):
        recipients = await _recipient_rows(db, communication_id)
        if not _is_addressed_to(current_user, recipients):
            await deny(db, current_user, "communication", communication_id, request)

    await ActivityLogger.log_view(db, current_user.id, "communication", communication_id, request=request)
    return await _build_detail(db, communication)


@router.post("/{communication_id}/files", response_model=CommunicationSendResponse, status_code=status.HTTP_201_CREATED)
async def upload_communication_files(
    communication_id: str,
    request: Request,
    files: list[UploadFile] = UploadFileField(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Attach files. A communication waiting for attachments is delivered now."""
    communication = await get_communication_or_404(db, communication_id)
    if not (is_master(current_user) or communication.sent_by_id == current_user.id):
        await deny(db, current_user, "communication", communication_id, request)

    stored_files = []
    try:
        for upload in files:
            stored_files.append(await save_upload(upload, "communications", communication_id))
    except HTTPException:
        for stored in stored_files:
            remove_stored(stored.path)
        raise

    for stored in stored_files:
        db.add(CommunicationFile(
            id=stored.id,
            communication_id=communication_id,
            name=stored.name,
            type=stored.content_type,
            file_path=stored.path,
            file_size=stored.size,
            uploaded_by_id=current_user.id,
        ))
        await ActivityLogger.log_upload(db, current_user.id, "communication_file", stored.id,
                                        f'Attached "{stored.name}" to communication', request)

    communication.has_attachments = True
    await db.flush()

    extra = {}
    if communication.delivery_pending:
        sender_result = await db.execute(select(User).where(User.id == communication.sent_by_id))
        sender = sender_result.scalar_one_or_none() or current_user
        extra = await _deliver(db, communication, sender)
        await db.flush()

    await db.refresh(communication)
    return await _build_detail(db, communication, CommunicationSendResponse, **extra)


@router.post("/{communication_id}/read", response_model=RecipientResponse)
async def mark_read(
    communication_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_communication_or_404(db, communication_id)
    recipients = await _recipient_rows(db, communication_id)

    row = next((r for r in recipients if r.user_id == current_user.id), None)
    if row is None and current_user.entity_id:
        row = next((r for r in recipients if r.entity_id == current_user.entity_id), None)
    if row is None:
        raise HTTPException(status_code=404, detail="You are not a recipient of this communication")

    if not row.read:
        row.read = True
        row.read_at = utcnow()
        await db.flush()
        await db.refresh(row)
    return RecipientResponse.model_validate(row)
