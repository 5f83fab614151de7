"""
File download endpoint shared by communication, meeting and public hearing files.

Endpoints:
- GET /api/v1/files/{file_id}/download - Download (or view with ?embed=true) a stored file
"""
import logging
import os

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.core.deps import get_current_user
from comunigov.core.permissions import deny, ensure_meeting_access, is_master
from comunigov.db.base import get_db
from comunigov.models.communication import Communication, CommunicationFile, CommunicationRecipient
from comunigov.models.meeting import MeetingDocument
from comunigov.models.public_hearing import PublicHearingFile
from comunigov.models.user import User
from comunigov.services.activity_logger import ActivityLogger
from comunigov.services.storage import resolve_path

logger = logging.getLogger(__name__)

router = APIRouter()


async def _check_communication_file(
    db: AsyncSession,
    user: User,
    f: CommunicationFile,
    request: Request
) -> None:
    if is_master(user):
        return
    result = await db.execute(
        select(Communication.sent_by_id).where(Communication.id == f.communication_id)
    )
    if result.scalar_one_or_none() == user.id:
        return
    recipients = await db.execute(
        select(CommunicationRecipient).where(
            CommunicationRecipient.communication_id == f.communication_id
        )
    )
    for r in recipients.scalars().all():
        if r.user_id == user.id or (user.entity_id and r.entity_id == user.entity_id):
            return
    await deny(db, user, "communication_file", f.id, request)


async def _find_file(db: AsyncSession, user: User, file_id: str, request: Request):
    """Return (row, resource type) for the first table holding ``file_id``."""
    result = await db.execute(select(CommunicationFile).where(CommunicationFile.id == file_id))
    comm_file = result.scalar_one_or_none()
    if comm_file is not None:
        await _check_communication_file(db, user, comm_file, request)
        return comm_file, "communication_file"

    result = await db.execute(select(MeetingDocument).where(MeetingDocument.id == file_id))
    document = result.scalar_one_or_none()
    if document is not None:
        await ensure_meeting_access(db, user, document.meeting_id, request)
        return document, "meeting_document"

    # Public hearing material is public to every authenticated user
    result = await db.execute(select(PublicHearingFile).where(PublicHearingFile.id == file_id))
    hearing_file = result.scalar_one_or_none()
    if hearing_file is not None:
        return hearing_file, "public_hearing_file"

    raise HTTPException(status_code=404, detail="File not found")


@router.get("/{file_id}/download")
async def download_file(
    file_id: str,
    request: Request,
    embed: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    row, resource_type = await _find_file(db, current_user, file_id, request)

    path = resolve_path(row.file_path)
    if not os.path.isfile(path):
        logger.warning("File %s is registered but missing on disk: %s", file_id, row.file_path)
        raise HTTPException(status_code=404, detail="File not found on disk")

    await ActivityLogger.log_download(
        db, current_user.id, resource_type, file_id,
        f'Downloaded "{row.name}"', request
    )

    return FileResponse(
        path,
        media_type=row.type if "/" in row.type else "application/octet-stream",
        filename=row.name,
        content_disposition_type="inline" if embed else "attachment",
    )
