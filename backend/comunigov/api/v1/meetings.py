"""
Meeting endpoints.

Endpoints:
- GET /api/v1/meetings - List meetings (scoped)
- GET /api/v1/meetings/upcoming - Meetings from today on (scoped)
- POST /api/v1/meetings - Create meeting with attendees
- GET /api/v1/meetings/{meeting_id} - Meeting with attendees, documents and reactions
- PATCH /api/v1/meetings/{meeting_id} - Update meeting (creator or master)
- GET/POST /api/v1/meetings/{meeting_id}/attendees - List/add attendees
- PATCH /api/v1/meetings/{meeting_id}/attendees/{attendee_id} - Confirm/mark attendance
- GET/POST /api/v1/meetings/{meeting_id}/documents - List/upload documents
- GET/POST /api/v1/meetings/{meeting_id}/reactions - List/toggle reactions
- DELETE /api/v1/meetings/{meeting_id}/reactions/{reaction_id} - Remove reaction
- GET /api/v1/meetings/{meeting_id}/tasks - Tasks raised in the meeting
"""
import logging
from typing import Optional

from fastapi import (
    APIRouter, Depends, HTTPException, Query, Request, Response, status,
    UploadFile, File as UploadFileField, Form
)
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.api.v1.converters import (
    attendee_to_response, document_to_response, meeting_to_response,
    reaction_to_response, task_to_response
)
from comunigov.api.v1.pagination import paginate
from comunigov.core.deps import get_current_user
from comunigov.core.permissions import deny, ensure_meeting_access, is_master, meeting_visibility
from comunigov.db.base import get_db
from comunigov.models.base import utcnow
from comunigov.models.meeting import Meeting, MeetingAttendee, MeetingDocument, MeetingReaction
from comunigov.models.subject import Subject
from comunigov.models.task import Task
from comunigov.models.user import User
from comunigov.schemas.common import MessageResponse, PaginatedResponse
from comunigov.schemas.meeting import (
    MeetingCreate, MeetingUpdate, MeetingResponse, MeetingDetailResponse,
    AttendeeCreate, AttendeeUpdate, AttendeeResponse, AttendeeInput,
    DocumentResponse, ReactionCreate, ReactionResponse, ReactionToggleResponse
)
from comunigov.schemas.task import TaskResponse
from comunigov.services.achievements import record_milestone
from comunigov.services.activity_logger import ActivityLogger
from comunigov.services.email import email_service
from comunigov.services.storage import save_upload

logger = logging.getLogger(__name__)

router = APIRouter()


async def _ensure_subject_exists(db: AsyncSession, subject_id: str) -> None:
    result = await db.execute(select(Subject.id).where(Subject.id == subject_id))
    if result.first() is None:
        raise HTTPException(status_code=400, detail="Subject does not exist")


async def _send_invitation(meeting: Meeting, user: User, organizer: User) -> None:
    if not user.email:
        return
    sent = await email_service.send_meeting_invitation(
        user.email,
        user.full_name,
        meeting.name,
        meeting.date,
        meeting.start_time,
        meeting.end_time,
        meeting.agenda,
        meeting.location,
        organizer.full_name,
    )
    if not sent:
        logger.warning("Meeting invitation to user %s failed", user.id)


async def _attendees_with_users(db: AsyncSession, meeting_id: str) -> list[AttendeeResponse]:
    result = await db.execute(
        select(MeetingAttendee, User)
        .join(User, User.id == MeetingAttendee.user_id)
        .where(MeetingAttendee.meeting_id == meeting_id)
        .order_by(User.full_name.asc())
    )
    return [attendee_to_response(attendee, user) for attendee, user in result.all()]


@router.get("", response_model=PaginatedResponse[MeetingResponse])
async def list_meetings(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=500),
    subject_id: Optional[str] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(Meeting)
    visibility = meeting_visibility(current_user)
    if visibility is not None:
        query = query.where(visibility)
    if subject_id:
        query = query.where(Meeting.subject_id == subject_id)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Meeting.name.ilike(pattern), Meeting.agenda.ilike(pattern)))

    query = query.order_by(Meeting.date.desc(), Meeting.start_time.desc())
    return await paginate(db, query, page, perPage, meeting_to_response)


@router.get("/upcoming", response_model=list[MeetingResponse])
async def upcoming_meetings(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(Meeting).where(Meeting.starts_after(utcnow()))
    visibility = meeting_visibility(current_user)
    if visibility is not None:
        query = query.where(visibility)
    query = query.order_by(Meeting.date.asc(), Meeting.start_time.asc()).limit(limit)
    result = await db.execute(query)
    return [meeting_to_response(m) for m in result.scalars().all()]


@router.post("", response_model=MeetingDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_meeting(
    data: MeetingCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Create a meeting and invite its attendees.

    Unknown attendee ids are skipped and repeated ones kept once.
    """
    if data.subject_id:
        await _ensure_subject_exists(db, data.subject_id)

    meeting = Meeting(
        name=data.name,
        agenda=data.agenda,
        date=data.date,
        start_time=data.start_time,
        end_time=data.end_time,
        location=data.location,
        subject=data.subject,
        subject_id=data.subject_id,
        is_registered_subject=bool(data.subject_id),
        created_by_id=current_user.id,
    )
    db.add(meeting)
    await db.flush()

    requested: dict[str, bool] = {}
    for item in data.attendees:
        if isinstance(item, AttendeeInput):
            requested.setdefault(item.user_id, item.confirmed)
        else:
            requested.setdefault(item, False)

    invited: list[User] = []
    if requested:
        result = await db.execute(select(User).where(User.id.in_(list(requested))))
        users = {u.id: u for u in result.scalars().all()}
        for user_id, confirmed in requested.items():
            user = users.get(user_id)
            if user is None:
                logger.info("Skipping unknown attendee %s for meeting %s", user_id, meeting.id)
                continue
            db.add(MeetingAttendee(meeting_id=meeting.id, user_id=user.id, confirmed=confirmed))
            invited.append(user)
        await db.flush()

    await ActivityLogger.log_create(db, current_user.id, "meeting", meeting.id, f'Created meeting "{meeting.name}"', request)
    await record_milestone(db, current_user.id, "meeting_created")

    for user in invited:
        await _send_invitation(meeting, user, current_user)

    await db.refresh(meeting)
    response = MeetingDetailResponse(**meeting_to_response(meeting).model_dump())
    response.attendees = await _attendees_with_users(db, meeting.id)
    return response


@router.get("/{meeting_id}", response_model=MeetingDetailResponse)
async def get_meeting(
    meeting_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    meeting = await ensure_meeting_access(db, current_user, meeting_id, request)

    documents = await db.execute(
        select(MeetingDocument)
        .where(MeetingDocument.meeting_id == meeting_id)
        .order_by(MeetingDocument.created.desc())
    )
    reactions = await db.execute(
        select(MeetingReaction)
        .where(MeetingReaction.meeting_id == meeting_id)
        .order_by(MeetingReaction.created.asc())
    )

    response = MeetingDetailResponse(**meeting_to_response(meeting).model_dump())
    response.attendees = await _attendees_with_users(db, meeting_id)
    response.documents = [document_to_response(d) for d in documents.scalars().all()]
    response.reactions = [reaction_to_response(r) for r in reactions.scalars().all()]

    await ActivityLogger.log_view(db, current_user.id, "meeting", meeting_id, request=request)
    return response


@router.patch("/{meeting_id}", response_model=MeetingResponse)
async def update_meeting(
    meeting_id: str,
    data: MeetingUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(select(Meeting).where(Meeting.id == meeting_id))
    meeting = result.scalar_one_or_none()
    if meeting is None:
        raise HTTPException(status_code=404, detail="Meeting not found")
    if not (is_master(current_user) or meeting.created_by_id == current_user.id):
        await deny(db, current_user, "meeting", meeting_id, request)

    update_data = data.model_dump(exclude_unset=True)
    if "subject_id" in update_data:
        if update_data["subject_id"]:
            await _ensure_subject_exists(db, update_data["subject_id"])
        update_data["is_registered_subject"] = bool(update_data["subject_id"])

    start = update_data.get("start_time", meeting.start_time)
    end = update_data.get("end_time", meeting.end_time)
    if end <= start:
        raise HTTPException(status_code=400, detail="end_time must be after start_time")

    for field, value in update_data.items():
        setattr(meeting, field, value)

    await db.flush()
    await db.refresh(meeting)
    await ActivityLogger.log_update(db, current_user.id, "meeting", meeting.id, request=request)
    return meeting_to_response(meeting)


@router.get("/{meeting_id}/attendees", response_model=list[AttendeeResponse])
async def list_attendees(
    meeting_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ensure_meeting_access(db, current_user, meeting_id, request)
    return await _attendees_with_users(db, meeting_id)


@router.post("/{meeting_id}/attendees", response_model=AttendeeResponse, status_code=status.HTTP_201_CREATED)
async def add_attendee(
    meeting_id: str,
    data: AttendeeCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    meeting = await ensure_meeting_access(db, current_user, meeting_id, request)
    if not (is_master(current_user) or meeting.created_by_id == current_user.id):
        await deny(db, current_user, "meeting", meeting_id, request,
                   detail="Only the meeting creator can add attendees")

    user_result = await db.execute(select(User).where(User.id == data.user_id))
    user = user_result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    existing = await db.execute(
        select(MeetingAttendee.id).where(
            MeetingAttendee.meeting_id == meeting_id,
            MeetingAttendee.user_id == user.id,
        )
    )
    if existing.first() is not None:
        raise HTTPException(status_code=409, detail="User is already an attendee")

    attendee = MeetingAttendee(meeting_id=meeting_id, user_id=user.id, confirmed=data.confirmed)
    db.add(attendee)
    await db.flush()
    await db.refresh(attendee)

    await ActivityLogger.log_update(db, current_user.id, "meeting", meeting_id,
                                    f"Added attendee {user.username}", request)
    await _send_invitation(meeting, user, current_user)
    return attendee_to_response(attendee, user)


@router.patch("/{meeting_id}/attendees/{attendee_id}", response_model=AttendeeResponse)
async def update_attendee(
    meeting_id: str,
    attendee_id: str,
    data: AttendeeUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """The attendee, the meeting creator or a master may update attendance."""
    meeting = await ensure_meeting_access(db, current_user, meeting_id, request)
    result = await db.execute(
        select(MeetingAttendee).where(
            MeetingAttendee.id == attendee_id,
            MeetingAttendee.meeting_id == meeting_id,
        )
    )
    attendee = result.scalar_one_or_none()
    if attendee is None:
        raise HTTPException(status_code=404, detail="Attendee not found")

    allowed = (
        is_master(current_user)
        or meeting.created_by_id == current_user.id
        or attendee.user_id == current_user.id
    )
    if not allowed:
        await deny(db, current_user, "meeting_attendee", attendee_id, request)

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(attendee, field, value)
    await db.flush()
    await db.refresh(attendee)

    user_result = await db.execute(select(User).where(User.id == attendee.user_id))
    return attendee_to_response(attendee, user_result.scalar_one_or_none())


@router.get("/{meeting_id}/documents", response_model=list[DocumentResponse])
async def list_documents(
    meeting_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ensure_meeting_access(db, current_user, meeting_id, request)
    result = await db.execute(
        select(MeetingDocument)
        .where(MeetingDocument.meeting_id == meeting_id)
        .order_by(MeetingDocument.created.desc())
    )
    return [document_to_response(d) for d in result.scalars().all()]


@router.post("/{meeting_id}/documents", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    meeting_id: str,
    request: Request,
    file: UploadFile = UploadFileField(...),
    name: Optional[str] = Form(None),
    type: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Upload minutes, attachments, images or recordings."""
    await ensure_meeting_access(db, current_user, meeting_id, request)
    stored = await save_upload(file, "meetings", meeting_id)

    document = MeetingDocument(
        id=stored.id,
        meeting_id=meeting_id,
        name=name or stored.name,
        type=type or stored.content_type,
        file_path=stored.path,
        file_size=stored.size,
        uploaded_by_id=current_user.id,
    )
    db.add(document)
    await db.flush()
    await db.refresh(document)

    await ActivityLogger.log_upload(db, current_user.id, "meeting_document", document.id,
                                    f'Uploaded "{document.name}" to meeting', request)
    return document_to_response(document)


@router.get("/{meeting_id}/reactions", response_model=list[ReactionResponse])
async def list_reactions(
    meeting_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ensure_meeting_access(db, current_user, meeting_id, request)
    result = await db.execute(
        select(MeetingReaction)
        .where(MeetingReaction.meeting_id == meeting_id)
        .order_by(MeetingReaction.created.asc())
    )
    return [reaction_to_response(r) for r in result.scalars().all()]


@router.post("/{meeting_id}/reactions", response_model=ReactionToggleResponse, status_code=status.HTTP_201_CREATED)
async def toggle_reaction(
    meeting_id: str,
    data: ReactionCreate,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Add the caller's reaction, or remove it when it already exists."""
    await ensure_meeting_access(db, current_user, meeting_id, request)

    result = await db.execute(
        select(MeetingReaction).where(
            MeetingReaction.meeting_id == meeting_id,
            MeetingReaction.user_id == current_user.id,
            MeetingReaction.emoji == data.emoji,
        )
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        await db.delete(existing)
        response.status_code = status.HTTP_200_OK
        return ReactionToggleResponse(removed=True)

    reaction = MeetingReaction(meeting_id=meeting_id, user_id=current_user.id, emoji=data.emoji)
    db.add(reaction)
    await db.flush()
    await db.refresh(reaction)
    return ReactionToggleResponse(removed=False, reaction=reaction_to_response(reaction))


@router.delete("/{meeting_id}/reactions/{reaction_id}", response_model=MessageResponse)
async def delete_reaction(
    meeting_id: str,
    reaction_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(select(MeetingReaction).where(MeetingReaction.id == reaction_id))
    reaction = result.scalar_one_or_none()
    if reaction is None:
        raise HTTPException(status_code=404, detail="Reaction not found")
    if reaction.meeting_id != meeting_id:
        raise HTTPException(status_code=400, detail="Reaction does not belong to this meeting")
    if not (is_master(current_user) or reaction.user_id == current_user.id):
        await deny(db, current_user, "meeting_reaction", reaction_id, request)

    await db.delete(reaction)
    return MessageResponse(message="Reaction removed")


@router.get("/{meeting_id}/tasks", response_model=list[TaskResponse])
async def list_meeting_tasks(
    meeting_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ensure_meeting_access(db, current_user, meeting_id, request)
    result = await db.execute(
        select(Task).where(Task.meeting_id == meeting_id).order_by(Task.deadline.asc())
    )
    return [task_to_response(t) for t in result.scalars().all()]
