"""
ORM row -> response schema converters shared by the routers.
"""
from typing import Optional

from comunigov.core.config import settings
from comunigov.models.activity_log import UserActivityLog
from comunigov.models.badge import AchievementBadge, UserBadge
from comunigov.models.communication import Communication, CommunicationFile
from comunigov.models.entity import Entity
from comunigov.models.meeting import Meeting, MeetingAttendee, MeetingDocument, MeetingReaction
from comunigov.models.public_hearing import PublicHearing, PublicHearingFile
from comunigov.models.subject import Subject
from comunigov.models.task import Task
from comunigov.models.user import User, UserRole
from comunigov.schemas.activity_log import ActivityLogResponse
from comunigov.schemas.badge import BadgeResponse, UserBadgeResponse
from comunigov.schemas.common import UserSummary
from comunigov.schemas.communication import CommunicationResponse, CommunicationFileResponse
from comunigov.schemas.entity import EntityResponse
from comunigov.schemas.meeting import (
    MeetingResponse, AttendeeResponse, DocumentResponse, ReactionResponse
)
from comunigov.schemas.public_hearing import PublicHearingResponse, PublicHearingFileResponse
from comunigov.schemas.subject import SubjectResponse
from comunigov.schemas.task import TaskResponse
from comunigov.schemas.user import UserResponse


def download_url(file_id: str) -> str:
    return f"{settings.API_V1_PREFIX}/files/{file_id}/download"


def user_to_response(user: User) -> UserResponse:
    """Convert User model to UserResponse schema."""
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        full_name=user.full_name,
        role=user.role.value if user.role else UserRole.ENTITY_MEMBER.value,
        phone=user.phone,
        whatsapp=user.whatsapp,
        telegram=user.telegram,
        position=user.position,
        entity_id=user.entity_id,
        require_password_change=bool(user.require_password_change),
        is_active=bool(user.is_active),
        notify_email=bool(user.notify_email),
        notify_system=bool(user.notify_system),
        notify_whatsapp=bool(user.notify_whatsapp),
        notify_telegram=bool(user.notify_telegram),
        created=user.created,
        updated=user.updated,
    )


def user_to_summary(user: Optional[User]) -> Optional[UserSummary]:
    if user is None:
        return None
    return UserSummary(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        email=user.email,
        role=user.role.value,
        entity_id=user.entity_id,
    )


def entity_to_response(entity: Entity) -> EntityResponse:
    return EntityResponse(
        id=entity.id,
        name=entity.name,
        type=entity.type.value,
        head_name=entity.head_name,
        head_position=entity.head_position,
        head_email=entity.head_email,
        address=entity.address,
        phone=entity.phone,
        website=entity.website,
        social_media=entity.social_media,
        tags=entity.tags or [],
        created=entity.created,
        updated=entity.updated,
    )


def meeting_to_response(meeting: Meeting) -> MeetingResponse:
    return MeetingResponse(
        id=meeting.id,
        name=meeting.name,
        agenda=meeting.agenda,
        date=meeting.date,
        start_time=meeting.start_time,
        end_time=meeting.end_time,
        location=meeting.location,
        subject=meeting.subject,
        is_registered_subject=bool(meeting.is_registered_subject),
        subject_id=meeting.subject_id,
        created_by_id=meeting.created_by_id,
        created=meeting.created,
        updated=meeting.updated,
    )


def attendee_to_response(attendee: MeetingAttendee, user: Optional[User] = None) -> AttendeeResponse:
    return AttendeeResponse(
        id=attendee.id,
        meeting_id=attendee.meeting_id,
        user_id=attendee.user_id,
        confirmed=bool(attendee.confirmed),
        attended=bool(attendee.attended),
        user=user_to_summary(user),
        created=attendee.created,
    )


def document_to_response(doc: MeetingDocument) -> DocumentResponse:
    return DocumentResponse(
        id=doc.id,
        meeting_id=doc.meeting_id,
        name=doc.name,
        type=doc.type,
        file_size=doc.file_size,
        uploaded_by_id=doc.uploaded_by_id,
        download_url=download_url(doc.id),
        created=doc.created,
    )


def reaction_to_response(reaction: MeetingReaction) -> ReactionResponse:
    return ReactionResponse(
        id=reaction.id,
        meeting_id=reaction.meeting_id,
        user_id=reaction.user_id,
        emoji=reaction.emoji.value,
        created=reaction.created,
    )


def subject_to_response(subject: Subject, entity_ids: Optional[list[str]] = None) -> SubjectResponse:
    return SubjectResponse(
        id=subject.id,
        name=subject.name,
        description=subject.description,
        created_by_id=subject.created_by_id,
        entity_ids=entity_ids or [],
        created=subject.created,
        updated=subject.updated,
    )


def task_to_response(task: Task, assignee: Optional[User] = None) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        title=task.title,
        description=task.description,
        deadline=task.deadline,
        status=task.status.value,
        subject_id=task.subject_id,
        is_registered_user=bool(task.is_registered_user),
        assigned_to_user_id=task.assigned_to_user_id,
        owner_name=task.owner_name,
        owner_email=task.owner_email,
        owner_phone=task.owner_phone,
        created_by_id=task.created_by_id,
        entity_id=task.entity_id,
        meeting_id=task.meeting_id,
        assignee=user_to_summary(assignee),
        created=task.created,
        updated=task.updated,
    )


def communication_to_response(communication: Communication) -> CommunicationResponse:
    return CommunicationResponse(
        id=communication.id,
        subject=communication.subject,
        content=communication.content,
        channel=communication.channel.value,
        sent_by_id=communication.sent_by_id,
        sent_at=communication.sent_at,
        has_attachments=bool(communication.has_attachments),
        delivery_pending=bool(communication.delivery_pending),
        created=communication.created,
        updated=communication.updated,
    )


def communication_file_to_response(f: CommunicationFile) -> CommunicationFileResponse:
    return CommunicationFileResponse(
        id=f.id,
        communication_id=f.communication_id,
        name=f.name,
        type=f.type,
        file_size=f.file_size or 0,
        download_url=download_url(f.id),
        created=f.created,
    )


def hearing_to_response(hearing: PublicHearing) -> PublicHearingResponse:
    return PublicHearingResponse(
        id=hearing.id,
        title=hearing.title,
        description=hearing.description,
        date=hearing.date,
        start_time=hearing.start_time,
        end_time=hearing.end_time,
        location=hearing.location,
        status=hearing.status.value,
        entity_id=hearing.entity_id,
        created_by_id=hearing.created_by_id,
        created=hearing.created,
        updated=hearing.updated,
    )


def hearing_file_to_response(f: PublicHearingFile) -> PublicHearingFileResponse:
    return PublicHearingFileResponse(
        id=f.id,
        public_hearing_id=f.public_hearing_id,
        name=f.name,
        type=f.type,
        file_size=f.file_size or 0,
        download_url=download_url(f.id),
        created=f.created,
    )


def badge_to_response(badge: AchievementBadge) -> BadgeResponse:
    return BadgeResponse(
        id=badge.id,
        name=badge.name,
        description=badge.description,
        icon=badge.icon,
        category=badge.category,
        level=badge.level,
        criteria=badge.criteria or {},
        created=badge.created,
        updated=badge.updated,
    )


def user_badge_to_response(
    user_badge: UserBadge,
    badge: Optional[AchievementBadge] = None
) -> UserBadgeResponse:
    return UserBadgeResponse(
        id=user_badge.id,
        user_id=user_badge.user_id,
        badge_id=user_badge.badge_id,
        earned_at=user_badge.earned_at,
        progress=user_badge.progress,
        featured=bool(user_badge.featured),
        seen=bool(user_badge.seen),
        badge=badge_to_response(badge) if badge is not None else None,
    )


def activity_log_to_response(entry: UserActivityLog) -> ActivityLogResponse:
    return ActivityLogResponse(
        id=entry.id,
        user_id=entry.user_id,
        action=entry.action.value,
        description=entry.description,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        ip_address=entry.ip_address,
        user_agent=entry.user_agent,
        metadata=entry.extra,
        created=entry.created,
    )
