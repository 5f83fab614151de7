"""
Database models.
"""
from comunigov.models.base import BaseModel, TimestampMixin, generate_id
from comunigov.models.user import User, UserRole
from comunigov.models.entity import Entity, EntityType
from comunigov.models.subject import Subject, SubjectEntity
from comunigov.models.meeting import (
    Meeting,
    MeetingAttendee,
    MeetingDocument,
    MeetingReaction,
    ReactionEmoji,
)
from comunigov.models.task import Task, TaskComment, TaskStatus
from comunigov.models.communication import (
    Communication,
    CommunicationRecipient,
    CommunicationFile,
    CommunicationChannel,
)
from comunigov.models.public_hearing import (
    PublicHearing,
    PublicHearingFile,
    PublicHearingStatus,
)
from comunigov.models.badge import AchievementBadge, UserBadge
from comunigov.models.activity_log import UserActivityLog, UserAction

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "generate_id",
    "User",
    "UserRole",
    "Entity",
    "EntityType",
    "Subject",
    "SubjectEntity",
    "Meeting",
    "MeetingAttendee",
    "MeetingDocument",
    "MeetingReaction",
    "ReactionEmoji",
    "Task",
    "TaskComment",
    "TaskStatus",
    "Communication",
    "CommunicationRecipient",
    "CommunicationFile",
    "CommunicationChannel",
    "PublicHearing",
    "PublicHearingFile",
    "PublicHearingStatus",
    "AchievementBadge",
    "UserBadge",
    "UserActivityLog",
    "UserAction",
]
