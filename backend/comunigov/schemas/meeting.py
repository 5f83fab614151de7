"""
Meeting schemas.
"""
from typing import Optional, Union
from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from comunigov.models.meeting import ReactionEmoji
from comunigov.schemas.common import PartialUpdate, UserSummary

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class AttendeeInput(BaseModel):
    """Attendee given as an object on meeting creation."""
    user_id: str
    confirmed: bool = False


class MeetingCreate(BaseModel):
    """Create meeting request.

    ``attendees`` accepts plain user ids or ``{user_id, confirmed}`` objects.
    """
    name: str = Field(..., min_length=1, max_length=300)
    agenda: str = Field(..., min_length=1)
    date: datetime
    start_time: str = Field(..., pattern=TIME_PATTERN)
    end_time: str = Field(..., pattern=TIME_PATTERN)
    location: Optional[str] = Field(None, max_length=300)
    subject: Optional[str] = Field(None, max_length=300)
    subject_id: Optional[str] = None
    attendees: list[Union[str, AttendeeInput]] = []

    @model_validator(mode="after")
    def check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class MeetingUpdate(PartialUpdate):
    """Update meeting request."""
    not_null = ("name", "agenda", "date", "start_time", "end_time")

    name: Optional[str] = Field(None, min_length=1, max_length=300)
    agenda: Optional[str] = Field(None, min_length=1)
    date: Optional[datetime] = None
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    location: Optional[str] = Field(None, max_length=300)
    subject: Optional[str] = Field(None, max_length=300)
    subject_id: Optional[str] = None


class MeetingResponse(BaseModel):
    """Meeting response."""
    id: str
    name: str
    agenda: str
    date: datetime
    start_time: str
    end_time: str
    location: Optional[str] = None
    subject: Optional[str] = None
    is_registered_subject: bool = False
    subject_id: Optional[str] = None
    created_by_id: str
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class AttendeeCreate(BaseModel):
    """Add attendee request."""
    user_id: str
    confirmed: bool = False


class AttendeeUpdate(PartialUpdate):
    """Update attendee request."""
    not_null = ("confirmed", "attended")

    confirmed: Optional[bool] = None
    attended: Optional[bool] = None


class AttendeeResponse(BaseModel):
    """Meeting attendee response."""
    id: str
    meeting_id: str
    user_id: str
    confirmed: bool
    attended: bool
    user: Optional[UserSummary] = None
    created: datetime

    class Config:
        from_attributes = True


class DocumentResponse(BaseModel):
    """Meeting document response."""
    id: str
    meeting_id: str
    name: str
    type: str
    file_size: Optional[int] = None
    uploaded_by_id: str
    download_url: str
    created: datetime


class ReactionCreate(BaseModel):
    """Toggle reaction request."""
    emoji: ReactionEmoji


class ReactionResponse(BaseModel):
    """Meeting reaction response."""
    id: str
    meeting_id: str
    user_id: str
    emoji: str
    created: datetime


class ReactionToggleResponse(BaseModel):
    """Reaction toggle outcome: the created reaction, or removed=True."""
    removed: bool = False
    reaction: Optional[ReactionResponse] = None


class MeetingDetailResponse(MeetingResponse):
    """Meeting with attendees, documents and reactions."""
    attendees: list[AttendeeResponse] = []
    documents: list[DocumentResponse] = []
    reactions: list[ReactionResponse] = []