"""
Public hearing schemas.
"""
from typing import Optional
from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from comunigov.models.public_hearing import PublicHearingStatus
from comunigov.schemas.common import PartialUpdate
from comunigov.schemas.entity import EntityResponse
from comunigov.schemas.meeting import TIME_PATTERN


class PublicHearingCreate(BaseModel):
    """Create public hearing request."""
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None
    date: datetime
    start_time: str = Field(..., pattern=TIME_PATTERN)
    end_time: str = Field(..., pattern=TIME_PATTERN)
    location: str = Field(..., min_length=1, max_length=300)
    status: PublicHearingStatus = PublicHearingStatus.SCHEDULED
    entity_id: str

    @model_validator(mode="after")
    def check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class PublicHearingUpdate(PartialUpdate):
    """Update public hearing request."""
    not_null = ("title", "date", "start_time", "end_time", "location", "status")

    title: Optional[str] = Field(None, min_length=1, max_length=300)
    description: Optional[str] = None
    date: Optional[datetime] = None
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    location: Optional[str] = Field(None, min_length=1, max_length=300)
    status: Optional[PublicHearingStatus] = None


class PublicHearingFileResponse(BaseModel):
    """Public hearing file response."""
    id: str
    public_hearing_id: str
    name: str
    type: str
    file_size: int
    download_url: str
    created: datetime


class PublicHearingResponse(BaseModel):
    """Public hearing response."""
    id: str
    title: str
    description: Optional[str] = None
    date: datetime
    start_time: str
    end_time: str
    location: str
    status: str
    entity_id: str
    created_by_id: str
    created: datetime
    updated: datetime


class PublicHearingDetailResponse(PublicHearingResponse):
    """Public hearing with its entity and files."""
    entity: Optional[EntityResponse] = None
    files: list[PublicHearingFileResponse] = []
