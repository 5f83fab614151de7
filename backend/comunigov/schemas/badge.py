"""
Achievement badge schemas.
"""
from typing import Optional
from pydantic import BaseModel, Field
from datetime import datetime
from comunigov.schemas.common import PartialUpdate


class BadgeCreate(BaseModel):
    """Create badge request."""
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    icon: str = Field(..., min_length=1, max_length=100)
    category: str = Field(..., min_length=1, max_length=100)
    level: int = Field(1, ge=1)
    criteria: dict = {}


class BadgeUpdate(PartialUpdate):
    """Update badge request."""
    not_null = ("name", "description", "icon", "category", "level", "criteria")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    icon: Optional[str] = Field(None, max_length=100)
    category: Optional[str] = Field(None, max_length=100)
    level: Optional[int] = Field(None, ge=1)
    criteria: Optional[dict] = None


class BadgeResponse(BaseModel):
    """Badge response."""
    id: str
    name: str
    description: str
    icon: str
    category: str
    level: int
    criteria: dict
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class UserBadgeAward(BaseModel):
    """Award badge request."""
    badge_id: str
    progress: Optional[dict] = None


class UserBadgeUpdate(PartialUpdate):
    """Update user badge request. Owners may only change ``featured``."""
    not_null = ("featured", "seen")

    featured: Optional[bool] = None
    seen: Optional[bool] = None
    progress: Optional[dict] = None


class MarkSeenRequest(BaseModel):
    """Mark badges as seen."""
    badge_ids: list[str] = Field(..., min_length=1)


class UserBadgeResponse(BaseModel):
    """User badge response with its badge definition."""
    id: str
    user_id: str
    badge_id: str
    earned_at: datetime
    progress: Optional[dict] = None
    featured: bool
    seen: bool
    badge: Optional[BadgeResponse] = None
