"""
Subject schemas.
"""
from typing import Optional
from pydantic import BaseModel, Field
from datetime import datetime
from comunigov.schemas.common import PartialUpdate


class SubjectCreate(BaseModel):
    """Create subject request."""
    name: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None
    entity_ids: list[str] = []


class SubjectUpdate(PartialUpdate):
    """Update subject request."""
    not_null = ("name",)

    name: Optional[str] = Field(None, min_length=1, max_length=300)
    description: Optional[str] = None


class SubjectResponse(BaseModel):
    """Subject response."""
    id: str
    name: str
    description: Optional[str] = None
    created_by_id: str
    entity_ids: list[str] = []
    created: datetime
    updated: datetime
