"""
Entity schemas.
"""
from typing import Optional
from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from comunigov.models.entity import EntityType
from comunigov.schemas.common import PartialUpdate


class EntityCreate(BaseModel):
    """Create entity request."""
    name: str = Field(..., min_length=1, max_length=300)
    type: EntityType
    head_name: str = Field(..., min_length=1, max_length=200)
    head_position: str = Field(..., min_length=1, max_length=200)
    head_email: EmailStr
    address: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    website: Optional[str] = Field(None, max_length=500)
    social_media: Optional[str] = Field(None, max_length=500)
    tags: list[str] = []


class EntityUpdate(PartialUpdate):
    """Update entity request."""
    not_null = ("name", "type", "head_name", "head_position", "head_email")

    name: Optional[str] = Field(None, min_length=1, max_length=300)
    type: Optional[EntityType] = None
    head_name: Optional[str] = Field(None, min_length=1, max_length=200)
    head_position: Optional[str] = Field(None, min_length=1, max_length=200)
    head_email: Optional[EmailStr] = None
    address: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    website: Optional[str] = Field(None, max_length=500)
    social_media: Optional[str] = Field(None, max_length=500)
    tags: Optional[list[str]] = None


class EntityResponse(BaseModel):
    """Entity response."""
    id: str
    name: str
    type: str
    head_name: str
    head_position: str
    head_email: str
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    social_media: Optional[str] = None
    tags: list[str] = []
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class ImportedMember(BaseModel):
    """User created by a member import, with the temporary password to hand out."""
    id: str
    username: str
    email: str
    full_name: str
    temporary_password: str


class ImportResponse(BaseModel):
    """CSV import outcome."""
    success: int
    failed: int
    errors: list[str] = []
    created_ids: list[str] = []
    created_users: list[ImportedMember] = []
