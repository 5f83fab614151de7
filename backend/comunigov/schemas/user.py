"""
User schemas.
"""
from typing import Optional
from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from comunigov.models.user import UserRole
from comunigov.schemas.common import PartialUpdate


class UserCreate(BaseModel):
    """Create user request."""
    username: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str = Field(..., min_length=1, max_length=200)
    role: UserRole = UserRole.ENTITY_MEMBER
    entity_id: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    whatsapp: Optional[str] = Field(None, max_length=50)
    telegram: Optional[str] = Field(None, max_length=100)
    position: Optional[str] = Field(None, max_length=200)


class UserUpdate(PartialUpdate):
    """Update user request. role, entity_id, username and is_active are master-only."""
    not_null = ("username", "email", "full_name", "role", "is_active")

    username: Optional[str] = Field(None, min_length=3, max_length=100)
    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    role: Optional[UserRole] = None
    entity_id: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    whatsapp: Optional[str] = Field(None, max_length=50)
    telegram: Optional[str] = Field(None, max_length=100)
    position: Optional[str] = Field(None, max_length=200)
    is_active: Optional[bool] = None


class NotificationPreferences(BaseModel):
    """Notification preference flags."""
    notify_email: bool = True
    notify_system: bool = True
    notify_whatsapp: bool = False
    notify_telegram: bool = False


class PasswordReset(BaseModel):
    """Admin password reset request."""
    new_password: str = Field(..., min_length=8)


class UserResponse(BaseModel):
    """User response."""
    id: str
    username: str
    email: str
    full_name: str
    role: str
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    telegram: Optional[str] = None
    position: Optional[str] = None
    entity_id: Optional[str] = None
    require_password_change: bool = False
    is_active: bool = True
    notify_email: bool = True
    notify_system: bool = True
    notify_whatsapp: bool = False
    notify_telegram: bool = False
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True
