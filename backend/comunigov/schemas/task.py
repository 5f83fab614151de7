"""
Task schemas.
"""
from typing import Optional
from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from comunigov.models.task import TaskStatus
from comunigov.schemas.common import PartialUpdate, UserSummary


class TaskCreate(BaseModel):
    """Create task request.

    Registered owner: ``is_registered_user`` with ``assigned_to_user_id``.
    External owner: ``owner_name`` plus ``owner_email`` or ``owner_phone``.
    """
    title: str = Field(..., min_length=1, max_length=300)
    description: str = Field(..., min_length=1)
    deadline: datetime
    status: TaskStatus = TaskStatus.PENDING
    subject_id: str
    is_registered_user: bool = True
    assigned_to_user_id: Optional[str] = None
    owner_name: Optional[str] = Field(None, max_length=200)
    owner_email: Optional[EmailStr] = None
    owner_phone: Optional[str] = Field(None, max_length=50)
    entity_id: Optional[str] = None
    meeting_id: Optional[str] = None


class TaskUpdate(PartialUpdate):
    """Update task request."""
    not_null = ("title", "description", "deadline", "status", "is_registered_user")

    title: Optional[str] = Field(None, min_length=1, max_length=300)
    description: Optional[str] = Field(None, min_length=1)
    deadline: Optional[datetime] = None
    status: Optional[TaskStatus] = None
    is_registered_user: Optional[bool] = None
    assigned_to_user_id: Optional[str] = None
    owner_name: Optional[str] = Field(None, max_length=200)
    owner_email: Optional[EmailStr] = None
    owner_phone: Optional[str] = Field(None, max_length=50)
    entity_id: Optional[str] = None
    meeting_id: Optional[str] = None


class TaskResponse(BaseModel):
    """Task response."""
    id: str
    title: str
    description: str
    deadline: datetime
    status: str
    subject_id: str
    is_registered_user: bool
    assigned_to_user_id: Optional[str] = None
    owner_name: Optional[str] = None
    owner_email: Optional[str] = None
    owner_phone: Optional[str] = None
    created_by_id: str
    entity_id: Optional[str] = None
    meeting_id: Optional[str] = None
    assignee: Optional[UserSummary] = None
    created: datetime
    updated: datetime


class CommentCreate(BaseModel):
    """Create task comment request."""
    content: str = Field(..., min_length=1)


class CommentResponse(BaseModel):
    """Task comment response."""
    id: str
    task_id: str
    user_id: str
    content: str
    created: datetime

    class Config:
        from_attributes = True
