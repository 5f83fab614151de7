"""
Task models.
"""
from typing import Optional, TYPE_CHECKING
from datetime import datetime
import enum
from sqlalchemy import String, Text, Boolean, ForeignKey, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from comunigov.models.base import BaseModel

if TYPE_CHECKING:
    from comunigov.models.user import User


class TaskStatus(str, enum.Enum):
    """Task status values."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Task(BaseModel):
    """Task model.

    A task is owned either by a registered user (``assigned_to_user_id``)
    or by an external person described by the ``owner_*`` columns.
    """
    __tablename__ = "tasks"

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    status: Mapped[TaskStatus] = mapped_column(
        Enum(TaskStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=TaskStatus.PENDING,
        index=True
    )

    subject_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("subjects.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Owner
    is_registered_user: Mapped[bool] = mapped_column(Boolean, default=True)
    assigned_to_user_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    owner_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    owner_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    owner_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_by_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    entity_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("entities.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    meeting_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("meetings.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    assignee: Mapped[Optional["User"]] = relationship(
        "User",
        foreign_keys=[assigned_to_user_id]
    )

    def __repr__(self) -> str:
        return f"<Task {self.title}>"


class TaskComment(BaseModel):
    """Comment left on a task."""
    __tablename__ = "task_comments"

    task_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
