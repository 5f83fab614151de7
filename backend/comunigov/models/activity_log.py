"""
User activity log model.
"""
from typing import Optional
import enum
from sqlalchemy import String, Text, ForeignKey, Enum, JSON
from sqlalchemy.orm import Mapped, mapped_column
from comunigov.models.base import BaseModel


class UserAction(str, enum.Enum):
    """Action recorded in the activity log."""
    LOGIN = "login"
    LOGOUT = "logout"
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SEND = "send"
    DOWNLOAD = "download"
    UPLOAD = "upload"


class UserActivityLog(BaseModel):
    """One user action (including denied access attempts)."""
    __tablename__ = "user_activity_logs"

    user_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    action: Mapped[UserAction] = mapped_column(
        Enum(UserAction, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    extra: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
