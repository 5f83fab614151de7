"""
Public hearing models.
"""
from typing import Optional, TYPE_CHECKING
from datetime import datetime
import enum
from sqlalchemy import String, Text, ForeignKey, DateTime, Enum, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship
from comunigov.models.base import BaseModel

if TYPE_CHECKING:
    from comunigov.models.entity import Entity


class PublicHearingStatus(str, enum.Enum):
    """Public hearing status values."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PublicHearing(BaseModel):
    """Public hearing held by an entity."""
    __tablename__ = "public_hearings"

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    location: Mapped[str] = mapped_column(String(300), nullable=False)
    status: Mapped[PublicHearingStatus] = mapped_column(
        Enum(PublicHearingStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PublicHearingStatus.SCHEDULED,
        index=True
    )
    entity_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("entities.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    created_by_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )

    entity: Mapped["Entity"] = relationship("Entity", foreign_keys=[entity_id])

    def __repr__(self) -> str:
        return f"<PublicHearing {self.title}>"


class PublicHearingFile(BaseModel):
    """File attached to a public hearing."""
    __tablename__ = "public_hearing_files"

    public_hearing_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("public_hearings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    uploaded_by_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
