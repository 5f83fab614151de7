"""
Meeting models: meetings, attendees, documents and quick reactions.
"""
from typing import Optional
from datetime import datetime, time, timedelta, timezone
import enum
from sqlalchemy import String, Text, Boolean, ForeignKey, DateTime, Enum, UniqueConstraint, and_, or_
from sqlalchemy.orm import Mapped, mapped_column
from comunigov.models.base import BaseModel


class ReactionEmoji(str, enum.Enum):
    """Emoji allowed as meeting reactions."""
    THUMBS_UP = "👍"
    THUMBS_DOWN = "👎"
    HEART = "❤️"
    PARTY = "🎉"
    THINKING = "🤔"
    SMILE = "😄"
    SAD = "😢"
    CLAP = "👏"


class Meeting(BaseModel):
    """Meeting model."""
    __tablename__ = "meetings"

    name: Mapped[str] = mapped_column(String(300), nullable=False)
    agenda: Mapped[str] = mapped_column(Text, nullable=False)

    # Timing: calendar date plus HH:MM start/end strings
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)

    # Either free-text subject or a registered subject
    subject: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    is_registered_subject: Mapped[bool] = mapped_column(Boolean, default=False)
    subject_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("subjects.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    created_by_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    @classmethod
    def starts_after(cls, moment: datetime):
        """Clause for meetings whose date plus start time falls after ``moment`` (UTC)."""
        day = datetime.combine(moment.date(), time.min, tzinfo=timezone.utc)
        next_day = day + timedelta(days=1)
        return or_(
            cls.date >= next_day,
            and_(cls.date >= day, cls.date < next_day, cls.start_time > moment.strftime("%H:%M")),
        )

    def __repr__(self) -> str:
        return f"<Meeting {self.name}>"


class MeetingAttendee(BaseModel):
    """A user invited to a meeting."""
    __tablename__ = "meeting_attendees"
    __table_args__ = (
        UniqueConstraint("meeting_id", "user_id", name="uq_meeting_attendees_meeting_user"),
    )

    meeting_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("meetings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    attended: Mapped[bool] = mapped_column(Boolean, default=False)


class MeetingDocument(BaseModel):
    """File attached to a meeting (minutes, attachments, images, recordings)."""
    __tablename__ = "meeting_documents"

    meeting_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("meetings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[Optional[int]] = mapped_column(nullable=True)
    uploaded_by_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )


class MeetingReaction(BaseModel):
    """Quick emoji reaction left by a user on a meeting."""
    __tablename__ = "meeting_reactions"

    meeting_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("meetings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    emoji: Mapped[ReactionEmoji] = mapped_column(
        Enum(ReactionEmoji, values_callable=lambda x: [e.value for e in x]),
        nullable=False
    )
