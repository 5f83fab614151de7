"""
Communication models: messages, their recipients and attached files.
"""
from typing import Optional
from datetime import datetime
import enum
from sqlalchemy import String, Text, Boolean, ForeignKey, DateTime, Enum, Integer
from sqlalchemy.orm import Mapped, mapped_column
from comunigov.models.base import BaseModel, utcnow


class CommunicationChannel(str, enum.Enum):
    """Delivery channel for a communication."""
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    TELEGRAM = "telegram"
    SYSTEM_NOTIFICATION = "system_notification"


class Communication(BaseModel):
    """Communication model."""
    __tablename__ = "communications"

    subject: Mapped[str] = mapped_column(String(300), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    channel: Mapped[CommunicationChannel] = mapped_column(
        Enum(CommunicationChannel, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True
    )
    sent_by_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )
    has_attachments: Mapped[bool] = mapped_column(Boolean, default=False)
    # Waiting for attachments before being delivered
    delivery_pending: Mapped[bool] = mapped_column(Boolean, default=False)

    def __repr__(self) -> str:
        return f"<Communication {self.subject}>"


class CommunicationRecipient(BaseModel):
    """A user or entity addressed by a communication."""
    __tablename__ = "communication_recipients"

    communication_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("communications.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    entity_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("entities.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class CommunicationFile(BaseModel):
    """File attached to a communication."""
    __tablename__ = "communication_files"

    communication_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("communications.id", ondelete="CASCADE"),
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
