"""
Subject models.
"""
from typing import Optional
from sqlalchemy import String, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from comunigov.models.base import BaseModel


class Subject(BaseModel):
    """Topical grouping for tasks, optionally linked to meetings."""
    __tablename__ = "subjects"

    name: Mapped[str] = mapped_column(String(300), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<Subject {self.name}>"


class SubjectEntity(BaseModel):
    """Link between a subject and an entity."""
    __tablename__ = "subject_entities"
    __table_args__ = (
        UniqueConstraint("subject_id", "entity_id", name="uq_subject_entities_subject_entity"),
    )

    subject_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    entity_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("entities.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
