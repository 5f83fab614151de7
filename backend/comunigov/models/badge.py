"""
Achievement badge models.
"""
from typing import Optional
from datetime import datetime
from sqlalchemy import String, Text, Boolean, ForeignKey, DateTime, Integer, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from comunigov.models.base import BaseModel, utcnow


class AchievementBadge(BaseModel):
    """Badge definition.

    ``criteria`` holds ``{"milestone": <name>, "count": <threshold>}``.
    """
    __tablename__ = "achievement_badges"

    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    criteria: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<AchievementBadge {self.name}>"


class UserBadge(BaseModel):
    """Badge earned by a user."""
    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )

    user_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    badge_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("achievement_badges.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )
    progress: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    featured: Mapped[bool] = mapped_column(Boolean, default=False)
    seen: Mapped[bool] = mapped_column(Boolean, default=False)

    badge: Mapped["AchievementBadge"] = relationship("AchievementBadge", foreign_keys=[badge_id])
