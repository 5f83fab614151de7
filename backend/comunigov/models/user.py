"""
User model.
"""
from typing import Optional, TYPE_CHECKING
import enum
from sqlalchemy import String, Boolean, ForeignKey, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from comunigov.models.base import BaseModel

if TYPE_CHECKING:
    from comunigov.models.entity import Entity


class UserRole(str, enum.Enum):
    """Role hierarchy: global / entity-wide / self-only scope."""
    MASTER_IMPLEMENTER = "master_implementer"
    ENTITY_HEAD = "entity_head"
    ENTITY_MEMBER = "entity_member"


class User(BaseModel):
    """User model for authentication and profile."""
    __tablename__ = "users"

    # Core auth fields
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)

    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=UserRole.ENTITY_MEMBER,
        index=True
    )

    # Contact channels
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    whatsapp: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    telegram: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    position: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    entity_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("entities.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Set for imported members and admin resets until the user picks a password
    require_password_change: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Notification preferences
    notify_email: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_system: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_whatsapp: Mapped[bool] = mapped_column(Boolean, default=False)
    notify_telegram: Mapped[bool] = mapped_column(Boolean, default=False)

    entity: Mapped[Optional["Entity"]] = relationship(
        "Entity",
        foreign_keys=[entity_id],
        back_populates="users"
    )

    @property
    def display_name(self) -> str:
        return self.full_name or self.username

    @property
    def is_master(self) -> bool:
        return self.role == UserRole.MASTER_IMPLEMENTER

    @property
    def is_entity_head(self) -> bool:
        return self.role == UserRole.ENTITY_HEAD

    def __repr__(self) -> str:
        return f"<User {self.username}>"
