"""
Entity model - a government unit that owns users, tasks and public hearings.
"""
from typing import Optional, TYPE_CHECKING
import enum
from sqlalchemy import String, Text, Enum, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from comunigov.models.base import BaseModel

if TYPE_CHECKING:
    from comunigov.models.user import User


class EntityType(str, enum.Enum):
    """Entity type values."""
    SECRETARIAT = "secretariat"
    ADMINISTRATIVE_UNIT = "administrative_unit"
    EXTERNAL_ENTITY = "external_entity"
    GOVERNMENT_AGENCY = "government_agency"
    ASSOCIATION = "association"
    COUNCIL = "council"


class Entity(BaseModel):
    """Entity model."""
    __tablename__ = "entities"

    name: Mapped[str] = mapped_column(String(300), nullable=False, index=True)
    type: Mapped[EntityType] = mapped_column(
        Enum(EntityType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True
    )

    # Head of the entity (not necessarily a registered user)
    head_name: Mapped[str] = mapped_column(String(200), nullable=False)
    head_position: Mapped[str] = mapped_column(String(200), nullable=False)
    head_email: Mapped[str] = mapped_column(String(255), nullable=False)

    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    social_media: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    tags: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)

    users: Mapped[list["User"]] = relationship(
        "User",
        foreign_keys="User.entity_id",
        back_populates="entity"
    )

    def __repr__(self) -> str:
        return f"<Entity {self.name}>"
