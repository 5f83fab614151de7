"""
Common schemas used across the application.
"""
from typing import ClassVar, Generic, TypeVar, Optional
from pydantic import BaseModel, model_validator

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Paginated list response."""
    page: int
    perPage: int
    totalItems: int
    totalPages: int
    items: list[T]


class MessageResponse(BaseModel):
    """Simple message response."""
    message: str


class HealthResponse(BaseModel):
    """Health check response."""
    code: int = 200
    message: str = "API is healthy."


class UserSummary(BaseModel):
    """Minimal user info embedded in other responses."""
    id: str
    username: str
    full_name: str
    email: str
    role: str
    entity_id: Optional[str] = None

    class Config:
        from_attributes = True


class PartialUpdate(BaseModel):
    """PATCH body. Fields named in ``not_null`` may be omitted but not sent as null."""
    not_null: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_nulls(self):
        nulls = [f for f in self.not_null if f in self.model_fields_set and getattr(self, f) is None]
        if nulls:
            raise ValueError(f"{', '.join(nulls)} cannot be null")
        return self
