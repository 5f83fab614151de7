"""
Pydantic schemas for request/response validation.
"""
from comunigov.schemas.common import (
    PaginatedResponse, MessageResponse, HealthResponse, UserSummary
)

__all__ = [
    "PaginatedResponse",
    "MessageResponse",
    "HealthResponse",
    "UserSummary",
]
