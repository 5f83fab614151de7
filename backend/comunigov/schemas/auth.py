"""
Authentication schemas.
"""
from pydantic import BaseModel, Field
from comunigov.schemas.user import UserResponse


class LoginRequest(BaseModel):
    """Username/password login request."""
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """Auth token response."""
    token: str
    record: UserResponse


class PasswordChange(BaseModel):
    """Password change request."""
    current_password: str
    new_password: str = Field(..., min_length=8)
