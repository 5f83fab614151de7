"""
Communication schemas.
"""
from typing import Optional
from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from comunigov.models.communication import CommunicationChannel


class RecipientInput(BaseModel):
    """A communication recipient: a user, an entity, or both."""
    user_id: Optional[str] = None
    entity_id: Optional[str] = None

    @model_validator(mode="after")
    def check_target(self):
        if not self.user_id and not self.entity_id:
            raise ValueError("Recipient needs user_id or entity_id")
        return self


class CommunicationCreate(BaseModel):
    """Create communication request."""
    subject: str = Field(..., min_length=1, max_length=300)
    content: str = Field(..., min_length=1)
    channel: CommunicationChannel
    recipients: list[RecipientInput] = Field(..., min_length=1)
    has_attachments: bool = False
    # Delivery waits until files are uploaded
    expect_attachments: bool = False


class RecipientResponse(BaseModel):
    """Communication recipient response."""
    id: str
    user_id: Optional[str] = None
    entity_id: Optional[str] = None
    read: bool
    read_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CommunicationFileResponse(BaseModel):
    """Communication file response."""
    id: str
    communication_id: str
    name: str
    type: str
    file_size: int
    download_url: str
    created: datetime


class DeliveryResult(BaseModel):
    """Outcome of one delivery attempt on one channel."""
    channel: str
    success: bool
    recipient: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None


class CommunicationResponse(BaseModel):
    """Communication response."""
    id: str
    subject: str
    content: str
    channel: str
    sent_by_id: str
    sent_at: datetime
    has_attachments: bool
    delivery_pending: bool
    created: datetime
    updated: datetime


class CommunicationDetailResponse(CommunicationResponse):
    """Communication with recipients and files."""
    recipients: list[RecipientResponse] = []
    files: list[CommunicationFileResponse] = []


class CommunicationSendResponse(CommunicationDetailResponse):
    """Communication creation outcome with delivery details."""
    recipients_without_whatsapp: list[str] = []
    delivery: dict[str, list[DeliveryResult]] = {}
