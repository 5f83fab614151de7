"""
Activity log schemas.
"""
from typing import Optional
from pydantic import BaseModel
from datetime import datetime


class ActivityLogResponse(BaseModel):
    """Activity log entry response."""
    id: str
    user_id: str
    action: str
    description: str
    entity_type: str
    entity_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Optional[dict] = None
    created: datetime
