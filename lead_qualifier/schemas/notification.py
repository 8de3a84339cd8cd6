"""
Notification schemas.
"""
import uuid
from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel


class NotificationResponse(BaseModel):
    """In-app notification."""
    id: uuid.UUID
    type: str
    title: str
    message: Optional[str]
    data: Dict[str, Any]
    read_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True
