"""
Webhook schemas.
"""
import uuid
from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel


class WebhookDeliveryResponse(BaseModel):
    """Webhook delivery record."""
    id: uuid.UUID
    webhook_id: uuid.UUID
    event: str
    status: str
    payload: Dict[str, Any]
    response_status: Optional[int]
    error_message: Optional[str]
    attempt_count: int
    next_retry_at: Optional[datetime]
    created_at: datetime
    delivered_at: Optional[datetime]
    failed_at: Optional[datetime]

    class Config:
        from_attributes = True
