"""
Webhook models - event dispatch for integrations.
Subscriptions are managed by the settings service; deliveries are owned here.
"""
import uuid
from datetime import datetime
from typing import Optional, List, Dict, Any

from sqlmodel import SQLModel, Field
from sqlalchemy import Column

from lead_qualifier.database import JSONType


class WebhookEvent:
    LEAD_CREATED = "lead.created"
    LEAD_QUALIFIED = "lead.qualified"
    LEAD_UPDATED = "lead.updated"

    ALL = (LEAD_CREATED, LEAD_QUALIFIED, LEAD_UPDATED)


class DeliveryStatus:
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"  # terminal, max attempts exhausted


class Webhook(SQLModel, table=True):
    """
    Webhook subscription for event notifications.
    External systems receive signed, at-least-once deliveries.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    org_id: uuid.UUID = Field(index=True)

    # Webhook config
    name: Optional[str] = None
    url: str
    secret: str  # For signature verification

    # Events to subscribe to
    events: List[str] = Field(default=[], sa_column=Column(JSONType))
    # Example: ["lead.qualified", "lead.updated"]

    # Status
    is_active: bool = Field(default=True)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class WebhookDelivery(SQLModel, table=True):
    """
    One attempt-series to push one event occurrence to one subscription.
    Retained for audit; never deleted.
    """
    __tablename__ = "webhook_delivery"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    webhook_id: uuid.UUID = Field(foreign_key="webhook.id", index=True)
    org_id: uuid.UUID = Field(index=True)

    # Event info
    event: str
    payload: Dict[str, Any] = Field(default={}, sa_column=Column(JSONType))

    # Delivery status
    status: str = Field(default=DeliveryStatus.PENDING, index=True)
    response_status: Optional[int] = None
    response_body: Optional[str] = None
    error_message: Optional[str] = None

    # Retry tracking
    attempt_count: int = Field(default=0)
    next_retry_at: Optional[datetime] = Field(default=None, index=True)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    delivered_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
