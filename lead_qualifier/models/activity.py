"""
Activity log model - audit trail for qualification, learning and delivery events.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from sqlmodel import SQLModel, Field
from sqlalchemy import Column

from lead_qualifier.database import JSONType


class ActivityLog(SQLModel, table=True):
    """
    Activity log for tracking all significant engine actions.
    Used for audit trail and the qualification history of a lead.
    """
    __tablename__ = "activity_log"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    org_id: uuid.UUID = Field(index=True)
    actor_id: Optional[uuid.UUID] = Field(default=None, index=True)

    # Action details
    action: str = Field(index=True)
    entity_type: str = Field(index=True)  # lead, scoring_model, webhook_delivery
    entity_id: Optional[uuid.UUID] = None

    # Human-readable description
    description: Optional[str] = None

    # Additional metadata
    meta_data: Dict[str, Any] = Field(default={}, sa_column=Column(JSONType))
    # Example: {"score": 82.5, "label": "hot", "model_version": 3}

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)


# Action constants for consistency
class Actions:
    LEAD_QUALIFIED = "lead.qualified"
    LEAD_UNSCORED = "lead.unscored"
    OUTCOME_RECORDED = "outcome.recorded"
    MODEL_TRAINED = "model.trained"
    MODEL_ACTIVATED = "model.activated"
    WEBHOOK_FAILED = "webhook.failed"
