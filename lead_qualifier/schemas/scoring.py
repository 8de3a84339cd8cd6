"""
Scoring schemas - outcomes, model versions, training and settings.
"""
import uuid
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime
from pydantic import BaseModel, Field


class OutcomeCreate(BaseModel):
    """Record the terminal outcome of a lead."""
    label: Literal["converted", "rejected"]
    notes: Optional[str] = None
    outcome_value: Optional[float] = Field(default=None, ge=0)
    days_to_outcome: Optional[int] = Field(default=None, ge=0)

    class Config:
        json_schema_extra = {
            "example": {
                "label": "converted",
                "notes": "Closed-won after second demo",
                "outcome_value": 48000
            }
        }


class OutcomeResponse(BaseModel):
    """Outcome record."""
    id: uuid.UUID
    lead_id: uuid.UUID
    label: str
    supersedes_id: Optional[uuid.UUID]
    notes: Optional[str]
    outcome_value: Optional[float] = None
    days_to_outcome: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OutcomeRecordedResponse(BaseModel):
    """Result of recording an outcome."""
    outcome: OutcomeResponse
    total_outcomes: int
    retraining_recommended: bool
    training_started: bool = False


class ScoringModelResponse(BaseModel):
    """Model version."""
    id: uuid.UUID
    model_version: int
    strategy: str
    feature_names: List[str]
    performance_metrics: Dict[str, Any]
    trained_on_count: int
    status: str
    is_active: bool
    created_at: datetime
    activated_at: Optional[datetime]
    superseded_at: Optional[datetime]

    class Config:
        from_attributes = True


class ModelStatsResponse(BaseModel):
    """Learning-loop status for an organization."""
    current_model: Optional[ScoringModelResponse]
    total_outcomes: int
    outcomes_by_label: Dict[str, int]
    retraining_recommended: bool
    training_in_progress: bool


class TrainingStartedResponse(BaseModel):
    """Background training accepted."""
    status: str = "training"
    message: str


class ScoringSettingsResponse(BaseModel):
    """Label thresholds and blend configuration."""
    hot_threshold: float
    warm_threshold: float
    blend_policy: str
    model_weight: float
    is_default: bool = False


class ScoringSettingsUpdate(BaseModel):
    """Update thresholds and blend configuration."""
    hot_threshold: Optional[float] = Field(default=None, ge=0, le=100)
    warm_threshold: Optional[float] = Field(default=None, ge=0, le=100)
    blend_policy: Optional[Literal["rule_only", "blended", "model_override"]] = None
    model_weight: Optional[float] = Field(default=None, ge=0, le=1)

    class Config:
        json_schema_extra = {
            "example": {
                "hot_threshold": 75,
                "warm_threshold": 45,
                "blend_policy": "blended",
                "model_weight": 0.6
            }
        }


class RecalculateRequest(BaseModel):
    """Request to recalculate lead scores."""
    lead_ids: Optional[list[uuid.UUID]] = None  # None means all leads


class RecalculateResponse(BaseModel):
    """Result of score recalculation."""
    total_updated: int
    avg_score_before: float
    avg_score_after: float
    label_changes: int = 0
    model_version: Optional[int] = None
