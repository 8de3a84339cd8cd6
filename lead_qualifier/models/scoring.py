"""
Scoring models - learned model versions, outcomes, history and per-org settings.
Together these form the closed learning loop of the scoring engine.
"""
import uuid
from datetime import datetime
from typing import Optional, List, Dict, Any

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, Index, UniqueConstraint, text

from lead_qualifier.database import JSONType


class ModelStatus:
    TRAINED = "trained"  # inactive, never promoted yet
    ACTIVE = "active"
    SUPERSEDED = "superseded"


class OutcomeLabel:
    CONVERTED = "converted"
    REJECTED = "rejected"

    ALL = (CONVERTED, REJECTED)


class ScoringModel(SQLModel, table=True):
    """
    A trained, immutable scoring model version.
    Exactly one version per organization may be active at a time.
    """
    __tablename__ = "scoring_model"
    __table_args__ = (
        UniqueConstraint("org_id", "model_version", name="uq_scoring_model_version"),
        # At most one active version per organization
        Index(
            "uq_scoring_model_active",
            "org_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    org_id: uuid.UUID = Field(index=True)

    model_version: int
    strategy: str
    feature_names: List[str] = Field(default=[], sa_column=Column(JSONType))
    parameters: Dict[str, Any] = Field(default={}, sa_column=Column(JSONType))
    performance_metrics: Dict[str, Any] = Field(default={}, sa_column=Column(JSONType))
    # Example: {"accuracy": 0.81, "precision": 0.77, "recall": 0.7, "f1Score": 0.73,
    #           "feature_importance": {"budget": 0.21, ...}}
    trained_on_count: int = Field(default=0)

    # Lifecycle
    status: str = Field(default=ModelStatus.TRAINED, index=True)
    is_active: bool = Field(default=False, index=True)
    activated_at: Optional[datetime] = None
    superseded_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)


class Outcome(SQLModel, table=True):
    """
    Terminal, human-confirmed result for a scored lead. Append-only.
    A correction is a new row pointing at the outcome it supersedes.
    """
    __tablename__ = "lead_outcome"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    org_id: uuid.UUID = Field(index=True)
    lead_id: uuid.UUID = Field(foreign_key="lead.id", index=True)

    label: str = Field(index=True)  # converted, rejected
    supersedes_id: Optional[uuid.UUID] = Field(default=None, foreign_key="lead_outcome.id")
    notes: Optional[str] = None
    outcome_value: Optional[float] = None  # deal value for conversions
    days_to_outcome: Optional[int] = None  # lead creation to outcome
    recorded_by: Optional[uuid.UUID] = None

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)


class ScoringHistory(SQLModel, table=True):
    """
    One row per scoring invocation. Audit trail and training feature source.
    """
    __tablename__ = "scoring_history"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    org_id: uuid.UUID = Field(index=True)
    lead_id: uuid.UUID = Field(foreign_key="lead.id", index=True)

    score: float
    label: str
    rule_score: Optional[float] = None
    model_score: Optional[float] = None
    model_version: Optional[int] = None
    blend_policy: str
    degraded: bool = Field(default=False)
    feature_vector: Dict[str, Any] = Field(default={}, sa_column=Column(JSONType))

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)


class ScoringSettings(SQLModel, table=True):
    """
    Per-organization label thresholds and blend configuration.
    Organizations without a row use the global defaults from config.
    """
    __tablename__ = "scoring_settings"

    org_id: uuid.UUID = Field(primary_key=True)

    hot_threshold: float
    warm_threshold: float
    blend_policy: str
    model_weight: float

    updated_at: datetime = Field(default_factory=datetime.utcnow)
