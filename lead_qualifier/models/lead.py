"""
Lead model - inbound lead and its current qualification.
Enrichment rows are written by the enrichment collaborator.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from sqlmodel import SQLModel, Field
from sqlalchemy import Column

from lead_qualifier.database import JSONType


class LeadStatus:
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    CONVERTED = "converted"
    REJECTED = "rejected"
    ARCHIVED = "archived"


class QualificationStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    UNSCORED = "unscored"  # no criteria configured, no label assigned
    FAILED = "failed"


class Lead(SQLModel, table=True):
    """
    Lead entity - a prospective customer captured for an organization.
    The qualification columns hold the current result; history lives in scoring_history.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    org_id: uuid.UUID = Field(index=True)

    # Contact info
    email: Optional[str] = Field(default=None, index=True)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    job_title: Optional[str] = None

    # Company info
    company_name: Optional[str] = None
    company_website: Optional[str] = None
    company_size: Optional[str] = None
    industry: Optional[str] = None

    # Buying context
    budget_range: Optional[str] = None
    timeline: Optional[str] = None
    challenge: Optional[str] = None

    # Answers to custom capture-form questions, keyed by criterion name
    custom_fields: Dict[str, Any] = Field(default={}, sa_column=Column(JSONType))

    # Pipeline
    status: str = Field(default=LeadStatus.NEW, index=True)

    # Current qualification
    score: Optional[float] = Field(default=None, index=True)
    label: Optional[str] = Field(default=None, index=True)  # hot, warm, cold
    reasoning: Optional[str] = None
    breakdown: Dict[str, Any] = Field(default={}, sa_column=Column(JSONType))
    recommended_action: Optional[str] = None
    qualification_status: str = Field(default=QualificationStatus.PENDING)
    qualification_degraded: bool = Field(default=False)
    model_version: Optional[int] = None
    qualified_at: Optional[datetime] = None

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class EnrichmentType:
    COMPANY_RESEARCH = "company_research"
    INTENT_ANALYSIS = "intent_analysis"
    AUTHORITY_ASSESSMENT = "authority_assessment"
    URGENCY_SIGNALS = "urgency_signals"


class LeadEnrichment(SQLModel, table=True):
    """
    Enrichment data gathered for a lead by an external provider.
    """
    __tablename__ = "lead_enrichment"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    lead_id: uuid.UUID = Field(foreign_key="lead.id", index=True)

    enrichment_type: str = Field(index=True)
    data: Dict[str, Any] = Field(default={}, sa_column=Column(JSONType))
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    source: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
