"""
ICP criterion model - Ideal Customer Profile criteria per organization.
Maintained by the settings service; read-only for the scoring engine.
"""
import uuid
from datetime import datetime
from typing import Optional, List

from sqlmodel import SQLModel, Field
from sqlalchemy import Column

from lead_qualifier.database import JSONType


class CriterionDataType:
    COMPANY_SIZE = "company_size"
    INDUSTRY = "industry"
    BUDGET = "budget"
    TIMELINE = "timeline"
    JOB_TITLE = "job_title"
    CUSTOM = "custom"

    ALL = (COMPANY_SIZE, INDUSTRY, BUDGET, TIMELINE, JOB_TITLE, CUSTOM)
    # Types whose values are numeric ranges encoded as strings
    RANGED = (COMPANY_SIZE, BUDGET, TIMELINE)


class ICPCriterion(SQLModel, table=True):
    """
    A single weighted ICP criterion.
    Weight is stored on the internal 1-10 scale (external percentage = weight * 10).
    """
    __tablename__ = "icp_criterion"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    org_id: uuid.UUID = Field(index=True)

    name: str
    description: Optional[str] = None
    data_type: str = Field(default=CriterionDataType.CUSTOM)
    weight: int = Field(default=5, ge=1, le=10)

    # Ordered ideal values, e.g. ["SaaS", "Fintech"] or ["51-200", "201-500"]
    ideal_values: List[str] = Field(default=[], sa_column=Column(JSONType))

    is_required: bool = Field(default=False)
    sort_order: int = Field(default=0)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
