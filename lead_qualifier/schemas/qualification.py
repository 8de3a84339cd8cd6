"""
Qualification schemas.
"""
import uuid
from typing import Optional, Dict, Any, List
from pydantic import BaseModel


class QualifyRequest(BaseModel):
    """Qualify a captured lead."""
    lead_id: uuid.UUID


class BreakdownEntry(BaseModel):
    score: int
    note: str
    weight: int
    unknown: bool = False


class QualificationResponse(BaseModel):
    """Qualification result with diagnostics."""
    lead_id: uuid.UUID
    score: float
    label: str
    reasoning: str
    breakdown: Dict[str, BreakdownEntry]
    recommended_action: str

    rule_score: float
    model_score: Optional[float] = None
    model_version: Optional[int] = None
    blend_policy: str
    degraded: bool = False
    insufficient_data: bool = False
    unknown: List[str] = []

    class Config:
        json_schema_extra = {
            "example": {
                "lead_id": "6f1c2a7e-3f4b-4a1e-9c1d-0b7f2b9e8a11",
                "score": 82.5,
                "label": "hot",
                "reasoning": "Strong fit with your ideal customer profile. Matches Industry and Budget.",
                "breakdown": {"Industry": {"score": 100, "note": "Matches ideal industry (SaaS)", "weight": 30, "unknown": False}},
                "recommended_action": "Schedule a discovery call with this decision maker immediately",
                "rule_score": 80.0,
                "model_score": 85.0,
                "model_version": 3,
                "blend_policy": "blended.v1",
                "degraded": False
            }
        }

    @classmethod
    def from_result(cls, lead_id: uuid.UUID, result) -> "QualificationResponse":
        data: Dict[str, Any] = result.model_dump()
        return cls(lead_id=lead_id, **data)
