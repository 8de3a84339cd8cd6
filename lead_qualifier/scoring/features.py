"""
Feature extraction - the single seam shared by rule-based and learned scoring.

Lead fields and enrichment signals are normalized into a fixed-shape
FeatureVector. Absent data is MISSING (None), never 0.0, so downstream
consumers can tell "bad fit" from "no data".
"""
import logging
from typing import Optional, Dict, Any, List, Sequence

from pydantic import BaseModel

from lead_qualifier.core.exceptions import DataQualityError, ModelError
from lead_qualifier.models.criterion import CriterionDataType
from lead_qualifier.models.lead import EnrichmentType
from lead_qualifier.scoring.normalize import (
    clamp_unit,
    is_blank,
    log_scale,
    normalize_text,
    parse_amount_range,
    parse_company_size,
    parse_timeline,
    seniority_level,
)

logger = logging.getLogger(__name__)

MISSING = None

# Fixed model input shape. Changing it invalidates trained models (ModelError on predict).
FEATURE_NAMES = (
    "company_size",
    "budget",
    "timeline_urgency",
    "seniority",
    "buying_intent",
    "authority_level",
    "company_health",
    "urgency_signals",
    "data_completeness",
    "contact_quality",
)

# Criterion data type -> lead attribute holding the raw answer
LEAD_FIELDS = {
    CriterionDataType.COMPANY_SIZE: "company_size",
    CriterionDataType.INDUSTRY: "industry",
    CriterionDataType.BUDGET: "budget_range",
    CriterionDataType.TIMELINE: "timeline",
    CriterionDataType.JOB_TITLE: "job_title",
}

_COMPLETENESS_WEIGHTS = (
    ("email", 0.15),
    ("first_name", 0.10),
    ("last_name", 0.10),
    ("phone", 0.10),
    ("job_title", 0.15),
    ("company_name", 0.15),
    ("company_website", 0.05),
    ("company_size", 0.05),
    ("industry", 0.05),
    ("budget_range", 0.05),
    ("timeline", 0.03),
    ("challenge", 0.02),
)

_PERSONAL_EMAIL_DOMAINS = ("gmail.com", "yahoo.com", "hotmail.com", "outlook.com", "aol.com", "icloud.com")

_IDENTITY_FIELDS = ("email", "first_name", "last_name", "phone", "company_name", "company_website", "challenge")


class Enrichment(BaseModel):
    """What the enrichment collaborator returns for a lead (may be empty)."""
    data: Dict[str, Dict[str, Any]] = {}  # keyed by enrichment type
    confidence: Optional[float] = None
    source: Optional[str] = None


class FeatureVector(BaseModel):
    """
    Normalized features for one scoring pass.
    values: FEATURE_NAMES -> [0,1] or MISSING
    raw: criterion data type -> original answer (for rule matching and explanations)
    custom: normalized custom question -> answer
    """
    values: Dict[str, Optional[float]]
    raw: Dict[str, Optional[str]] = {}
    custom: Dict[str, str] = {}

    class Config:
        frozen = True

    @classmethod
    def empty(cls) -> "FeatureVector":
        return cls(values={name: MISSING for name in FEATURE_NAMES}, raw={}, custom={})

    def get(self, name: str) -> Optional[float]:
        return self.values.get(name)

    def is_missing(self, name: str) -> bool:
        return self.values.get(name) is MISSING

    def raw_value(self, data_type: str, name: Optional[str] = None) -> Optional[str]:
        """Raw answer for a criterion; custom criteria are looked up by name."""
        if data_type == CriterionDataType.CUSTOM:
            return self.custom.get(normalize_text(name))
        value = self.raw.get(data_type)
        if value is not None:
            return value
        # A custom question may carry a typed answer under the criterion's name
        return self.custom.get(normalize_text(name)) if name else None

    def as_row(self, feature_names: Sequence[str], fill: float = 0.5) -> List[float]:
        """Dense model input; MISSING values are imputed with a neutral fill."""
        unknown = [name for name in feature_names if name not in self.values]
        if unknown:
            raise ModelError(f"Feature shape mismatch: unknown features {unknown}")
        return [fill if self.values[name] is MISSING else float(self.values[name]) for name in feature_names]

    def to_dict(self) -> Dict[str, Any]:
        return {"values": dict(self.values), "raw": dict(self.raw), "custom": dict(self.custom)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureVector":
        data = data or {}
        values = {name: MISSING for name in FEATURE_NAMES}
        values.update(data.get("values", {}))
        return cls(values=values, raw=data.get("raw", {}), custom=data.get("custom", {}))


def _field(lead, name: str):
    if isinstance(lead, dict):
        return lead.get(name)
    return getattr(lead, name, None)


def _text(value) -> Optional[str]:
    if is_blank(value):
        return None
    return " ".join(str(value).split())


def _usable_enrichment(enrichment: Optional[Enrichment], min_confidence: float) -> Dict[str, Dict[str, Any]]:
    if enrichment is None or not enrichment.data:
        return {}
    if enrichment.confidence is not None and enrichment.confidence < min_confidence:
        logger.debug(
            f"Ignoring enrichment from {enrichment.source}: confidence {enrichment.confidence} < {min_confidence}"
        )
        return {}
    return enrichment.data


def _data_completeness(lead) -> float:
    completeness = sum(weight for name, weight in _COMPLETENESS_WEIGHTS if not is_blank(_field(lead, name)))
    return min(1.0, round(completeness, 4))


def _contact_quality(lead) -> Optional[float]:
    email = _text(_field(lead, "email"))
    phone = _text(_field(lead, "phone"))
    website = _text(_field(lead, "company_website"))
    if not (email or phone or website):
        return MISSING

    score = 0.5
    if email:
        is_personal = email.lower().endswith(_PERSONAL_EMAIL_DOMAINS)
        score += 0.1 if is_personal else 0.25
    if phone:
        score += 0.15
    if website:
        score += 0.1
    return min(1.0, round(score, 4))


def extract_features(
    lead,
    enrichment: Optional[Enrichment] = None,
    min_confidence: float = 0.0,
) -> FeatureVector:
    """
    Build the FeatureVector for a lead (a Lead row or a plain mapping).

    Raises DataQualityError when the lead carries no usable field at all.
    """
    if lead is None:
        raise DataQualityError("No lead data to extract features from")

    enrichment_data = _usable_enrichment(enrichment, min_confidence)
    company = enrichment_data.get(EnrichmentType.COMPANY_RESEARCH, {}) or {}
    intent = enrichment_data.get(EnrichmentType.INTENT_ANALYSIS, {}) or {}
    authority = enrichment_data.get(EnrichmentType.AUTHORITY_ASSESSMENT, {}) or {}
    urgency = enrichment_data.get(EnrichmentType.URGENCY_SIGNALS, {}) or {}

    raw = {data_type: _text(_field(lead, attr)) for data_type, attr in LEAD_FIELDS.items()}
    # Enrichment fills gaps in the capture-form answers, never overrides them
    if raw[CriterionDataType.COMPANY_SIZE] is None:
        raw[CriterionDataType.COMPANY_SIZE] = _text(company.get("company_size") or company.get("employee_count"))
    if raw[CriterionDataType.INDUSTRY] is None:
        raw[CriterionDataType.INDUSTRY] = _text(company.get("industry"))

    custom = {
        normalize_text(key): _text(value)
        for key, value in (_field(lead, "custom_fields") or {}).items()
        if not is_blank(value) and not isinstance(value, (dict, list))
    }

    has_identity = any(not is_blank(_field(lead, name)) for name in _IDENTITY_FIELDS)
    if not any(raw.values()) and not custom and not has_identity and not enrichment_data:
        raise DataQualityError("Lead has no usable qualification data")

    size_range = parse_company_size(raw[CriterionDataType.COMPANY_SIZE])
    budget_range = parse_amount_range(raw[CriterionDataType.BUDGET])
    horizon = parse_timeline(raw[CriterionDataType.TIMELINE])

    values = {
        "company_size": log_scale(size_range.midpoint, 10_000) if size_range else MISSING,
        "budget": log_scale(budget_range.midpoint, 1_000_000) if budget_range else MISSING,
        "timeline_urgency": round(max(0.0, 1 - horizon.midpoint / 365), 4) if horizon else MISSING,
        "seniority": seniority_level(raw[CriterionDataType.JOB_TITLE]),
        "buying_intent": clamp_unit(intent.get("buying_intent_score")),
        "authority_level": clamp_unit(authority.get("authority_level")),
        "company_health": clamp_unit(company.get("health_score"), scale=10),
        "urgency_signals": clamp_unit(urgency.get("urgency_score", intent.get("urgency_score"))),
        "data_completeness": _data_completeness(lead),
        "contact_quality": _contact_quality(lead),
    }

    return FeatureVector(values=values, raw=raw, custom=custom)
