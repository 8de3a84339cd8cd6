"""
Rule scorer - deterministic weighted evaluation of a lead against ICP criteria.

score = 100 * sum(weight_i * match_i) / sum(weight_i)

Every criterion yields a match in [0,1]. Categorical types score 1.0 on an
exact or whole-word containment hit; ranged types (company size, budget, timeline)
decay linearly with the distance to the nearest ideal range and reach 0 at
the tolerance band. Missing data scores 0 and is reported as unknown.
No randomness, no hidden state: identical input gives identical output.
"""
import math
from typing import Optional, Dict, List, Sequence, Tuple

from pydantic import BaseModel

from lead_qualifier.config import settings
from lead_qualifier.core.exceptions import NoCriteriaError
from lead_qualifier.models.criterion import CriterionDataType
from lead_qualifier.scoring.features import FeatureVector
from lead_qualifier.scoring.normalize import (
    NumericRange,
    canonical_industry,
    contains_term,
    normalize_text,
    parse_amount_range,
    parse_company_size,
    parse_timeline,
)

MIN_WEIGHT = 1
MAX_WEIGHT = 10

_RANGE_PARSERS = {
    CriterionDataType.COMPANY_SIZE: parse_company_size,
    CriterionDataType.BUDGET: parse_amount_range,
    CriterionDataType.TIMELINE: parse_timeline,
}

_TYPE_LABELS = {
    CriterionDataType.COMPANY_SIZE: "company size",
    CriterionDataType.INDUSTRY: "industry",
    CriterionDataType.BUDGET: "budget",
    CriterionDataType.TIMELINE: "timeline",
    CriterionDataType.JOB_TITLE: "job title",
}


def to_external_weight(internal: int) -> int:
    """Internal 1-10 weight -> external percentage."""
    return int(internal) * 10


def to_internal_weight(external: float) -> int:
    """External percentage -> internal 1-10 weight (rounded half up, clamped)."""
    return max(MIN_WEIGHT, min(MAX_WEIGHT, int(math.floor(external / 10 + 0.5))))


class CriterionScore(BaseModel):
    name: str
    data_type: str
    weight: int
    match: float  # [0,1]
    unknown: bool = False
    required: bool = False
    note: str

    def breakdown_entry(self) -> dict:
        return {
            "score": int(round(self.match * 100)),
            "note": self.note,
            "weight": to_external_weight(self.weight),
            "unknown": self.unknown,
        }


class RuleResult(BaseModel):
    score: float
    criteria: List[CriterionScore]
    required_misses: List[str] = []

    @property
    def breakdown(self) -> Dict[str, dict]:
        breakdown = {}
        for criterion in self.criteria:
            key = criterion.name
            suffix = 2
            while key in breakdown:
                key = f"{criterion.name} ({suffix})"
                suffix += 1
            breakdown[key] = criterion.breakdown_entry()
        return breakdown

    @property
    def unknown(self) -> List[str]:
        return [c.name for c in self.criteria if c.unknown]


def _categorical_hit(value: str, ideals: Sequence[str], data_type: str) -> Optional[str]:
    """Ideal value matched exactly or by containment (case/whitespace-insensitive)."""
    normalized = normalize_text(value)
    canonical = canonical_industry(value) if data_type == CriterionDataType.INDUSTRY else None
    for ideal in ideals:
        normalized_ideal = normalize_text(ideal)
        if not normalized_ideal:
            continue
        if normalized == normalized_ideal:
            return ideal
        if canonical is not None and canonical == canonical_industry(ideal):
            return ideal
    if data_type in CriterionDataType.RANGED:
        # "1" must not match "10-50"; ranged values go through the graduated match
        return None
    # Whole words only: "cto" is not in "director", "it" is not in "digital"
    for ideal in ideals:
        normalized_ideal = normalize_text(ideal)
        if normalized_ideal and (
            contains_term(normalized, normalized_ideal) or contains_term(normalized_ideal, normalized)
        ):
            return ideal
    return None


def _range_match(value_range: NumericRange, ideal_range: NumericRange, tolerance: float) -> float:
    if value_range.overlaps(ideal_range):
        return 1.0
    gap, bound = value_range.gap_to(ideal_range)
    band = tolerance * bound
    if band <= 0:
        return 0.0
    return max(0.0, 1.0 - gap / band)


def _graduated_match(value: str, ideals: Sequence[str], data_type: str, tolerance: float) -> Tuple[float, Optional[str]]:
    parser = _RANGE_PARSERS[data_type]
    value_range = parser(value)
    if value_range is None:
        return 0.0, None
    best, best_ideal = 0.0, None
    for ideal in ideals:
        ideal_range = parser(ideal)
        if ideal_range is None:
            continue
        match = _range_match(value_range, ideal_range, tolerance)
        if match > best:
            best, best_ideal = match, ideal
    return best, best_ideal


def evaluate_criterion(criterion, features: FeatureVector, tolerance: float) -> CriterionScore:
    """Match score in [0,1] for a single criterion plus an honest note."""
    data_type = criterion.data_type if criterion.data_type in CriterionDataType.ALL else CriterionDataType.CUSTOM
    label = _TYPE_LABELS.get(data_type, criterion.name)
    ideals = [ideal for ideal in (criterion.ideal_values or []) if normalize_text(ideal)]
    value = features.raw_value(data_type, criterion.name)

    base = {
        "name": criterion.name,
        "data_type": data_type,
        "weight": criterion.weight,
        "required": bool(getattr(criterion, "is_required", False)),
    }

    if value is None:
        return CriterionScore(match=0.0, unknown=True, note=f"Unknown: no {label} data provided", **base)

    if not ideals:
        return CriterionScore(match=1.0, note=f"{label.capitalize()} provided ({value})", **base)

    hit = _categorical_hit(value, ideals, data_type)
    if hit is not None:
        return CriterionScore(match=1.0, note=f"Matches ideal {label} ({hit})", **base)

    if data_type in CriterionDataType.RANGED:
        match, closest = _graduated_match(value, ideals, data_type, tolerance)
        if match >= 1.0:
            return CriterionScore(match=1.0, note=f"Within ideal {label} range ({closest})", **base)
        if match > 0:
            return CriterionScore(
                match=round(match, 4), note=f"Close to ideal {label}: {value} vs {closest}", **base
            )

    return CriterionScore(match=0.0, note=f"Outside ideal {label} ({value})", **base)


def score_criteria(
    criteria: Sequence,
    features: FeatureVector,
    tolerance: Optional[float] = None,
    required_min_match: Optional[float] = None,
) -> RuleResult:
    """
    Weighted aggregate over the criteria in their listed order.

    Raises NoCriteriaError when there are no criteria (sum of weights is 0).
    """
    tolerance = settings.SCORING_RANGE_TOLERANCE if tolerance is None else tolerance
    required_min_match = settings.SCORING_REQUIRED_MIN_MATCH if required_min_match is None else required_min_match

    scores = [evaluate_criterion(criterion, features, tolerance) for criterion in criteria]
    total_weight = math.fsum(score.weight for score in scores)
    if total_weight <= 0:
        raise NoCriteriaError()

    weighted = math.fsum(score.weight * score.match for score in scores)
    score = round(max(0.0, min(100.0, 100 * weighted / total_weight)), 2)

    required_misses = [
        s.name for s in scores
        if s.required and not s.unknown and s.match < required_min_match
    ]
    return RuleResult(score=score, criteria=scores, required_misses=required_misses)
