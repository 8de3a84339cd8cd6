"""
Human-readable reasoning and next step for a qualification result.

Both are derived from the rule breakdown and the label only, so the
explanation stays stable when the score comes from a learned model.
"""
from typing import Optional, List

from lead_qualifier.scoring.features import FeatureVector
from lead_qualifier.scoring.labels import Label
from lead_qualifier.scoring.rules import RuleResult

_LABEL_OPENERS = {
    Label.HOT: "Strong fit with your ideal customer profile.",
    Label.WARM: "Partial fit with some gaps.",
    Label.COLD: "Weak fit with your ideal customer profile.",
}


def _join_names(names: List[str]) -> str:
    if len(names) == 1:
        return names[0]
    return ", ".join(names[:-1]) + f" and {names[-1]}"


def build_reasoning(
    rule_result: RuleResult,
    label: str,
    score: float,
    insufficient_data: bool = False,
    model_version: Optional[int] = None,
    degraded: bool = False,
    policy_kind: Optional[str] = None,
) -> str:
    if insufficient_data:
        return (
            "Insufficient data to qualify this lead: no usable answers were provided, "
            f"so all {len(rule_result.criteria)} criteria are unknown."
        )

    parts = [_LABEL_OPENERS.get(label, "")]
    matched = [c.name for c in rule_result.criteria if not c.unknown and c.match >= 1.0]
    partial = [c.name for c in rule_result.criteria if not c.unknown and 0 < c.match < 1.0]
    missed = [c.name for c in rule_result.criteria if not c.unknown and c.match == 0]

    if matched:
        parts.append(f"Matches {_join_names(matched)}.")
    if partial:
        parts.append(f"Close on {_join_names(partial)}.")
    if missed:
        parts.append(f"Outside the ideal profile on {_join_names(missed)}.")
    if rule_result.unknown:
        parts.append(f"Unknown: {_join_names(rule_result.unknown)} (no data provided).")
    if rule_result.required_misses:
        parts.append(f"Required criteria not met: {_join_names(rule_result.required_misses)}.")

    if model_version is not None and policy_kind == "model_override":
        parts.append(f"Score {score:g}/100 scored by model v{model_version}.")
    elif model_version is not None:
        parts.append(f"Score {score:g}/100 blended with model v{model_version}.")
    elif degraded:
        parts.append(f"Score {score:g}/100 from rules only (model unavailable).")
    else:
        parts.append(f"Score {score:g}/100 from ICP rules.")

    return " ".join(part for part in parts if part)


def recommend_action(label: str, features: FeatureVector, insufficient_data: bool = False) -> str:
    """Next step for the sales team, keyed on the label and a few features."""
    if insufficient_data:
        return "Gather more information before further qualification"

    authority = features.get("authority_level")
    if authority is None:
        authority = features.get("seniority")
    intent = features.get("buying_intent")
    completeness = features.get("data_completeness") or 0.0

    if label == Label.HOT:
        if authority is not None and authority >= 0.7:
            return "Schedule a discovery call with this decision maker immediately"
        return "Request introduction to decision maker, then schedule call"
    if label == Label.WARM:
        if intent is not None and intent >= 0.6:
            return "Send personalized demo invitation to accelerate timeline"
        return "Nurture with relevant case studies and follow up in 2 weeks"
    if completeness < 0.5:
        return "Gather more information before further qualification"
    return "Add to automated nurture sequence"
