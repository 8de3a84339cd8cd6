"""
Score blender - combines the rule score with the active model's score.

The policy is an explicit tagged variant (RuleOnly, Blended, ModelOverride)
and its versioned tag is recorded with every result, so a historical score
can always be traced back to how it was produced. A model that fails to
score never fails the qualification: the blender falls back to the rule
score and marks the result degraded.
"""
import logging
from typing import Optional, Dict, Any, List, Union, Literal

from pydantic import BaseModel, Field

from lead_qualifier.scoring.explain import build_reasoning, recommend_action
from lead_qualifier.scoring.features import FeatureVector
from lead_qualifier.scoring.labels import Label, LabelThresholds
from lead_qualifier.scoring.rules import RuleResult
from lead_qualifier.scoring.strategies import ModelSnapshot

logger = logging.getLogger(__name__)

BLEND_POLICY_VERSION = "v1"


class BlendKind:
    RULE_ONLY = "rule_only"
    BLENDED = "blended"
    MODEL_OVERRIDE = "model_override"

    ALL = (RULE_ONLY, BLENDED, MODEL_OVERRIDE)


class RuleOnly(BaseModel):
    kind: Literal["rule_only"] = BlendKind.RULE_ONLY


class Blended(BaseModel):
    kind: Literal["blended"] = BlendKind.BLENDED
    model: ModelSnapshot
    model_weight: float = Field(default=0.5, ge=0, le=1)


class ModelOverride(BaseModel):
    kind: Literal["model_override"] = BlendKind.MODEL_OVERRIDE
    model: ModelSnapshot


BlendPolicy = Union[RuleOnly, Blended, ModelOverride]


def policy_tag(policy: BlendPolicy) -> str:
    return f"{policy.kind}.{BLEND_POLICY_VERSION}"


def build_policy(kind: str, model: Optional[ModelSnapshot], model_weight: float = 0.5) -> BlendPolicy:
    """Resolve the configured policy; without an active model it is always RuleOnly."""
    if model is None or kind == BlendKind.RULE_ONLY:
        return RuleOnly()
    if kind == BlendKind.MODEL_OVERRIDE:
        return ModelOverride(model=model)
    return Blended(model=model, model_weight=model_weight)


class QualificationResult(BaseModel):
    """Outcome of one scoring pass."""
    score: float
    label: str
    reasoning: str
    breakdown: Dict[str, Dict[str, Any]]
    recommended_action: str

    # Diagnostics
    rule_score: float
    model_score: Optional[float] = None
    model_version: Optional[int] = None
    blend_policy: str
    degraded: bool = False
    insufficient_data: bool = False
    unknown: List[str] = []

    def public_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "label": self.label,
            "reasoning": self.reasoning,
            "breakdown": self.breakdown,
            "recommended_action": self.recommended_action,
        }


def blend(
    rule_result: RuleResult,
    policy: BlendPolicy,
    features: FeatureVector,
    thresholds: LabelThresholds,
    insufficient_data: bool = False,
) -> QualificationResult:
    """
    Final score and label for a lead.

    Blended: (1 - w) * rule + w * model. ModelOverride: model.
    """
    rule_score = rule_result.score
    model_score = None
    model_version = None
    degraded = insufficient_data
    applied = policy

    if insufficient_data:
        applied = RuleOnly()
    elif not isinstance(policy, RuleOnly):
        try:
            model_score = policy.model.predict_score(features)
            model_version = policy.model.model_version
        except Exception as e:
            logger.warning(
                f"Model v{policy.model.model_version} for org {policy.model.org_id} could not score "
                f"({e.__class__.__name__}: {e}); using rule score"
            )
            model_score = None
            degraded = True
            applied = RuleOnly()

    if isinstance(applied, Blended):
        w = applied.model_weight
        score = round((1 - w) * rule_score + w * model_score, 2)
    elif isinstance(applied, ModelOverride):
        score = model_score
    else:
        score = rule_score
    score = max(0.0, min(100.0, score))

    label = thresholds.label_for(score)
    if rule_result.required_misses and label != Label.COLD:
        label = Label.COLD

    return QualificationResult(
        score=score,
        label=label,
        reasoning=build_reasoning(
            rule_result,
            label,
            score,
            insufficient_data=insufficient_data,
            model_version=model_version,
            degraded=degraded,
            policy_kind=applied.kind,
        ),
        breakdown=rule_result.breakdown,
        recommended_action=recommend_action(label, features, insufficient_data=insufficient_data),
        rule_score=rule_score,
        model_score=model_score,
        model_version=model_version,
        blend_policy=policy_tag(applied),
        degraded=degraded,
        insufficient_data=insufficient_data,
        unknown=rule_result.unknown,
    )
