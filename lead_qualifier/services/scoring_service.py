"""
Scoring service - per-organization label thresholds and blend configuration.
"""
import uuid
from typing import Optional

from pydantic import BaseModel
from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.config import settings
from lead_qualifier.core.exceptions import ConfigurationError
from lead_qualifier.repositories.scoring_repo import ScoringSettingsRepository
from lead_qualifier.scoring.blend import BlendKind
from lead_qualifier.scoring.labels import LabelThresholds


class EffectiveScoringSettings(BaseModel):
    """Settings actually used for scoring (stored row or global defaults)."""
    hot_threshold: float
    warm_threshold: float
    blend_policy: str
    model_weight: float
    is_default: bool = False

    @property
    def thresholds(self) -> LabelThresholds:
        return LabelThresholds(hot=self.hot_threshold, warm=self.warm_threshold)


def default_settings() -> EffectiveScoringSettings:
    return EffectiveScoringSettings(
        hot_threshold=settings.SCORING_HOT_THRESHOLD,
        warm_threshold=settings.SCORING_WARM_THRESHOLD,
        blend_policy=settings.BLEND_POLICY,
        model_weight=settings.BLEND_MODEL_WEIGHT,
        is_default=True,
    )


class ScoringService:
    """Service for scoring configuration."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.settings_repo = ScoringSettingsRepository(session)

    async def get_settings(self, org_id: uuid.UUID) -> EffectiveScoringSettings:
        row = await self.settings_repo.get(org_id)
        if row is None:
            return default_settings()
        return EffectiveScoringSettings(
            hot_threshold=row.hot_threshold,
            warm_threshold=row.warm_threshold,
            blend_policy=row.blend_policy,
            model_weight=row.model_weight,
        )

    async def update_settings(
        self,
        org_id: uuid.UUID,
        hot_threshold: Optional[float] = None,
        warm_threshold: Optional[float] = None,
        blend_policy: Optional[str] = None,
        model_weight: Optional[float] = None
    ) -> EffectiveScoringSettings:
        """
        Partially update the organization's settings.
        Raises InvalidThresholdsError for non-monotonic thresholds and
        ConfigurationError for an unknown policy or an out-of-range weight.
        """
        current = await self.get_settings(org_id)
        values = {
            "hot_threshold": current.hot_threshold if hot_threshold is None else hot_threshold,
            "warm_threshold": current.warm_threshold if warm_threshold is None else warm_threshold,
            "blend_policy": current.blend_policy if blend_policy is None else blend_policy,
            "model_weight": current.model_weight if model_weight is None else model_weight,
        }

        # Validates 0 <= warm < hot <= 100
        LabelThresholds(hot=values["hot_threshold"], warm=values["warm_threshold"])
        if values["blend_policy"] not in BlendKind.ALL:
            raise ConfigurationError(
                f"Unknown blend policy '{values['blend_policy']}' (expected one of {', '.join(BlendKind.ALL)})"
            )
        if not 0 <= values["model_weight"] <= 1:
            raise ConfigurationError(f"Model weight must be between 0 and 1 (got {values['model_weight']})")

        await self.settings_repo.upsert(org_id, values)
        return await self.get_settings(org_id)
