"""
Qualification labels and their threshold cut points.
"""
from typing import Optional

from lead_qualifier.config import settings
from lead_qualifier.core.exceptions import InvalidThresholdsError


class Label:
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"

    # Ascending order
    ORDER = (COLD, WARM, HOT)


class LabelThresholds:
    """
    Ordered cut points: score >= hot -> hot, score >= warm -> warm, else cold.
    Construction fails with InvalidThresholdsError unless 0 <= warm < hot <= 100.
    """

    __slots__ = ("hot", "warm")

    def __init__(self, hot: Optional[float] = None, warm: Optional[float] = None):
        hot = settings.SCORING_HOT_THRESHOLD if hot is None else hot
        warm = settings.SCORING_WARM_THRESHOLD if warm is None else warm
        if not (0 <= warm < hot <= 100):
            raise InvalidThresholdsError(hot=hot, warm=warm)
        self.hot = float(hot)
        self.warm = float(warm)

    def label_for(self, score: float) -> str:
        if score >= self.hot:
            return Label.HOT
        if score >= self.warm:
            return Label.WARM
        return Label.COLD

    def to_dict(self) -> dict:
        return {"hot": self.hot, "warm": self.warm}

    def __eq__(self, other) -> bool:
        return isinstance(other, LabelThresholds) and (self.hot, self.warm) == (other.hot, other.warm)

    def __repr__(self) -> str:
        return f"LabelThresholds(hot={self.hot}, warm={self.warm})"
