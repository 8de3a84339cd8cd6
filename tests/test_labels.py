# tests/test_labels.py

import pytest

from lead_qualifier.core.exceptions import InvalidThresholdsError
from lead_qualifier.scoring.labels import Label, LabelThresholds


class TestLabelThresholds:

    @pytest.mark.parametrize("score,label", [
        (100, Label.HOT),
        (70, Label.HOT),
        (69.99, Label.WARM),
        (40, Label.WARM),
        (39.99, Label.COLD),
        (0, Label.COLD),
    ])
    def test_cut_points_are_inclusive(self, score, label):
        assert LabelThresholds(hot=70, warm=40).label_for(score) == label

    def test_defaults_come_from_settings(self):
        thresholds = LabelThresholds()

        assert thresholds.to_dict() == {"hot": 70.0, "warm": 40.0}

    @pytest.mark.parametrize("hot,warm", [
        (40, 40),
        (30, 40),
        (101, 40),
        (70, -1),
    ])
    def test_non_monotonic_thresholds_are_rejected(self, hot, warm):
        with pytest.raises(InvalidThresholdsError) as exc:
            LabelThresholds(hot=hot, warm=warm)

        assert exc.value.hot == hot
        assert exc.value.warm == warm

    def test_zero_warm_threshold_is_allowed(self):
        thresholds = LabelThresholds(hot=50, warm=0)

        assert thresholds.label_for(0) == Label.WARM
