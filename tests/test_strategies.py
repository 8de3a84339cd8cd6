# tests/test_strategies.py
"""
Model strategy tests on small, separable synthetic outcome sets.
"""

import numpy as np
import pytest

from lead_qualifier.core.exceptions import ModelError
from lead_qualifier.scoring.features import FEATURE_NAMES, FeatureVector
from lead_qualifier.scoring.strategies import (
    LogisticRegressionStrategy,
    ModelSnapshot,
    WeightedFeatureStrategy,
    evaluate_model,
    get_strategy,
)


@pytest.fixture
def outcome_rows():
    """30 converted leads around 0.8, 30 rejected leads around 0.2."""
    rng = np.random.RandomState(7)
    positives = (0.8 + rng.uniform(-0.1, 0.1, size=(30, len(FEATURE_NAMES)))).tolist()
    negatives = (0.2 + rng.uniform(-0.1, 0.1, size=(30, len(FEATURE_NAMES)))).tolist()
    return positives + negatives, [1] * 30 + [0] * 30


@pytest.mark.parametrize("strategy_class", [WeightedFeatureStrategy, LogisticRegressionStrategy])
class TestStrategyContract:

    def test_fit_separates_outcomes(self, strategy_class, outcome_rows):
        rows, labels = outcome_rows
        strategy = strategy_class()

        parameters = strategy.fit(rows, labels, FEATURE_NAMES)
        metrics = evaluate_model(strategy, parameters, rows, labels, FEATURE_NAMES)

        assert metrics["accuracy"] >= 0.9
        assert metrics["auc"] >= 0.9
        assert metrics["holdout_size"] == 60

    def test_fit_is_deterministic(self, strategy_class, outcome_rows):
        rows, labels = outcome_rows

        first = strategy_class(random_state=3).fit(rows, labels, FEATURE_NAMES)
        second = strategy_class(random_state=3).fit(rows, labels, FEATURE_NAMES)

        assert first == second

    def test_probabilities_stay_in_unit_interval(self, strategy_class, outcome_rows):
        rows, labels = outcome_rows
        strategy = strategy_class()
        parameters = strategy.fit(rows, labels, FEATURE_NAMES)

        for row in ([0.0] * 10, [1.0] * 10, [0.5] * 10):
            assert 0.0 <= strategy.predict_proba(parameters, row) <= 1.0

    def test_feature_importance_is_normalized(self, strategy_class, outcome_rows):
        rows, labels = outcome_rows
        strategy = strategy_class()
        parameters = strategy.fit(rows, labels, FEATURE_NAMES)

        importance = strategy.feature_importance(parameters, FEATURE_NAMES)

        assert list(importance) == list(FEATURE_NAMES)
        assert sum(importance.values()) == pytest.approx(1.0, abs=1e-4)

    def test_shape_mismatch_raises(self, strategy_class, outcome_rows):
        rows, labels = outcome_rows
        strategy = strategy_class()
        parameters = strategy.fit(rows, labels, FEATURE_NAMES)

        with pytest.raises(ModelError):
            strategy.predict_proba(parameters, [0.5, 0.5])


class TestWeightedFeatureStrategy:

    def test_parameters_are_json_friendly(self, outcome_rows):
        rows, labels = outcome_rows

        parameters = WeightedFeatureStrategy().fit(rows, labels, FEATURE_NAMES)

        assert isinstance(parameters["weights"], list)
        assert len(parameters["weights"]) == len(FEATURE_NAMES)
        assert sum(parameters["weights"]) == pytest.approx(1.0, abs=1e-6)
        assert 0.2 < parameters["threshold"] < 0.8

    def test_zero_weights_score_neutral(self):
        strategy = WeightedFeatureStrategy()

        assert strategy.predict_proba({"weights": [0.0] * 3}, [1.0, 1.0, 1.0]) == 0.5


class TestEvaluation:

    def test_single_class_holdout_has_no_auc(self):
        strategy = WeightedFeatureStrategy()
        parameters = {"weights": [0.1] * 10, "threshold": 0.5}

        metrics = evaluate_model(strategy, parameters, [[0.9] * 10, [0.8] * 10], [1, 1], FEATURE_NAMES)

        assert metrics["auc"] is None
        assert metrics["accuracy"] == 1.0
        assert metrics["confusion_matrix"]["true_positives"] == 2

    def test_unknown_strategy(self):
        with pytest.raises(ModelError):
            get_strategy("gradient_boosting")


class TestModelSnapshot:

    def test_predict_score_on_100_scale(self):
        snapshot = ModelSnapshot(
            model_version=1,
            strategy="weighted_features",
            feature_names=list(FEATURE_NAMES),
            parameters={"weights": [0.1] * 10, "threshold": 0.5},
        )
        features = FeatureVector(values={name: 0.6 for name in FEATURE_NAMES})

        assert snapshot.predict_score(features) == 60.0

    def test_missing_features_use_neutral_fill(self):
        snapshot = ModelSnapshot(
            model_version=1,
            strategy="weighted_features",
            feature_names=list(FEATURE_NAMES),
            parameters={"weights": [0.1] * 10, "threshold": 0.5},
        )

        assert snapshot.predict_score(FeatureVector.empty()) == 50.0

    def test_retired_feature_raises(self):
        snapshot = ModelSnapshot(
            model_version=2,
            strategy="weighted_features",
            feature_names=["company_size", "headcount_growth"],
            parameters={"weights": [0.5, 0.5], "threshold": 0.5},
        )

        with pytest.raises(ModelError):
            snapshot.predict_score(FeatureVector.empty())
