"""
Pluggable model strategies behind a stable contract.

A strategy turns labeled feature rows into JSON-serializable parameters
(fit) and parameters plus a feature row into a conversion probability
(predict_proba). Trained parameters are stored on the ScoringModel row, so
a model version is fully reproducible from the database.
"""
import math
import uuid
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List, Sequence

import numpy as np
from pydantic import BaseModel
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import (
    accuracy_score,
    confusion_matrix,
    f1_score,
    precision_score,
    recall_score,
    roc_auc_score,
)

from lead_qualifier.core.exceptions import ModelError
from lead_qualifier.scoring.features import FEATURE_NAMES, FeatureVector


# Starting weights for the learned-weights strategy (sum to 1)
DEFAULT_FEATURE_WEIGHTS = {
    "company_size": 0.12,
    "budget": 0.14,
    "timeline_urgency": 0.10,
    "seniority": 0.10,
    "buying_intent": 0.12,
    "authority_level": 0.10,
    "company_health": 0.06,
    "urgency_signals": 0.06,
    "data_completeness": 0.10,
    "contact_quality": 0.10,
}


class ScoringStrategy(ABC):
    """Contract every model strategy implements."""

    name: str = ""

    def __init__(self, random_state: int = 42):
        self.random_state = random_state

    @abstractmethod
    def fit(self, rows: List[List[float]], labels: List[int], feature_names: Sequence[str]) -> Dict[str, Any]:
        """Train on dense rows (1 = converted, 0 = rejected) and return parameters."""
        pass

    @abstractmethod
    def predict_proba(self, parameters: Dict[str, Any], row: List[float]) -> float:
        """Conversion probability in [0,1] for one dense row."""
        pass

    @abstractmethod
    def feature_importance(self, parameters: Dict[str, Any], feature_names: Sequence[str]) -> Dict[str, float]:
        """Relative importance per feature in [0,1]."""
        pass


class WeightedFeatureStrategy(ScoringStrategy):
    """
    Learned feature weights: a weighted average of the features, nudged
    towards outcome targets by a few gradient-style passes.

    Parameters: {"weights": [...] in feature order, "threshold": float}
    """

    name = "weighted_features"

    POSITIVE_TARGET = 85
    NEGATIVE_TARGET = 30
    ITERATIONS = 10

    def _score(self, weights: List[float], row: List[float]) -> float:
        total = math.fsum(weights)
        if total <= 0:
            return 50.0
        return 100 * math.fsum(weight * value for weight, value in zip(weights, row)) / total

    def _adjust(self, weights: List[float], rows, labels, learning_rate: float) -> List[float]:
        errors = [
            (self.POSITIVE_TARGET if label else self.NEGATIVE_TARGET) - self._score(weights, row)
            for row, label in zip(rows, labels)
        ]
        adjusted = []
        for index, weight in enumerate(weights):
            gradient = math.fsum(error * row[index] for error, row in zip(errors, rows)) / len(rows)
            adjusted.append(max(0.01, min(0.5, weight + learning_rate * gradient * 0.01)))
        total = math.fsum(adjusted)
        return [weight / total for weight in adjusted]

    def fit(self, rows, labels, feature_names):
        weights = [DEFAULT_FEATURE_WEIGHTS.get(name, 0.1) for name in feature_names]
        weights = self._adjust(weights, rows, labels, 0.1)
        for iteration in range(self.ITERATIONS):
            weights = self._adjust(weights, rows, labels, 0.1 / (iteration + 1))

        # Decision threshold halfway between the class means on the training rows
        positives = [self._score(weights, row) / 100 for row, label in zip(rows, labels) if label]
        negatives = [self._score(weights, row) / 100 for row, label in zip(rows, labels) if not label]
        threshold = 0.5
        if positives and negatives:
            threshold = (math.fsum(positives) / len(positives) + math.fsum(negatives) / len(negatives)) / 2

        return {"weights": [round(weight, 8) for weight in weights], "threshold": round(threshold, 6)}

    def predict_proba(self, parameters, row):
        weights = parameters["weights"]
        if len(weights) != len(row):
            raise ModelError(f"Feature shape mismatch: model has {len(weights)} weights, row has {len(row)}")
        return max(0.0, min(1.0, self._score(weights, row) / 100))

    def feature_importance(self, parameters, feature_names):
        weights = parameters["weights"]
        total = math.fsum(weights)
        return {
            name: round(weight / total, 6) if total else 0.0
            for name, weight in zip(feature_names, weights)
        }


class LogisticRegressionStrategy(ScoringStrategy):
    """scikit-learn logistic regression; coefficients are stored, not pickles."""

    name = "logistic_regression"

    def __init__(self, random_state: int = 42, C: float = 1.0):
        super().__init__(random_state)
        self.C = C

    def fit(self, rows, labels, feature_names):
        classifier = LogisticRegression(C=self.C, max_iter=1000, random_state=self.random_state)
        classifier.fit(np.asarray(rows, dtype=float), np.asarray(labels, dtype=int))
        return {
            "coef": [float(value) for value in classifier.coef_[0]],
            "intercept": float(classifier.intercept_[0]),
            "threshold": 0.5,
        }

    def predict_proba(self, parameters, row):
        coef = np.asarray(parameters["coef"], dtype=float)
        if coef.shape[0] != len(row):
            raise ModelError(f"Feature shape mismatch: model has {coef.shape[0]} coefficients, row has {len(row)}")
        logit = float(np.dot(coef, np.asarray(row, dtype=float)) + parameters["intercept"])
        return 1.0 / (1.0 + math.exp(-max(-500.0, min(500.0, logit))))

    def feature_importance(self, parameters, feature_names):
        magnitudes = [abs(value) for value in parameters["coef"]]
        total = math.fsum(magnitudes)
        return {
            name: round(magnitude / total, 6) if total else 0.0
            for name, magnitude in zip(feature_names, magnitudes)
        }


STRATEGIES = {
    WeightedFeatureStrategy.name: WeightedFeatureStrategy,
    LogisticRegressionStrategy.name: LogisticRegressionStrategy,
}


def get_strategy(name: str, random_state: int = 42) -> ScoringStrategy:
    strategy_class = STRATEGIES.get(name)
    if strategy_class is None:
        raise ModelError(f"Unknown scoring strategy '{name}'")
    return strategy_class(random_state=random_state)


def evaluate_model(
    strategy: ScoringStrategy,
    parameters: Dict[str, Any],
    rows: List[List[float]],
    labels: List[int],
    feature_names: Sequence[str],
) -> Dict[str, Any]:
    """Hold-out performance metrics for a freshly fitted model."""
    probabilities = [strategy.predict_proba(parameters, row) for row in rows]
    threshold = parameters.get("threshold", 0.5)
    predictions = [int(p >= threshold) for p in probabilities]

    tn, fp, fn, tp = confusion_matrix(labels, predictions, labels=[0, 1]).ravel()
    auc = None
    if len(set(labels)) == 2:
        auc = round(float(roc_auc_score(labels, probabilities)), 4)

    return {
        "accuracy": round(float(accuracy_score(labels, predictions)), 4),
        "precision": round(float(precision_score(labels, predictions, zero_division=0)), 4),
        "recall": round(float(recall_score(labels, predictions, zero_division=0)), 4),
        "f1Score": round(float(f1_score(labels, predictions, zero_division=0)), 4),
        "auc": auc,
        "confusion_matrix": {
            "true_positives": int(tp),
            "false_positives": int(fp),
            "true_negatives": int(tn),
            "false_negatives": int(fn),
        },
        "feature_importance": strategy.feature_importance(parameters, feature_names),
        "holdout_size": len(rows),
    }


class ModelSnapshot(BaseModel):
    """
    Read-only view of the active model taken at the start of a scoring pass.
    """
    org_id: Optional[uuid.UUID] = None
    model_version: int
    strategy: str
    feature_names: List[str]
    parameters: Dict[str, Any]

    class Config:
        frozen = True

    @classmethod
    def from_model(cls, model) -> "ModelSnapshot":
        return cls(
            org_id=model.org_id,
            model_version=model.model_version,
            strategy=model.strategy,
            feature_names=list(model.feature_names or FEATURE_NAMES),
            parameters=dict(model.parameters or {}),
        )

    def predict_score(self, features: FeatureVector) -> float:
        """Model score on the 0-100 scale. Raises ModelError when the model cannot score."""
        strategy = get_strategy(self.strategy)
        row = features.as_row(self.feature_names)
        probability = strategy.predict_proba(self.parameters, row)
        if probability is None or not math.isfinite(probability) or not 0.0 <= probability <= 1.0:
            raise ModelError(f"Model v{self.model_version} produced an invalid probability")
        return round(100 * probability, 2)
