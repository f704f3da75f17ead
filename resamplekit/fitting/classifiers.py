"""
Probabilistic classifiers used in calibration and tuning scenarios.

- LogisticRegressionModel: penalised logistic regression
- NaiveBayesModel: Gaussian Naive Bayes, whose raw probabilities are
  typically poorly calibrated

Both refuse analysis sets with a single outcome class, which bootstrap
draws of rare events can produce.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from sklearn.linear_model import LogisticRegression
from sklearn.naive_bayes import GaussianNB

from resamplekit.errors import FitError


@dataclass
class LogisticRegressionConfig:
    """Settings passed through to sklearn's LogisticRegression."""

    penalty: str = "l2"
    C: float = 1.0
    solver: str = "lbfgs"
    max_iter: int = 1000
    random_seed: int = 42


class _BinaryClassifier:
    """fit/predict over an sklearn estimator, predicting P(y=1)."""

    def _make_estimator(self) -> Any:
        raise NotImplementedError

    def fit(self, X: np.ndarray, y: np.ndarray) -> None:
        """Fit on 0/1 labels.

        Raises:
            FitError: If labels are not 0/1 or only one class is present.
        """
        labels = set(np.unique(y).tolist())
        if not labels <= {0, 1}:
            raise FitError(f"Outcome must be binary (0,1), got {sorted(labels)}")
        if len(labels) < 2:
            raise FitError("Outcome has a single class in this analysis set")
        self._estimator = self._make_estimator()
        self._estimator.fit(X, y)

    def predict(self, X: np.ndarray) -> np.ndarray:
        estimator = getattr(self, "_estimator", None)
        if estimator is None:
            raise RuntimeError("Model has not been fitted. Call fit() first.")
        return estimator.predict_proba(X)[:, 1]


class LogisticRegressionModel(_BinaryClassifier):
    """Logistic regression returning P(y=1)."""

    def __init__(self, cfg: LogisticRegressionConfig | None = None):
        self.cfg = cfg or LogisticRegressionConfig()

    def _make_estimator(self) -> LogisticRegression:
        return LogisticRegression(
            penalty=self.cfg.penalty,
            C=self.cfg.C,
            solver=self.cfg.solver,
            max_iter=self.cfg.max_iter,
            random_state=self.cfg.random_seed,
        )


class NaiveBayesModel(_BinaryClassifier):
    """Gaussian Naive Bayes returning P(y=1)."""

    def __init__(self, var_smoothing: float = 1e-9):
        self.var_smoothing = var_smoothing

    def _make_estimator(self) -> GaussianNB:
        return GaussianNB(var_smoothing=self.var_smoothing)
