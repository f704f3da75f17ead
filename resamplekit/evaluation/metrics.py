"""
Performance metrics computed on assessment sets.

Implements:
- Regression: RMSE, MAE, R-squared
- Classification (probabilities): ROC AUC, Brier score, log-loss, accuracy
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

import numpy as np
from sklearn.metrics import (
    accuracy_score,
    brier_score_loss,
    log_loss,
    mean_absolute_error,
    mean_squared_error,
    r2_score,
    roc_auc_score,
)

from resamplekit.errors import InvalidParameterError


def compute_rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Root mean squared error. Lower is better."""
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def compute_mae(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Mean absolute error. Lower is better."""
    return float(mean_absolute_error(y_true, y_pred))


def compute_rsq(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Coefficient of determination. Higher is better."""
    return float(r2_score(y_true, y_pred))


def compute_auc(y_true: np.ndarray, y_score: np.ndarray) -> float:
    """Compute ROC AUC score.

    Args:
        y_true: True binary labels.
        y_score: Predicted probability of class 1.

    Returns:
        AUC score in [0, 1].
    """
    return float(roc_auc_score(y_true, y_score))


def compute_brier(y_true: np.ndarray, y_score: np.ndarray) -> float:
    """Compute Brier score (mean squared error of probabilities).

    Lower is better. Perfect calibration = 0.

    Args:
        y_true: True binary labels.
        y_score: Predicted probability of class 1.

    Returns:
        Brier score in [0, 1].
    """
    return float(brier_score_loss(y_true, y_score))


def compute_log_loss(y_true: np.ndarray, y_score: np.ndarray) -> float:
    """Binary cross-entropy of predicted probabilities. Lower is better."""
    y_score = np.clip(y_score, 1e-15, 1 - 1e-15)
    return float(log_loss(y_true, y_score, labels=[0, 1]))


def compute_accuracy(y_true: np.ndarray, y_score: np.ndarray, threshold: float = 0.5) -> float:
    """Accuracy of hard predictions at `threshold`. Higher is better."""
    return float(accuracy_score(y_true, (np.asarray(y_score) >= threshold).astype(int)))


METRICS: Dict[str, Callable[[np.ndarray, np.ndarray], float]] = {
    "rmse": compute_rmse,
    "mae": compute_mae,
    "rsq": compute_rsq,
    "auc": compute_auc,
    "brier": compute_brier,
    "log_loss": compute_log_loss,
    "accuracy": compute_accuracy,
}

# True when larger values are better
METRIC_DIRECTIONS: Dict[str, bool] = {
    "rmse": False,
    "mae": False,
    "rsq": True,
    "auc": True,
    "brier": False,
    "log_loss": False,
    "accuracy": True,
}


def metric_direction(metric: Optional[str], maximize: Optional[bool] = None) -> bool:
    """Whether larger values of `metric` are better.

    An explicit `maximize` wins. Otherwise known metric names follow
    METRIC_DIRECTIONS and anything else is minimised.
    """
    if maximize is not None:
        return maximize
    return METRIC_DIRECTIONS.get(metric, False) if metric is not None else False


def get_metric(name: str) -> Callable[[np.ndarray, np.ndarray], float]:
    """Look up a metric function by name."""
    if name not in METRICS:
        raise InvalidParameterError(f"Unknown metric: {name}. Available: {list(METRICS)}")
    return METRICS[name]


def compute_metrics(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    metrics: List[str],
) -> Dict[str, float]:
    """Compute multiple evaluation metrics.

    Args:
        y_true: Observed outcome.
        y_pred: Predicted values or class-1 probabilities.
        metrics: List of metric names from METRICS.

    Returns:
        Dictionary mapping metric name to value.
    """
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)
    return {name: get_metric(name)(y_true, y_pred) for name in metrics}
