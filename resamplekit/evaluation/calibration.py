"""
Post-hoc probability calibration and its resampled validation.

Implements:
- Calibration table: binned predicted vs observed event rates
- Logistic (Platt) and isotonic calibrators
- Validation: estimate the calibrator on each resample's analysis rows and
  compare metrics on its assessment rows before and after calibration
"""

from __future__ import annotations

import logging
from typing import Dict, List

import numpy as np
import pandas as pd
from sklearn.calibration import calibration_curve
from sklearn.isotonic import IsotonicRegression
from sklearn.linear_model import LogisticRegression

from resamplekit.config import CalibrationConfig
from resamplekit.data.resamples import Resample, ResampleSet
from resamplekit.errors import FitError, InvalidParameterError
from resamplekit.evaluation.metrics import compute_metrics
from resamplekit.fitting.fitter import fit_resamples

logger = logging.getLogger(__name__)

CALIBRATION_METHODS = ("logistic", "isotonic")
_EPS = 1e-6


def _logit(prob: np.ndarray) -> np.ndarray:
    p = np.clip(np.asarray(prob, dtype=float), _EPS, 1 - _EPS)
    return np.log(p / (1 - p))


def calibration_table(
    y_true: np.ndarray,
    prob: np.ndarray,
    n_bins: int = 10,
) -> pd.DataFrame:
    """Binned calibration summary.

    Args:
        y_true: Binary outcome.
        prob: Predicted probability of class 1.
        n_bins: Number of equal-width probability bins.

    Returns:
        Frame with one row per non-empty bin: predicted (mean probability),
        observed (event rate) and n.
    """
    y_true = np.asarray(y_true)
    prob = np.asarray(prob, dtype=float)
    observed, predicted = calibration_curve(y_true, prob, n_bins=n_bins, strategy="uniform")

    # Same binning as calibration_curve, to attach bin sizes
    bins = np.linspace(0.0, 1.0, n_bins + 1)
    counts = np.bincount(np.searchsorted(bins[1:-1], prob), minlength=n_bins)
    counts = counts[counts != 0]

    return pd.DataFrame({"predicted": predicted, "observed": observed, "n": counts})


class Calibrator:
    """Maps raw probabilities to calibrated probabilities."""

    def __init__(self, method: str = "logistic") -> None:
        if method not in CALIBRATION_METHODS:
            raise InvalidParameterError(
                f"method must be one of {CALIBRATION_METHODS}, got {method!r}"
            )
        self.method = method
        self._model: LogisticRegression | IsotonicRegression | None = None

    def fit(self, y_true: np.ndarray, prob: np.ndarray) -> "Calibrator":
        """Estimate the calibration map.

        Raises:
            FitError: If the outcome has a single class.
        """
        y_true = np.asarray(y_true)
        if len(np.unique(y_true)) < 2:
            raise FitError("Calibration needs both classes in the analysis rows")

        if self.method == "isotonic":
            self._model = IsotonicRegression(y_min=0.0, y_max=1.0, out_of_bounds="clip")
            self._model.fit(np.asarray(prob, dtype=float), y_true)
        else:
            # Effectively unpenalised Platt scaling on the logit scale
            self._model = LogisticRegression(C=1e6, max_iter=1000)
            self._model.fit(_logit(prob).reshape(-1, 1), y_true)
        return self

    def transform(self, prob: np.ndarray) -> np.ndarray:
        """Apply the calibration map."""
        if self._model is None:
            raise RuntimeError("Calibrator not fitted. Call fit() first.")
        if self.method == "isotonic":
            return self._model.predict(np.asarray(prob, dtype=float))
        return self._model.predict_proba(_logit(prob).reshape(-1, 1))[:, 1]


def fit_calibrator(y_true: np.ndarray, prob: np.ndarray, method: str = "logistic") -> Calibrator:
    """Fit a Calibrator of the given method."""
    return Calibrator(method).fit(y_true, prob)


class CalibrationValidator:
    """Fit function comparing metrics before and after calibration."""

    def __init__(self, outcome: str, prob_col: str, method: str, metrics: List[str]) -> None:
        self.outcome = outcome
        self.prob_col = prob_col
        self.method = method
        self.metrics = metrics

    def __call__(self, resample: Resample) -> Dict[str, float]:
        if resample.n_assessment == 0:
            raise FitError(f"{resample.resample_id} has no assessment rows")

        analysis = resample.analysis()
        assessment = resample.assessment()
        calibrator = fit_calibrator(
            analysis[self.outcome].to_numpy(), analysis[self.prob_col].to_numpy(), self.method
        )

        y = assessment[self.outcome].to_numpy()
        raw = assessment[self.prob_col].to_numpy(dtype=float)
        before = compute_metrics(y, raw, self.metrics)
        after = compute_metrics(y, calibrator.transform(raw), self.metrics)

        out = {f"{m}_uncalibrated": v for m, v in before.items()}
        out.update({f"{m}_calibrated": v for m, v in after.items()})
        return out


def validate_calibration(
    resamples: ResampleSet,
    outcome: str,
    prob_col: str,
    cfg: CalibrationConfig | None = None,
) -> pd.DataFrame:
    """Resampled estimate of how much calibration improves held-out metrics.

    Args:
        resamples: Resamples of a dataset holding outcomes and predicted
            probabilities (e.g. out-of-fold predictions).
        outcome: Binary outcome column.
        prob_col: Predicted probability column.
        cfg: Calibration configuration (method, metrics).

    Returns:
        Frame with metric, stage (uncalibrated / calibrated), mean,
        std_error and n across resamples.
    """
    cfg = cfg or CalibrationConfig()
    resamples.dataset.require_columns([outcome, prob_col])

    validator = CalibrationValidator(outcome, prob_col, cfg.method, cfg.metrics)
    batch = fit_resamples(resamples, validator)
    tidy = batch.tidy()

    rows = []
    for metric in cfg.metrics:
        for stage in ("uncalibrated", "calibrated"):
            vals = tidy.loc[tidy["term"] == f"{metric}_{stage}", "estimate"].to_numpy(dtype=float)
            n = len(vals)
            rows.append({
                "metric": metric,
                "stage": stage,
                "mean": float(np.mean(vals)) if n else np.nan,
                "std_error": float(np.std(vals, ddof=1) / np.sqrt(n)) if n > 1 else np.nan,
                "n": n,
            })

    logger.info("Validated %s calibration over %d resamples (%d failed)",
                cfg.method, batch.n_ok, batch.n_failed)
    return pd.DataFrame(rows)
