"""
Aggregation of replicate estimates into confidence intervals.

Implements:
- Percentile intervals: empirical (alpha/2, 1 - alpha/2) quantiles
- t intervals: replicate mean +/- t critical value * replicate SD

Both return one row per term. A row is flagged "low" confidence when a
percentile interval rests on fewer than `min_replicates` replicates, and
"degraded" when fewer than `min_usable` replicates succeeded. Degraded
summaries are reported, never raised.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import numpy as np
import pandas as pd
from scipy import stats

from resamplekit.config import IntervalConfig
from resamplekit.errors import InvalidParameterError
from resamplekit.fitting.results import FitBatch

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    "term",
    "estimate",
    "lower",
    "upper",
    "std_error",
    "alpha",
    "method",
    "n_replicates",
    "n_failed",
    "confidence",
]


def _check_alpha(alpha: float) -> None:
    if not 0.0 < alpha < 1.0:
        raise InvalidParameterError(f"alpha must be in (0, 1), got {alpha}")


def _replicate_values(batch: FitBatch | pd.DataFrame) -> Dict[str, np.ndarray]:
    """Map each term to its finite replicate estimates, in term order."""
    tidy = batch.tidy() if isinstance(batch, FitBatch) else batch
    if not {"term", "estimate"}.issubset(tidy.columns):
        raise InvalidParameterError("Replicate table needs 'term' and 'estimate' columns")

    values: Dict[str, np.ndarray] = {}
    for term, group in tidy.groupby("term", sort=False):
        vals = group["estimate"].to_numpy(dtype=float)
        values[str(term)] = vals[np.isfinite(vals)]
    return values


def _confidence(n: int, min_usable: int, min_replicates: int | None) -> str:
    if n < min_usable:
        return "degraded"
    if min_replicates is not None and n < min_replicates:
        return "low"
    return "full"


def _finish(rows: List[Dict[str, Any]], batch: FitBatch | pd.DataFrame) -> pd.DataFrame:
    summary = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)

    if isinstance(batch, FitBatch) and batch.apparent is not None:
        apparent = batch.apparent.estimates.set_index("term")["estimate"]
        summary["apparent"] = summary["term"].map(apparent).astype(float)

    degraded = summary.loc[summary["confidence"] == "degraded", "term"].tolist()
    if degraded:
        logger.warning("Degraded summaries (too few successful replicates): %s", degraded)
    if summary.empty:
        logger.warning("No successful replicates to aggregate")
    return summary


def percentile_intervals(
    batch: FitBatch | pd.DataFrame,
    alpha: float = 0.05,
    min_replicates: int = 1000,
    min_usable: int = 10,
) -> pd.DataFrame:
    """Percentile confidence intervals per term.

    Args:
        batch: FitBatch, or a tidy frame with term/estimate columns.
        alpha: 1 - confidence level.
        min_replicates: Replicates needed for "full" confidence.
        min_usable: Replicates below which the summary is "degraded".

    Returns:
        Summary frame (SUMMARY_COLUMNS, plus "apparent" when available).
    """
    _check_alpha(alpha)
    n_failed = batch.n_failed if isinstance(batch, FitBatch) else 0

    rows = []
    for term, vals in _replicate_values(batch).items():
        n = len(vals)
        if n:
            lower, upper = np.quantile(vals, [alpha / 2, 1 - alpha / 2])
            estimate = float(np.mean(vals))
            std_error = float(np.std(vals, ddof=1)) if n > 1 else np.nan
        else:
            lower = upper = estimate = std_error = np.nan
        rows.append({
            "term": term,
            "estimate": estimate,
            "lower": float(lower),
            "upper": float(upper),
            "std_error": std_error,
            "alpha": alpha,
            "method": "percentile",
            "n_replicates": n,
            "n_failed": n_failed,
            "confidence": _confidence(n, min_usable, min_replicates),
        })
    return _finish(rows, batch)


def t_intervals(
    batch: FitBatch | pd.DataFrame,
    alpha: float = 0.05,
    min_usable: int = 10,
) -> pd.DataFrame:
    """t-distribution confidence intervals per term.

    Bounds are mean +/- t(1 - alpha/2, n - 1) * SD of the replicate
    estimates. Valid with fewer replicates than the percentile method.
    """
    _check_alpha(alpha)
    n_failed = batch.n_failed if isinstance(batch, FitBatch) else 0

    rows = []
    for term, vals in _replicate_values(batch).items():
        n = len(vals)
        estimate = float(np.mean(vals)) if n else np.nan
        if n > 1:
            std_error = float(np.std(vals, ddof=1))
            half_width = stats.t.ppf(1 - alpha / 2, df=n - 1) * std_error
            lower, upper = estimate - half_width, estimate + half_width
        else:
            std_error = lower = upper = np.nan
        rows.append({
            "term": term,
            "estimate": estimate,
            "lower": float(lower),
            "upper": float(upper),
            "std_error": std_error,
            "alpha": alpha,
            "method": "t",
            "n_replicates": n,
            "n_failed": n_failed,
            "confidence": _confidence(n, min_usable, None),
        })
    return _finish(rows, batch)


def summarize_replicates(
    batch: FitBatch | pd.DataFrame,
    cfg: IntervalConfig | None = None,
) -> pd.DataFrame:
    """Aggregate replicates with the method and thresholds of `cfg`."""
    cfg = cfg or IntervalConfig()
    if cfg.method == "t":
        return t_intervals(batch, alpha=cfg.alpha, min_usable=cfg.min_usable)
    return percentile_intervals(
        batch,
        alpha=cfg.alpha,
        min_replicates=cfg.min_replicates,
        min_usable=cfg.min_usable,
    )
