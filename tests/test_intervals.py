"""
Unit tests for interval aggregation.

Run: python -m pytest tests/test_intervals.py -v
"""

import numpy as np
import pandas as pd
import pytest

from resamplekit.config import IntervalConfig
from resamplekit.errors import InvalidParameterError
from resamplekit.evaluation.intervals import (
    SUMMARY_COLUMNS,
    percentile_intervals,
    summarize_replicates,
    t_intervals,
)
from resamplekit.fitting.results import FitBatch, FitStatus, ReplicateResult, tidy_estimates


def _replicates(values, term="theta"):
    return pd.DataFrame({"term": term, "estimate": values})


def _batch(values, n_failed=0, apparent=None):
    results = [
        ReplicateResult(f"B{i}", i, "bootstrap", FitStatus.OK, tidy_estimates({"theta": v}))
        for i, v in enumerate(values)
    ]
    offset = len(results)
    results += [
        ReplicateResult(f"F{i}", offset + i, "bootstrap", FitStatus.FAILED, error="FitError: x")
        for i in range(n_failed)
    ]
    if apparent is not None:
        results.append(ReplicateResult(
            "Apparent", len(results), "apparent", FitStatus.OK, tidy_estimates({"theta": apparent})
        ))
    return FitBatch(results)


class TestPercentileIntervals:
    """Empirical quantile intervals."""

    def test_bounds_are_quantiles(self):
        vals = np.arange(1, 1001, dtype=float)
        out = percentile_intervals(_replicates(vals), alpha=0.1, min_replicates=1000)
        row = out.iloc[0]
        assert row["lower"] == pytest.approx(np.quantile(vals, 0.05))
        assert row["upper"] == pytest.approx(np.quantile(vals, 0.95))
        assert row["estimate"] == pytest.approx(500.5)
        assert row["confidence"] == "full"
        assert row["method"] == "percentile"

    def test_lower_le_estimate_le_upper(self):
        rng = np.random.default_rng(0)
        out = percentile_intervals(_replicates(rng.normal(3, 1, 500)))
        row = out.iloc[0]
        assert row["lower"] <= row["estimate"] <= row["upper"]

    def test_columns(self):
        out = percentile_intervals(_replicates([1.0, 2.0, 3.0]))
        assert list(out.columns) == SUMMARY_COLUMNS

    def test_low_confidence_below_threshold(self):
        out = percentile_intervals(_replicates(np.arange(50.0)), min_replicates=1000)
        assert out.loc[0, "confidence"] == "low"

    def test_degraded_below_min_usable(self):
        out = percentile_intervals(_replicates([1.0, 2.0, 3.0]), min_usable=10)
        assert out.loc[0, "confidence"] == "degraded"
        assert out.loc[0, "n_replicates"] == 3

    def test_failed_count_and_apparent_from_batch(self):
        out = percentile_intervals(_batch(np.arange(20.0), n_failed=4, apparent=9.5))
        assert out.loc[0, "n_replicates"] == 20
        assert out.loc[0, "n_failed"] == 4
        assert out.loc[0, "apparent"] == pytest.approx(9.5)

    def test_non_finite_replicates_ignored(self):
        out = percentile_intervals(_replicates([1.0, np.nan, np.inf, 2.0]))
        assert out.loc[0, "n_replicates"] == 2

    def test_multiple_terms_in_first_seen_order(self):
        df = pd.concat([_replicates([1.0, 2.0], "b"), _replicates([3.0, 4.0], "a")])
        out = percentile_intervals(df)
        assert out["term"].tolist() == ["b", "a"]

    def test_empty_batch_gives_empty_summary(self):
        out = percentile_intervals(_batch([], n_failed=3))
        assert out.empty

    @pytest.mark.parametrize("alpha", [0.0, 1.0, -0.1])
    def test_invalid_alpha(self, alpha):
        with pytest.raises(InvalidParameterError):
            percentile_intervals(_replicates([1.0, 2.0]), alpha=alpha)


class TestTIntervals:
    """Mean +/- t * SD intervals."""

    def test_symmetric_around_mean(self):
        vals = np.array([1.0, 2.0, 3.0, 4.0, 5.0])
        out = t_intervals(_replicates(vals), alpha=0.05)
        row = out.iloc[0]
        assert row["estimate"] == pytest.approx(3.0)
        assert row["upper"] - row["estimate"] == pytest.approx(row["estimate"] - row["lower"])
        # t(0.975, 4) = 2.776; SD = 1.5811
        assert row["upper"] == pytest.approx(3.0 + 2.7764 * 1.5811, rel=1e-3)

    def test_single_replicate_has_no_width(self):
        out = t_intervals(_replicates([1.0]))
        assert np.isnan(out.loc[0, "lower"])
        assert out.loc[0, "confidence"] == "degraded"

    def test_no_low_flag(self):
        out = t_intervals(_replicates(np.arange(20.0)), min_usable=10)
        assert out.loc[0, "confidence"] == "full"


class TestSummarize:
    """Config-driven dispatch."""

    def test_uses_config_method(self):
        df = _replicates(np.arange(30.0))
        assert summarize_replicates(df, IntervalConfig(method="t")).loc[0, "method"] == "t"
        assert summarize_replicates(df).loc[0, "method"] == "percentile"
