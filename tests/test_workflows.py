"""
End-to-end tests for the inference and tuning runners.

Covers:
- Bootstrap inference for a Poisson GLM with one null and one real effect
- Cancellation returning a partial result
- Hyperparameter racing and grid tuning of an XGBoost model

Run: python -m pytest tests/test_workflows.py -v
"""

import threading

import numpy as np
import pytest

from resamplekit.config import (
    IntervalConfig,
    RacingConfig,
    ResamplingConfig,
    WorkflowConfig,
    XGBoostConfig,
)
from resamplekit.evaluation.racing import CandidateStatus, grid_regular
from resamplekit.experiments import run_bootstrap_inference, run_tuning
from resamplekit.fitting.models import GLMSpec, XGBoostFactory, glm_fitter, metric_fitter


class TestBootstrapInference:
    """Resample, fit, aggregate."""

    def test_poisson_null_and_real_effect(self, count_dataset):
        cfg = WorkflowConfig(
            resampling=ResamplingConfig(method="bootstraps", times=1000, apparent=True, random_seed=1),
        )
        fit_fn = glm_fitter(GLMSpec(formula="count ~ x_null + x_pos", family="poisson"))
        out = run_bootstrap_inference(count_dataset, fit_fn, cfg)

        summary = out.summary.set_index("term")
        assert list(summary.index) == ["Intercept", "x_null", "x_pos"]
        assert (summary["n_replicates"] + summary["n_failed"] == 1000).all()

        null_lower, null_upper = out.interval("x_null")
        assert null_lower < 0 < null_upper
        pos_lower, _ = out.interval("x_pos")
        assert pos_lower > 0

        assert summary.loc["x_null", "apparent"] == pytest.approx(0.0, abs=1e-6)
        assert (summary["lower"] <= summary["upper"]).all()

    def test_same_seed_same_summary(self, count_dataset):
        cfg = WorkflowConfig(
            resampling=ResamplingConfig(times=50, random_seed=5),
            intervals=IntervalConfig(method="t"),
        )
        fit_fn = glm_fitter("count ~ x_pos", family="poisson")
        a = run_bootstrap_inference(count_dataset, fit_fn, cfg).summary
        b = run_bootstrap_inference(count_dataset, fit_fn, cfg).summary
        np.testing.assert_allclose(a["lower"], b["lower"])
        np.testing.assert_allclose(a["upper"], b["upper"])
        assert (a["confidence"] == "full").all()

    def test_cancelled_run_returns_partial(self, count_dataset):
        event = threading.Event()
        event.set()
        cfg = WorkflowConfig(resampling=ResamplingConfig(times=20))
        out = run_bootstrap_inference(
            count_dataset, glm_fitter("count ~ x_pos", family="poisson"), cfg, cancel_event=event
        )
        assert out.batch.cancelled
        assert out.summary.empty
        with pytest.raises(KeyError):
            out.interval("x_pos")


class TestTuning:
    """Racing and grid tuning through the runner."""

    @pytest.fixture
    def tuning_config(self):
        return WorkflowConfig(
            resampling=ResamplingConfig(method="vfold_cv", v=5, random_seed=0),
            racing=RacingConfig(burn_in=3),
        )

    @pytest.fixture
    def fitter(self):
        return metric_fitter(XGBoostFactory(XGBoostConfig(n_estimators=30)), "y", metrics=["rmse"])

    def test_race(self, regression_dataset, tuning_config, fitter):
        candidates = grid_regular({"max_depth": [1, 3], "learning_rate": [0.01, 0.3]})
        run = run_tuning(regression_dataset, candidates, fitter, tuning_config)
        assert len(run.resamples) == 5
        assert run.best.status == CandidateStatus.ACTIVE
        assert run.best.params in candidates
        counts = run.result.active_counts
        assert all(a >= b for a, b in zip(counts, counts[1:]))

    def test_grid(self, regression_dataset, tuning_config, fitter):
        candidates = grid_regular({"max_depth": [1, 3]})
        run = run_tuning(regression_dataset, candidates, fitter, tuning_config, race=False)
        assert len(run.result.metrics) == 10
        assert len(run.result.active) == 2

    def test_grid_direction_follows_named_metric(self, small_dataset):
        cfg = WorkflowConfig(resampling=ResamplingConfig(method="vfold_cv", v=5, random_seed=0))

        def auc_by_quality(resample, params):
            return {"auc": params["q"]}

        run = run_tuning(
            small_dataset, [{"q": 0.9}, {"q": 0.5}], auc_by_quality, cfg, race=False, metric="auc"
        )
        assert run.best.params == {"q": 0.9}
