"""
Unit tests for probability calibration.

Run: python -m pytest tests/test_calibration.py -v
"""

import numpy as np
import pandas as pd
import pytest

from resamplekit.config import CalibrationConfig
from resamplekit.data.dataset import Dataset
from resamplekit.data.splitters import bootstraps, vfold_cv
from resamplekit.errors import FitError, InvalidParameterError
from resamplekit.evaluation.calibration import (
    Calibrator,
    calibration_table,
    fit_calibrator,
    validate_calibration,
)


@pytest.fixture
def miscalibrated():
    """True probabilities p; reported probabilities pushed towards 0 and 1."""
    gen = np.random.default_rng(0)
    p = gen.uniform(0.05, 0.95, 600)
    y = gen.binomial(1, p)
    logit = np.log(p / (1 - p))
    reported = 1 / (1 + np.exp(-3 * logit))
    return Dataset(pd.DataFrame({"y": y, "prob": reported}), name="nb_predictions")


class TestCalibrationTable:
    """Binned predicted vs observed rates."""

    def test_bins_cover_all_rows(self):
        prob = np.array([0.05, 0.15, 0.15, 0.55, 0.95, 0.96])
        y = np.array([0, 0, 1, 1, 1, 1])
        table = calibration_table(y, prob, n_bins=10)
        assert table["n"].sum() == 6
        assert len(table) == 4
        assert table["observed"].tolist() == pytest.approx([0.0, 0.5, 1.0, 1.0])

    def test_columns(self, miscalibrated):
        frame = miscalibrated.frame
        table = calibration_table(frame["y"], frame["prob"], n_bins=5)
        assert list(table.columns) == ["predicted", "observed", "n"]


class TestCalibrator:
    """Logistic and isotonic calibration maps."""

    @pytest.mark.parametrize("method", ["logistic", "isotonic"])
    def test_improves_brier(self, miscalibrated, method):
        frame = miscalibrated.frame
        y, prob = frame["y"].to_numpy(), frame["prob"].to_numpy()
        calibrated = fit_calibrator(y, prob, method).transform(prob)
        assert np.all((calibrated >= 0) & (calibrated <= 1))
        assert np.mean((calibrated - y) ** 2) < np.mean((prob - y) ** 2)

    def test_single_class_is_fit_error(self):
        with pytest.raises(FitError):
            Calibrator().fit(np.zeros(10), np.linspace(0.1, 0.9, 10))

    def test_unknown_method(self):
        with pytest.raises(InvalidParameterError):
            Calibrator("beta")

    def test_transform_before_fit(self):
        with pytest.raises(RuntimeError):
            Calibrator().transform(np.array([0.5]))


class TestValidateCalibration:
    """Resampled before/after comparison."""

    def test_calibration_helps_on_held_out_rows(self, miscalibrated):
        res = vfold_cv(miscalibrated, v=5, rng=0)
        out = validate_calibration(res, "y", "prob", CalibrationConfig(metrics=["brier"]))
        assert list(out.columns) == ["metric", "stage", "mean", "std_error", "n"]
        by_stage = out.set_index("stage")["mean"]
        assert by_stage["calibrated"] < by_stage["uncalibrated"]
        assert (out["n"] == 5).all()

    def test_isotonic_with_bootstraps(self, miscalibrated):
        res = bootstraps(miscalibrated, times=10, rng=0)
        cfg = CalibrationConfig(method="isotonic", metrics=["brier", "log_loss"])
        out = validate_calibration(res, "y", "prob", cfg)
        assert len(out) == 4
        assert out["n"].min() == 10

    def test_missing_column(self, miscalibrated):
        res = vfold_cv(miscalibrated, v=3, rng=0)
        with pytest.raises(InvalidParameterError):
            validate_calibration(res, "y", "score")
