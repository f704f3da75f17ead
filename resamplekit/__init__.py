"""
resamplekit: resampling-based inference and model tuning.

Modules:
- data: Datasets and resample generation (bootstrap, v-fold, splits)
- fitting: Per-replicate model fitting with failure capture
- evaluation: Intervals, hypothesis tests, ANOVA racing, calibration
- experiments: End-to-end inference and tuning runners
- io: Synthetic example datasets
"""

from resamplekit.config import (
    CalibrationConfig,
    FitConfig,
    IntervalConfig,
    RacingConfig,
    ResamplingConfig,
    WorkflowConfig,
)
from resamplekit.data import Dataset, bootstraps, validation_split, vfold_cv
from resamplekit.errors import FitError, InvalidParameterError, ResampleKitError, ResamplingError
from resamplekit.evaluation import percentile_intervals, t_intervals, tune_race_anova
from resamplekit.experiments import run_bootstrap_inference, run_tuning
from resamplekit.fitting import FitBatch, GLMSpec, fit_resamples, glm_fitter

__version__ = "0.1.0"

__all__ = [
    "CalibrationConfig",
    "Dataset",
    "FitBatch",
    "FitConfig",
    "FitError",
    "GLMSpec",
    "IntervalConfig",
    "InvalidParameterError",
    "RacingConfig",
    "ResampleKitError",
    "ResamplingConfig",
    "ResamplingError",
    "WorkflowConfig",
    "bootstraps",
    "fit_resamples",
    "glm_fitter",
    "percentile_intervals",
    "run_bootstrap_inference",
    "run_tuning",
    "t_intervals",
    "tune_race_anova",
    "validation_split",
    "vfold_cv",
]
