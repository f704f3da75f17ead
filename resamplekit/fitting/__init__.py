"""Per-replicate model fitting."""

from resamplekit.fitting.classifiers import (
    LogisticRegressionConfig,
    LogisticRegressionModel,
    NaiveBayesModel,
)
from resamplekit.fitting.design import DesignMatrix
from resamplekit.fitting.fitter import fit_by_group, fit_from_config, fit_resamples
from resamplekit.fitting.models import (
    CorrelationFitter,
    GLMFitter,
    GLMSpec,
    MetricFitter,
    XGBoostFactory,
    correlation_fitter,
    glm_fitter,
    metric_fitter,
)
from resamplekit.fitting.results import FitBatch, FitStatus, ReplicateFit, ReplicateResult
from resamplekit.fitting.xgboost_model import XGBoostModel

__all__ = [
    "CorrelationFitter",
    "DesignMatrix",
    "FitBatch",
    "FitStatus",
    "GLMFitter",
    "GLMSpec",
    "LogisticRegressionConfig",
    "LogisticRegressionModel",
    "MetricFitter",
    "NaiveBayesModel",
    "ReplicateFit",
    "ReplicateResult",
    "XGBoostFactory",
    "XGBoostModel",
    "correlation_fitter",
    "fit_by_group",
    "fit_from_config",
    "fit_resamples",
    "glm_fitter",
    "metric_fitter",
]
