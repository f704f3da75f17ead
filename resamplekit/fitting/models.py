"""
Model specifications and ready-made fit functions.

Each fitter is a small callable class (so it pickles cleanly for joblib
workers) taking a Resample and returning estimates:

- GLMFitter: statsmodels generalized linear model on the analysis rows,
  tidy coefficients with standard errors plus fit diagnostics
- CorrelationFitter: correlation coefficient of two columns
- MetricFitter: fit an estimator on analysis rows, score it on assessment rows
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from patsy import PatsyError
from scipy import stats
from statsmodels.tools.sm_exceptions import ConvergenceWarning, PerfectSeparationWarning

from resamplekit.config import XGBoostConfig
from resamplekit.data.resamples import Resample
from resamplekit.errors import FitError, InvalidParameterError
from resamplekit.evaluation.metrics import compute_metrics, get_metric
from resamplekit.fitting.design import DesignMatrix
from resamplekit.fitting.results import ReplicateFit
from resamplekit.fitting.xgboost_model import XGBoostModel

GLM_FAMILIES = ("gaussian", "poisson", "binomial", "negative_binomial")
CORRELATION_METHODS = ("pearson", "spearman", "kendall")


@dataclass(frozen=True)
class GLMSpec:
    """Immutable specification of a generalized linear model.

    Attributes:
        formula: Patsy formula, e.g. "count ~ x_null + x_pos".
        family: One of GLM_FAMILIES.
        alpha: Dispersion for the negative binomial family.
        keep_residuals: Store response residuals in the diagnostics.
    """

    formula: str
    family: str = "gaussian"
    alpha: Optional[float] = None
    keep_residuals: bool = False

    def __post_init__(self) -> None:
        """Validate the specification."""
        if "~" not in self.formula:
            raise InvalidParameterError(f"Formula needs an outcome, got {self.formula!r}")
        if self.family not in GLM_FAMILIES:
            raise InvalidParameterError(
                f"family must be one of {GLM_FAMILIES}, got {self.family!r}"
            )
        if self.alpha is not None and self.alpha <= 0:
            raise InvalidParameterError(f"alpha must be > 0, got {self.alpha}")

    def make_family(self) -> sm.families.Family:
        """Build the statsmodels family object."""
        if self.family == "poisson":
            return sm.families.Poisson()
        if self.family == "binomial":
            return sm.families.Binomial()
        if self.family == "negative_binomial":
            return sm.families.NegativeBinomial(alpha=self.alpha or 1.0)
        return sm.families.Gaussian()

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "formula": self.formula,
            "family": self.family,
            "alpha": self.alpha,
            "keep_residuals": self.keep_residuals,
        }

    @classmethod
    def from_dict(cls, d: dict) -> GLMSpec:
        """Create from dictionary (e.g., from YAML config)."""
        return cls(
            formula=d["formula"],
            family=d.get("family", "gaussian"),
            alpha=d.get("alpha"),
            keep_residuals=d.get("keep_residuals", False),
        )


def tidy_glm(result: Any) -> pd.DataFrame:
    """Tidy coefficient table of a fitted statsmodels GLM."""
    return pd.DataFrame({
        "term": list(result.params.index),
        "estimate": result.params.to_numpy(dtype=float),
        "std_error": result.bse.to_numpy(dtype=float),
        "statistic": result.tvalues.to_numpy(dtype=float),
        "p_value": result.pvalues.to_numpy(dtype=float),
    })


class GLMFitter:
    """Fit a GLMSpec to a resample's analysis rows.

    Non-convergence, perfect separation, a rank-deficient design and
    non-finite coefficients all raise FitError so the replicate is
    recorded as failed. Formula errors raise InvalidParameterError.
    """

    def __init__(self, spec: GLMSpec) -> None:
        self.spec = spec

    def fit_frame(self, data: pd.DataFrame) -> ReplicateFit:
        """Fit the model to an arbitrary frame (e.g. one group of rows)."""
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("error", ConvergenceWarning)
                warnings.simplefilter("error", PerfectSeparationWarning)
                model = smf.glm(self.spec.formula, data=data, family=self.spec.make_family())
                rank = np.linalg.matrix_rank(model.exog)
                if rank < model.exog.shape[1]:
                    raise FitError(
                        f"Singular design: rank {rank} < {model.exog.shape[1]} columns"
                    )
                result = model.fit()
        except PatsyError as exc:
            raise InvalidParameterError(f"Malformed formula {self.spec.formula!r}: {exc}") from exc
        except (ConvergenceWarning, PerfectSeparationWarning, np.linalg.LinAlgError) as exc:
            raise FitError(f"{type(exc).__name__}: {exc}") from exc

        estimates = tidy_glm(result)
        if not np.isfinite(estimates["estimate"]).all():
            raise FitError("Non-finite coefficient estimates")

        diagnostics: Dict[str, Any] = {
            "loglik": float(result.llf),
            "aic": float(result.aic),
            "deviance": float(result.deviance),
            "n_obs": int(result.nobs),
        }
        if self.spec.keep_residuals:
            diagnostics["residuals"] = np.asarray(result.resid_response)

        return ReplicateFit(estimates=estimates, diagnostics=diagnostics, model=result)

    def __call__(self, resample: Resample) -> ReplicateFit:
        return self.fit_frame(resample.analysis())


def glm_fitter(spec: GLMSpec | str, family: str = "gaussian") -> GLMFitter:
    """Build a GLM fit function from a spec or a formula string."""
    if isinstance(spec, str):
        spec = GLMSpec(formula=spec, family=family)
    return GLMFitter(spec)


class CorrelationFitter:
    """Correlation between two columns of the analysis rows."""

    def __init__(self, x: str, y: str, method: str = "pearson") -> None:
        if method not in CORRELATION_METHODS:
            raise InvalidParameterError(
                f"method must be one of {CORRELATION_METHODS}, got {method!r}"
            )
        self.x = x
        self.y = y
        self.method = method

    def __call__(self, resample: Resample) -> Dict[str, float]:
        data = resample.analysis()
        missing = [c for c in (self.x, self.y) if c not in data.columns]
        if missing:
            raise InvalidParameterError(f"Columns {missing} not found")

        x = data[self.x].to_numpy(dtype=float)
        y = data[self.y].to_numpy(dtype=float)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", stats.ConstantInputWarning)
            if self.method == "spearman":
                r = stats.spearmanr(x, y)[0]
            elif self.method == "kendall":
                r = stats.kendalltau(x, y)[0]
            else:
                r = stats.pearsonr(x, y)[0]

        if not np.isfinite(r):
            raise FitError("Correlation undefined for constant input")
        return {"correlation": float(r)}


def correlation_fitter(x: str, y: str, method: str = "pearson") -> CorrelationFitter:
    """Build a fit function returning the correlation of columns x and y."""
    return CorrelationFitter(x, y, method)


class MetricFitter:
    """Fit an estimator on analysis rows and score it on assessment rows.

    `model_factory(**params)` must return an object with fit(X, y) and
    predict(X). For tuning, the fitter is called with a candidate's
    hyperparameters as `params`.
    """

    def __init__(
        self,
        model_factory: Callable[..., Any],
        outcome: str,
        predictors: List[str] | None = None,
        metrics: List[str] | None = None,
    ) -> None:
        self.model_factory = model_factory
        self.outcome = outcome
        self.predictors = predictors
        self.metrics = metrics or ["rmse"]
        for name in self.metrics:
            get_metric(name)

    def __call__(self, resample: Resample, params: Dict[str, Any] | None = None) -> Dict[str, float]:
        if resample.n_assessment == 0:
            raise FitError(f"{resample.resample_id} has no assessment rows")

        design = DesignMatrix(self.outcome, self.predictors)
        X_train, y_train = design.fit_transform(resample.analysis())
        X_test, y_test = design.transform(resample.assessment())

        model = self.model_factory(**(params or {}))
        model.fit(X_train, y_train)
        return compute_metrics(y_test, model.predict(X_test), self.metrics)


def metric_fitter(
    model_factory: Callable[..., Any],
    outcome: str,
    predictors: List[str] | None = None,
    metrics: List[str] | None = None,
) -> MetricFitter:
    """Build a fit function scoring `model_factory` models on assessment rows."""
    return MetricFitter(model_factory, outcome, predictors, metrics)


class XGBoostFactory:
    """Builds XGBoostModel instances with candidate overrides of a base config."""

    def __init__(self, base_cfg: XGBoostConfig | None = None) -> None:
        self.base_cfg = base_cfg or XGBoostConfig()

    def __call__(self, **params: Any) -> XGBoostModel:
        cfg = XGBoostConfig(**{**self.base_cfg.model_dump(), **params})
        return XGBoostModel(cfg)
