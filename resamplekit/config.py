"""
Configuration management using pydantic.

All config classes use pydantic for validation and YAML loading.
Config files are stored in configs/ directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field


# Base path for config files
CONFIGS_DIR = Path(__file__).parent.parent / "configs"


def load_yaml(path: Path | str) -> dict[str, Any]:
    """Load a YAML file and return as dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


class ResamplingConfig(BaseModel):
    """Configuration for resample generation.

    `times` is used by the bootstrap method, `v` and `repeats` by v-fold
    cross-validation, `prop` by single splits.
    """

    method: Literal["bootstraps", "vfold_cv", "validation_split"] = "bootstraps"
    times: int = Field(default=1000, ge=1)
    v: int = Field(default=10, ge=2)
    repeats: int = Field(default=1, ge=1)
    prop: float = Field(default=0.75, gt=0.0, lt=1.0)
    strata: Optional[str] = None
    breaks: int = Field(default=4, ge=2)  # Quantile bins for numeric strata
    pool: float = Field(default=0.1, ge=0.0, lt=1.0)  # Pool strata rarer than this
    apparent: bool = False
    max_retries: int = Field(default=0, ge=0)  # Redraws for bootstraps with no out-of-bag rows
    random_seed: int = 42

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> ResamplingConfig:
        """Load config from YAML file.

        Args:
            path: Path to YAML file. If None, uses configs/resampling.yaml.
        """
        if path is None:
            path = CONFIGS_DIR / "resampling.yaml"
        return cls(**load_yaml(path))


class FitConfig(BaseModel):
    """Configuration for per-replicate model fitting."""

    n_jobs: int = 1  # joblib semantics: -1 uses all cores
    timeout: Optional[float] = Field(default=None, gt=0.0)  # Seconds per replicate
    keep_models: bool = False
    show_progress: bool = False

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> FitConfig:
        """Load config from YAML file.

        Args:
            path: Path to YAML file. If None, uses configs/fitting.yaml.
        """
        if path is None:
            path = CONFIGS_DIR / "fitting.yaml"
        return cls(**load_yaml(path))


class IntervalConfig(BaseModel):
    """Configuration for replicate aggregation into confidence intervals."""

    method: Literal["percentile", "t"] = "percentile"
    alpha: float = Field(default=0.05, gt=0.0, lt=1.0)
    min_replicates: int = Field(default=1000, ge=1)  # Below this percentile CIs are "low"
    min_usable: int = Field(default=10, ge=1)  # Below this summaries are "degraded"

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> IntervalConfig:
        """Load config from YAML file.

        Args:
            path: Path to YAML file. If None, uses configs/intervals.yaml.
        """
        if path is None:
            path = CONFIGS_DIR / "intervals.yaml"
        return cls(**load_yaml(path))


class RacingConfig(BaseModel):
    """Configuration for ANOVA racing over hyperparameter candidates.

    The ANOVA is first fitted once `burn_in` resamples have been evaluated
    for every candidate.
    """

    alpha: float = Field(default=0.05, gt=0.0, lt=1.0)
    burn_in: int = Field(default=3, ge=2)
    model: Literal["mixed", "block"] = "mixed"
    maximize: Optional[bool] = None  # None: follow the named metric's direction
    show_progress: bool = False

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> RacingConfig:
        """Load config from YAML file.

        Args:
            path: Path to YAML file. If None, uses configs/racing.yaml.
        """
        if path is None:
            path = CONFIGS_DIR / "racing.yaml"
        return cls(**load_yaml(path))


class CalibrationConfig(BaseModel):
    """Configuration for post-hoc probability calibration."""

    method: Literal["logistic", "isotonic"] = "logistic"
    n_bins: int = Field(default=10, ge=2)
    metrics: List[str] = Field(default=["brier", "log_loss"])

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> CalibrationConfig:
        """Load config from YAML file.

        Args:
            path: Path to YAML file. If None, uses configs/calibration.yaml.
        """
        if path is None:
            path = CONFIGS_DIR / "calibration.yaml"
        return cls(**load_yaml(path))


class XGBoostConfig(BaseModel):
    """Configuration for XGBoost model."""

    objective: Literal["regression", "classification"] = "regression"
    n_estimators: int = 100
    max_depth: int = 3
    learning_rate: float = 0.1
    subsample: float = 0.8
    colsample_bytree: float = 0.8
    min_child_weight: float = 1.0
    early_stopping_rounds: int = 10
    validation_fraction: float = 0.2  # Fraction of analysis data for early stopping
    random_seed: int = 42

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> XGBoostConfig:
        """Load config from YAML file.

        Args:
            path: Path to YAML file. If None, uses configs/model_xgboost.yaml.
        """
        if path is None:
            path = CONFIGS_DIR / "model_xgboost.yaml"
        return cls(**load_yaml(path))


class SyntheticDataConfig(BaseModel):
    """Configuration for synthetic example datasets."""

    random_seed: int = 42
    n_samples: int = 200
    intercept: float = 0.5
    effect: float = 0.7  # Coefficient of the informative predictor
    noise_sd: float = 1.0  # Residual SD for the linear dataset
    n_features: int = 4
    class_balance: float = 0.3  # Event rate for the classification dataset

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> SyntheticDataConfig:
        """Load config from YAML file.

        Args:
            path: Path to YAML file. If None, uses configs/synthetic_data.yaml.
        """
        if path is None:
            path = CONFIGS_DIR / "synthetic_data.yaml"
        return cls(**load_yaml(path))


class WorkflowConfig(BaseModel):
    """Composite configuration for an end-to-end resample/fit/aggregate run."""

    resampling: ResamplingConfig = Field(default_factory=ResamplingConfig)
    fitting: FitConfig = Field(default_factory=FitConfig)
    intervals: IntervalConfig = Field(default_factory=IntervalConfig)
    racing: RacingConfig = Field(default_factory=RacingConfig)

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "WorkflowConfig":
        """Load config from YAML file.

        Args:
            path: Path to YAML file. If None, uses configs/workflow.yaml.
        """
        if path is None:
            path = CONFIGS_DIR / "workflow.yaml"
        return cls(**load_yaml(path))
