"""
Workflow runners.

This module provides:
- bootstrap_runner: resample, fit and aggregate into an interval report
- tuning_runner: hyperparameter racing or grid evaluation over resamples
"""

from resamplekit.experiments.bootstrap_runner import BootstrapInference, run_bootstrap_inference
from resamplekit.experiments.tuning_runner import TuningRun, run_tuning

__all__ = [
    "BootstrapInference",
    "TuningRun",
    "run_bootstrap_inference",
    "run_tuning",
]
