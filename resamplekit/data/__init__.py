"""
Datasets and resampling.

This module provides:
- Dataset: Read-only table shared by all resamples
- Resample / ResampleSet: Index-based resample contracts
- Splitters: bootstrap, v-fold, validation/initial splits, nested stages
"""

from resamplekit.data.dataset import Dataset, load_dataset
from resamplekit.data.resamples import Resample, ResampleSet
from resamplekit.data.splitters import (
    NestedResample,
    as_generator,
    bootstraps,
    initial_split,
    make_strata,
    nested_resamples,
    resample_from_config,
    validation_split,
    vfold_cv,
)

__all__ = [
    "Dataset",
    "load_dataset",
    "Resample",
    "ResampleSet",
    "NestedResample",
    "as_generator",
    "bootstraps",
    "initial_split",
    "make_strata",
    "nested_resamples",
    "resample_from_config",
    "validation_split",
    "vfold_cv",
]
