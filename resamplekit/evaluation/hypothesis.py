"""
Hypothesis testing against resampled null distributions.

The null distribution comes from permuting one column (breaking its
association with the rest) or from simulating under a fixed null model.
The two-sided p-value is twice the smaller tail proportion of null values
at least as extreme as the observed statistic, capped at 1.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

import numpy as np
import pandas as pd

from resamplekit.data.dataset import Dataset
from resamplekit.data.splitters import RandomState, as_generator
from resamplekit.errors import InvalidParameterError

logger = logging.getLogger(__name__)


def two_sided_p_value(observed: float, null_distribution: np.ndarray) -> float:
    """Two-sided p-value of `observed` under `null_distribution`.

    Raises:
        InvalidParameterError: If `observed` is not finite (an undefined
            statistic) or the null distribution has no finite values.
    """
    if not np.isfinite(observed):
        raise InvalidParameterError(f"Observed statistic is not finite: {observed}")
    null = np.asarray(null_distribution, dtype=float)
    null = null[np.isfinite(null)]
    if len(null) == 0:
        raise InvalidParameterError("Null distribution is empty")

    upper = np.mean(null >= observed)
    lower = np.mean(null <= observed)
    return float(min(1.0, 2.0 * min(upper, lower)))


def permutation_null(
    dataset: Dataset,
    statistic: Callable[[pd.DataFrame], float],
    permute: str,
    times: int = 1000,
    rng: RandomState = None,
) -> np.ndarray:
    """Null distribution of `statistic` with column `permute` shuffled.

    Each replicate works on its own copy of the rows; the dataset itself is
    not modified.

    Args:
        dataset: Source dataset.
        statistic: Function of a frame returning a scalar.
        permute: Column to permute.
        times: Number of permutations.
        rng: Generator or seed.

    Returns:
        Array of `times` null statistics.
    """
    if times < 1:
        raise InvalidParameterError(f"times must be >= 1, got {times}")
    dataset.require_columns([permute])

    gen = as_generator(rng)
    frame = dataset.frame
    column = frame[permute].to_numpy()

    null = np.empty(times)
    for i in range(times):
        shuffled = frame.copy()
        shuffled[permute] = column[gen.permutation(len(column))]
        null[i] = statistic(shuffled)
    return null


def simulated_null(
    simulate: Callable[[np.random.Generator], float],
    times: int = 1000,
    rng: RandomState = None,
) -> np.ndarray:
    """Null distribution from repeated draws of a fixed null model.

    Args:
        simulate: Function drawing one null statistic from the given Generator.
        times: Number of simulations.
        rng: Generator or seed.
    """
    if times < 1:
        raise InvalidParameterError(f"times must be >= 1, got {times}")
    gen = as_generator(rng)
    return np.array([float(simulate(gen)) for _ in range(times)])


@dataclass
class HypothesisTestResult:
    """Outcome of a resampling hypothesis test."""

    term: str
    observed: float
    null_mean: float
    null_sd: float
    p_value: float
    n_null: int

    def to_frame(self) -> pd.DataFrame:
        """Single report row."""
        return pd.DataFrame([{
            "term": self.term,
            "estimate": self.observed,
            "null_mean": self.null_mean,
            "null_sd": self.null_sd,
            "p_value": self.p_value,
            "n_null": self.n_null,
        }])


def hypothesis_test(
    observed: float,
    null_distribution: np.ndarray,
    term: str = "statistic",
) -> HypothesisTestResult:
    """Test an observed statistic against a null distribution."""
    null = np.asarray(null_distribution, dtype=float)
    null = null[np.isfinite(null)]
    p_value = two_sided_p_value(observed, null)
    return HypothesisTestResult(
        term=term,
        observed=float(observed),
        null_mean=float(np.mean(null)),
        null_sd=float(np.std(null, ddof=1)) if len(null) > 1 else float("nan"),
        p_value=p_value,
        n_null=len(null),
    )


def permutation_test(
    dataset: Dataset,
    statistic: Callable[[pd.DataFrame], float],
    permute: str,
    times: int = 1000,
    rng: RandomState = None,
    term: str = "statistic",
) -> HypothesisTestResult:
    """Permutation test of `statistic` for association with column `permute`.

    Raises:
        InvalidParameterError: If the statistic is undefined (not finite) on
            the observed data, e.g. a correlation with a constant column.
    """
    observed = float(statistic(dataset.frame))
    if not np.isfinite(observed):
        raise InvalidParameterError(f"Statistic {term!r} is not finite on the observed data: {observed}")
    null = permutation_null(dataset, statistic, permute, times=times, rng=rng)
    result = hypothesis_test(observed, null, term=term)
    logger.info("Permutation test %s: observed=%.4g p=%.4g", term, observed, result.p_value)
    return result
