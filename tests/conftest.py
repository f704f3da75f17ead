"""Shared fixtures for the resamplekit test suite."""

import numpy as np
import pandas as pd
import pytest

from resamplekit.config import SyntheticDataConfig
from resamplekit.data.dataset import Dataset
from resamplekit.io.synthetic_generator import SyntheticGenerator

# Monotone counts over 17 evenly spaced x_pos values; every row appears once
# with x_null=0 and once with x_null=1, so the fitted x_null effect is exactly 0.
COUNTS = [1, 2, 2, 3, 2, 3, 4, 4, 5, 6, 5, 7, 8, 9, 10, 11, 13]


@pytest.fixture
def count_dataset():
    """34-row Poisson example with a known null predictor."""
    x_pos = np.linspace(0.0, 3.0, len(COUNTS))
    frame = pd.DataFrame({
        "x_pos": np.concatenate([x_pos, x_pos]),
        "x_null": np.repeat([0.0, 1.0], len(COUNTS)),
        "count": COUNTS + COUNTS,
    })
    return Dataset(frame, name="counts")


@pytest.fixture
def small_dataset():
    """20 rows with a numeric outcome and a two-level group column."""
    rng = np.random.default_rng(0)
    frame = pd.DataFrame({
        "x": np.arange(20, dtype=float),
        "y": np.arange(20, dtype=float) * 2.0 + rng.normal(0, 0.1, 20),
        "group": ["a"] * 14 + ["b"] * 6,
    })
    return Dataset(frame, name="small")


@pytest.fixture
def generator():
    return SyntheticGenerator(SyntheticDataConfig(random_seed=7, n_samples=200))


@pytest.fixture
def regression_dataset(generator):
    return generator.regression_data(n_samples=120)


@pytest.fixture
def classification_dataset(generator):
    return generator.classification_data(n_samples=300)
