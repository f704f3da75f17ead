"""
Synthetic example datasets with known ground truth.

- Count data: Poisson outcome with one informative and one null predictor
- Regression data: Gaussian outcome, coefficients shrinking with feature index
- Classification data: binary outcome with a categorical segment column
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from resamplekit.config import SyntheticDataConfig
from resamplekit.data.dataset import Dataset


class SyntheticGenerator:
    """
    Generates seeded synthetic datasets.

    A single Generator is created at init, so successive calls draw
    different samples while the sequence as a whole is reproducible.
    """

    def __init__(self, cfg: SyntheticDataConfig):
        self.cfg = cfg
        self.rng = np.random.default_rng(cfg.random_seed)

    def _n(self, n_samples: int | None) -> int:
        return self.cfg.n_samples if n_samples is None else n_samples

    def count_data(self, n_samples: int | None = None) -> Dataset:
        """
        Poisson counts: log E[count] = intercept + effect * x_pos.

        x_null is drawn independently of the outcome, so its true effect is 0.

        Returns:
            Dataset with columns x_pos, x_null, count.
        """
        n = self._n(n_samples)
        x_pos = self.rng.uniform(0.0, 3.0, size=n)
        x_null = self.rng.normal(0.0, 1.0, size=n)
        mu = np.exp(self.cfg.intercept + self.cfg.effect * x_pos)
        counts = self.rng.poisson(mu)

        frame = pd.DataFrame({"x_pos": x_pos, "x_null": x_null, "count": counts})
        return Dataset(frame, name="synthetic_counts")

    def regression_data(self, n_samples: int | None = None) -> Dataset:
        """
        Linear outcome y = intercept + sum_i (effect / (i + 1)) * x_i + noise.

        Returns:
            Dataset with columns x0..x{p-1} and y.
        """
        n = self._n(n_samples)
        p = self.cfg.n_features
        X = self.rng.normal(0.0, 1.0, size=(n, p))
        coefs = self.cfg.effect / (np.arange(p) + 1.0)
        y = self.cfg.intercept + X @ coefs + self.rng.normal(0.0, self.cfg.noise_sd, size=n)

        frame = pd.DataFrame(X, columns=[f"x{i}" for i in range(p)])
        frame["y"] = y
        return Dataset(frame, name="synthetic_regression")

    def classification_data(self, n_samples: int | None = None) -> Dataset:
        """
        Binary outcome from a logistic model on x0 and x1, with the intercept
        set so that the event rate is close to `class_balance`.

        Returns:
            Dataset with columns x0..x{p-1}, segment (categorical) and y.
        """
        n = self._n(n_samples)
        p = max(self.cfg.n_features, 2)
        X = self.rng.normal(0.0, 1.0, size=(n, p))
        base = np.log(self.cfg.class_balance / (1.0 - self.cfg.class_balance))
        logits = base + self.cfg.effect * X[:, 0] - 0.5 * self.cfg.effect * X[:, 1]
        y = self.rng.binomial(1, 1.0 / (1.0 + np.exp(-logits)))

        frame = pd.DataFrame(X, columns=[f"x{i}" for i in range(p)])
        frame["segment"] = pd.Categorical(self.rng.choice(["a", "b", "c"], size=n))
        frame["y"] = y
        return Dataset(frame, name="synthetic_classification")
