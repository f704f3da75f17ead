"""
Minimal design-matrix extraction for non-formula estimators.

Selects an outcome column and numeric predictor columns and converts them
to numpy arrays. Encoding of categorical predictors is left to the caller.
"""

from __future__ import annotations

from typing import List, Tuple

import numpy as np
import pandas as pd

from resamplekit.errors import InvalidParameterError


class DesignMatrix:
    """Converts a DataFrame to (X, y) arrays."""

    def __init__(self, outcome: str, predictors: List[str] | None = None):
        """Initialize design.

        Args:
            outcome: Outcome column name.
            predictors: Predictor column names.
                If None, uses all columns except the outcome.
        """
        self.outcome = outcome
        self.predictors = predictors
        self._fitted_cols: List[str] | None = None

    def fit(self, df: pd.DataFrame) -> "DesignMatrix":
        """Resolve and validate predictor columns.

        Args:
            df: Input dataframe.

        Returns:
            Self for chaining.
        """
        cols = self.predictors if self.predictors is not None else [
            c for c in df.columns if c != self.outcome
        ]
        missing = [c for c in [self.outcome, *cols] if c not in df.columns]
        if missing:
            raise InvalidParameterError(f"Columns {missing} not found")

        non_numeric = [c for c in cols if not pd.api.types.is_numeric_dtype(df[c])]
        if non_numeric:
            raise InvalidParameterError(
                f"Predictors must be numeric; encode {non_numeric} before fitting"
            )

        self._fitted_cols = list(cols)
        return self

    def transform(self, df: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
        """Transform dataframe to (X, y) arrays.

        Args:
            df: Input dataframe.

        Returns:
            Tuple of predictor matrix (n, p) and outcome vector (n,).
        """
        if self._fitted_cols is None:
            raise RuntimeError("Design not fitted. Call fit() first.")

        X = df[self._fitted_cols].to_numpy(dtype=np.float64)
        y = df[self.outcome].to_numpy()
        return X, y

    def fit_transform(self, df: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
        """Fit and transform in one step."""
        return self.fit(df).transform(df)

    @property
    def feature_names(self) -> List[str]:
        """Get fitted predictor column names."""
        if self._fitted_cols is None:
            raise RuntimeError("Design not fitted.")
        return self._fitted_cols
