"""
XGBoost model wrapper for tuning scenarios.

Fits xgboost's scikit-learn estimators for regression or binary
classification, with early stopping on a validation split carved out of
the analysis rows when there are enough of them.
"""

from __future__ import annotations

import numpy as np
import xgboost as xgb
from sklearn.model_selection import train_test_split

from resamplekit.config import XGBoostConfig
from resamplekit.errors import FitError

# Analysis sets at or below this size are fitted without early stopping
MIN_ROWS_FOR_EARLY_STOPPING = 50


class XGBoostModel:
    """XGBoost regressor/classifier wrapper.

    The early-stopping split is a separate resampling stage inside one
    replicate's fit; it does not interact with the outer resamples.
    """

    def __init__(self, cfg: XGBoostConfig) -> None:
        self.cfg = cfg
        self._model: xgb.XGBRegressor | xgb.XGBClassifier | None = None

    @property
    def is_classifier(self) -> bool:
        return self.cfg.objective == "classification"

    def _build(self, early_stopping: bool) -> xgb.XGBRegressor | xgb.XGBClassifier:
        cfg = self.cfg
        params = {
            "n_estimators": cfg.n_estimators,
            "max_depth": cfg.max_depth,
            "learning_rate": cfg.learning_rate,
            "subsample": cfg.subsample,
            "colsample_bytree": cfg.colsample_bytree,
            "min_child_weight": cfg.min_child_weight,
            "random_state": cfg.random_seed,
            "early_stopping_rounds": cfg.early_stopping_rounds if early_stopping else None,
            "n_jobs": 1,
        }
        if self.is_classifier:
            return xgb.XGBClassifier(objective="binary:logistic", eval_metric="logloss", **params)
        return xgb.XGBRegressor(objective="reg:squarederror", eval_metric="rmse", **params)

    def fit(self, X: np.ndarray, y: np.ndarray) -> None:
        """Train on the analysis rows.

        Args:
            X: Predictor matrix (n_samples, n_features).
            y: Outcome; 0/1 labels for classification.

        Raises:
            FitError: If a classification outcome has a single class.
        """
        if self.is_classifier and len(np.unique(y)) < 2:
            raise FitError("Classification outcome has a single class in this analysis set")

        early_stopping = len(X) > MIN_ROWS_FOR_EARLY_STOPPING and self.cfg.validation_fraction > 0
        self._model = self._build(early_stopping)

        if not early_stopping:
            self._model.fit(X, y)
            return

        X_fit, X_stop, y_fit, y_stop = train_test_split(
            X,
            y,
            test_size=self.cfg.validation_fraction,
            random_state=self.cfg.random_seed,
            stratify=y if self.is_classifier else None,
        )
        self._model.fit(X_fit, y_fit, eval_set=[(X_stop, y_stop)], verbose=False)

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Predicted values, or P(y=1) for classification."""
        if self._model is None:
            raise RuntimeError("Model has not been fitted. Call fit() first.")
        if self.is_classifier:
            return self._model.predict_proba(X)[:, 1]
        return self._model.predict(X)
