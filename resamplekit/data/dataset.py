"""
Read-only tabular dataset shared by every resample of an analysis.

A Dataset wraps a pandas DataFrame that is copied once at construction and
never mutated afterwards. Resamples hold positional indices into it and
materialise rows on demand through `rows()`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

import numpy as np
import pandas as pd

from resamplekit.errors import InvalidParameterError

logger = logging.getLogger(__name__)


class Dataset:
    """Ordered, immutable collection of rows with named typed columns."""

    def __init__(self, frame: pd.DataFrame, name: str = "dataset") -> None:
        if frame.columns.duplicated().any():
            dupes = sorted(set(frame.columns[frame.columns.duplicated()]))
            raise InvalidParameterError(f"Duplicate column names: {dupes}")
        if len(frame) == 0:
            raise InvalidParameterError("Dataset must contain at least one row")

        self.name = name
        # Positional indexing only; the original index is kept as a column
        # when it carries information.
        self._frame = frame.reset_index(drop=True).copy()

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, name: str = "dataset") -> Dataset:
        """Build a dataset from an in-memory frame (copied)."""
        return cls(frame, name=name)

    @property
    def frame(self) -> pd.DataFrame:
        """The underlying frame. Callers must treat it as read-only."""
        return self._frame

    @property
    def columns(self) -> List[str]:
        return list(self._frame.columns)

    @property
    def n_rows(self) -> int:
        return len(self._frame)

    def __len__(self) -> int:
        return len(self._frame)

    def __repr__(self) -> str:
        return f"Dataset(name={self.name!r}, n_rows={self.n_rows}, n_cols={len(self.columns)})"

    def column(self, name: str) -> pd.Series:
        """Return a single column, validating that it exists."""
        self.require_columns([name])
        return self._frame[name]

    def require_columns(self, names: Sequence[str]) -> None:
        """Raise InvalidParameterError if any of `names` is missing."""
        missing = [c for c in names if c not in self._frame.columns]
        if missing:
            raise InvalidParameterError(
                f"Columns {missing} not found in {self.name!r}; available: {self.columns}"
            )

    def rows(self, indices: np.ndarray | Sequence[int]) -> pd.DataFrame:
        """Return rows at positional `indices` as a new frame.

        Duplicated indices (bootstrap draws) yield duplicated rows, in the
        order given. The returned frame has a fresh RangeIndex.
        """
        idx = np.asarray(indices, dtype=np.int64)
        return self._frame.take(idx).reset_index(drop=True)

    def partition(self, key: str) -> Dict[object, np.ndarray]:
        """Group row positions by the values of column `key`.

        Returns:
            Mapping of group value to positional indices, in order of first
            appearance of each group.

        Raises:
            InvalidParameterError: If `key` is missing or has missing values.
        """
        self.require_columns([key])
        n_missing = int(self._frame[key].isna().sum())
        if n_missing:
            raise InvalidParameterError(f"Grouping column '{key}' has {n_missing} missing values")
        groups = self._frame.groupby(key, sort=False, observed=True).indices
        return {k: np.asarray(v, dtype=np.int64) for k, v in groups.items()}

    def subset(self, indices: np.ndarray | Sequence[int], name: str | None = None) -> Dataset:
        """Create a new Dataset from the rows at `indices`.

        Used to run an inner resampling stage on an outer analysis set.
        """
        return Dataset(self.rows(indices), name=name or f"{self.name}[subset]")

    def get_summary(self) -> dict:
        """Return summary information about the dataset."""
        return {
            "name": self.name,
            "n_rows": self.n_rows,
            "n_columns": len(self.columns),
            "dtypes": {c: str(t) for c, t in self._frame.dtypes.items()},
        }


def load_dataset(
    path: Path | str,
    dtypes: Mapping[str, str] | None = None,
    parse_dates: Sequence[str] | None = None,
    name: str | None = None,
) -> Dataset:
    """Load a CSV file into a Dataset.

    Args:
        path: Path to the CSV file.
        dtypes: Optional column -> dtype mapping (e.g. {"species": "category"}).
        parse_dates: Columns to parse as dates.
        name: Dataset name. Defaults to the file stem.

    Returns:
        Dataset with the file contents.

    Raises:
        FileNotFoundError: If the file does not exist.
        InvalidParameterError: If a requested dtype or date column is missing.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Required file not found: {path}")

    frame = pd.read_csv(path)

    requested = list(dtypes or {}) + list(parse_dates or [])
    missing = [c for c in requested if c not in frame.columns]
    if missing:
        raise InvalidParameterError(f"Columns {missing} not found in {path}")

    if dtypes:
        frame = frame.astype(dict(dtypes))
    for col in parse_dates or []:
        frame[col] = pd.to_datetime(frame[col])

    logger.info("Loaded %s: %d rows, %d columns", path, len(frame), frame.shape[1])
    return Dataset(frame, name=name or path.stem)
