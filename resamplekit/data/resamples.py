"""
Resample and resample-set contracts.

A Resample stores positional indices into its source Dataset rather than
copies of the rows. The analysis set is what a model is fitted on; the
assessment set is the held-out complement (out-of-bag rows for bootstraps,
the held-out fold for cross-validation).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

import numpy as np
import pandas as pd

from resamplekit.data.dataset import Dataset
from resamplekit.errors import InvalidParameterError

RESAMPLE_KINDS = ("bootstrap", "vfold", "validation", "split", "apparent")


@dataclass
class Resample:
    """A single resample of a dataset.

    Attributes:
        resample_id: Human-readable id like "Bootstrap0042" or "Repeat1/Fold03".
        index: Position of this resample within its ResampleSet.
        kind: One of RESAMPLE_KINDS.
        analysis_indices: Row positions used for fitting (may repeat).
        assessment_indices: Row positions held out from fitting.
        dataset: Source dataset (shared, never copied).
        fold_id: Fold number for cross-validation resamples.
        repeat_id: Repeat number for repeated cross-validation.
    """

    resample_id: str
    index: int
    kind: str
    analysis_indices: np.ndarray
    assessment_indices: np.ndarray
    dataset: Dataset = field(repr=False)
    fold_id: Optional[int] = None
    repeat_id: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate index integrity after initialization."""
        if self.kind not in RESAMPLE_KINDS:
            raise InvalidParameterError(
                f"kind must be one of {RESAMPLE_KINDS}, got {self.kind!r}"
            )

        self.analysis_indices = np.asarray(self.analysis_indices, dtype=np.int64)
        self.assessment_indices = np.asarray(self.assessment_indices, dtype=np.int64)

        if len(self.analysis_indices) == 0:
            raise InvalidParameterError(f"{self.resample_id}: analysis set is empty")

        n = len(self.dataset)
        for arr, name in [(self.analysis_indices, "analysis"),
                          (self.assessment_indices, "assessment")]:
            if len(arr) and (arr.min() < 0 or arr.max() >= n):
                raise InvalidParameterError(
                    f"{self.resample_id}: {name} indices out of range [0, {n})"
                )

    @property
    def n_analysis(self) -> int:
        """Number of analysis rows (counting repeats)."""
        return len(self.analysis_indices)

    @property
    def n_assessment(self) -> int:
        """Number of assessment rows."""
        return len(self.assessment_indices)

    @property
    def n_distinct(self) -> int:
        """Number of distinct source rows in the analysis set."""
        return len(np.unique(self.analysis_indices))

    def analysis(self) -> pd.DataFrame:
        """Materialise the analysis rows."""
        return self.dataset.rows(self.analysis_indices)

    def assessment(self) -> pd.DataFrame:
        """Materialise the assessment rows."""
        return self.dataset.rows(self.assessment_indices)

    def is_degenerate(self) -> bool:
        """True when the resample has no held-out rows to assess on."""
        return self.n_assessment == 0


class ResampleSet:
    """Ordered collection of resamples produced by a single resampling call.

    Iteration order is the generation order, which is what keeps
    replicate results reproducible under a fixed seed.
    """

    def __init__(
        self,
        resamples: List[Resample],
        method: str,
        params: Dict[str, Any] | None = None,
    ) -> None:
        if not resamples:
            raise InvalidParameterError("A ResampleSet needs at least one resample")
        ids = [r.resample_id for r in resamples]
        if len(set(ids)) != len(ids):
            raise InvalidParameterError("Resample ids must be unique")

        self._resamples = list(resamples)
        self.method = method
        self.params = dict(params or {})

    def __len__(self) -> int:
        """Number of resamples."""
        return len(self._resamples)

    def __iter__(self) -> Iterator[Resample]:
        """Iterate over resamples in generation order."""
        return iter(self._resamples)

    def __getitem__(self, i: int) -> Resample:
        return self._resamples[i]

    def __repr__(self) -> str:
        return f"ResampleSet(method={self.method!r}, n={len(self)})"

    @property
    def dataset(self) -> Dataset:
        """Source dataset shared by all resamples."""
        return self._resamples[0].dataset

    @property
    def ids(self) -> List[str]:
        return [r.resample_id for r in self._resamples]

    def get(self, resample_id: str) -> Resample:
        """Get a resample by id.

        Raises:
            KeyError: If no resample has this id.
        """
        for rep in self._resamples:
            if rep.resample_id == resample_id:
                return rep
        raise KeyError(f"No resample found with id {resample_id!r}")

    @property
    def apparent(self) -> Optional[Resample]:
        """The apparent resample (whole dataset), if one was requested."""
        for rep in self._resamples:
            if rep.kind == "apparent":
                return rep
        return None

    def without_apparent(self) -> ResampleSet:
        """Return a set excluding the apparent resample."""
        kept = [r for r in self._resamples if r.kind != "apparent"]
        return ResampleSet(kept, self.method, self.params)

    def describe(self) -> dict:
        """Return summary information about the resample set."""
        return {
            "method": self.method,
            "n_resamples": len(self),
            "n_rows": len(self.dataset),
            "mean_analysis": float(np.mean([r.n_analysis for r in self._resamples])),
            "mean_assessment": float(np.mean([r.n_assessment for r in self._resamples])),
            **self.params,
        }

    def to_frame(self) -> pd.DataFrame:
        """One row per resample with its id, kind and set sizes."""
        return pd.DataFrame({
            "resample_id": self.ids,
            "kind": [r.kind for r in self._resamples],
            "fold_id": [r.fold_id for r in self._resamples],
            "repeat_id": [r.repeat_id for r in self._resamples],
            "n_analysis": [r.n_analysis for r in self._resamples],
            "n_assessment": [r.n_assessment for r in self._resamples],
        })
