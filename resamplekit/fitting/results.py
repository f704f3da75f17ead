"""
Replicate result contracts.

A fit function maps one Resample to named estimates. Whatever it returns
(ReplicateFit, tidy frame, mapping or scalar) is normalised here into a
tidy frame with columns term / estimate / std_error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional

import numpy as np
import pandas as pd

from resamplekit.errors import InvalidParameterError

ESTIMATE_COLUMNS = ["term", "estimate", "std_error"]


class FitStatus(str, Enum):
    """Outcome of a single replicate fit."""

    OK = "ok"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass
class ReplicateFit:
    """Structured output a fit function may return.

    Attributes:
        estimates: Tidy frame (term, estimate[, std_error]) or a mapping of
            term to value.
        diagnostics: Fit diagnostics such as log-likelihood, AIC, residuals.
        model: The fitted model object, retained only when requested.
    """

    estimates: pd.DataFrame | Mapping[str, float]
    diagnostics: Dict[str, Any] = field(default_factory=dict)
    model: Any = None


def tidy_estimates(estimates: Any) -> pd.DataFrame:
    """Normalise fit-function output into a term/estimate/std_error frame.

    Raises:
        InvalidParameterError: If the output has an unsupported shape.
    """
    if isinstance(estimates, pd.DataFrame):
        if not {"term", "estimate"}.issubset(estimates.columns):
            raise InvalidParameterError(
                f"Estimate frame needs 'term' and 'estimate' columns, got {list(estimates.columns)}"
            )
        out = estimates.copy()
        if "std_error" not in out.columns:
            out["std_error"] = np.nan
        out["term"] = out["term"].astype(str)
        return out[ESTIMATE_COLUMNS + [c for c in out.columns if c not in ESTIMATE_COLUMNS]]

    if isinstance(estimates, Mapping):
        return pd.DataFrame({
            "term": [str(k) for k in estimates],
            "estimate": [float(v) for v in estimates.values()],
            "std_error": np.nan,
        })

    if isinstance(estimates, (int, float, np.number)) and not isinstance(estimates, bool):
        return pd.DataFrame({"term": ["statistic"], "estimate": [float(estimates)], "std_error": [np.nan]})

    raise InvalidParameterError(
        f"Fit function must return a ReplicateFit, DataFrame, mapping or scalar; "
        f"got {type(estimates).__name__}"
    )


@dataclass
class ReplicateResult:
    """Result of fitting one resample."""

    resample_id: str
    index: int
    kind: str
    status: FitStatus
    estimates: pd.DataFrame = field(default_factory=lambda: pd.DataFrame(columns=ESTIMATE_COLUMNS))
    diagnostics: Dict[str, Any] = field(default_factory=dict)
    model: Any = None
    error: Optional[str] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == FitStatus.OK


class FitBatch:
    """Ordered replicate results for one resample set.

    Results are stored in resample order regardless of completion order.
    """

    def __init__(self, results: List[ReplicateResult], cancelled: bool = False) -> None:
        self._results = sorted(results, key=lambda r: r.index)
        self.cancelled = cancelled
        self._tidy_cache: Dict[bool, pd.DataFrame] = {}

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[ReplicateResult]:
        return iter(self._results)

    def __getitem__(self, i: int) -> ReplicateResult:
        return self._results[i]

    def __repr__(self) -> str:
        return (
            f"FitBatch(n={len(self)}, ok={self.n_ok}, failed={self.n_failed}, "
            f"cancelled={self.cancelled})"
        )

    @property
    def results(self) -> List[ReplicateResult]:
        return list(self._results)

    @property
    def successes(self) -> List[ReplicateResult]:
        """Successful non-apparent replicates."""
        return [r for r in self._results if r.ok and r.kind != "apparent"]

    @property
    def failures(self) -> List[ReplicateResult]:
        return [r for r in self._results if not r.ok]

    @property
    def n_ok(self) -> int:
        return len(self.successes)

    @property
    def n_failed(self) -> int:
        return len(self.failures)

    @property
    def apparent(self) -> Optional[ReplicateResult]:
        """The fit on the apparent resample, if it exists and succeeded."""
        for r in self._results:
            if r.kind == "apparent" and r.ok:
                return r
        return None

    def _tidy_frame(self, include_apparent: bool) -> pd.DataFrame:
        # Results are fixed after construction
        if include_apparent not in self._tidy_cache:
            frames = []
            for r in self._results:
                if not r.ok or (r.kind == "apparent" and not include_apparent):
                    continue
                frame = r.estimates.copy()
                frame.insert(0, "resample_id", r.resample_id)
                frames.append(frame)
            if frames:
                tidy = pd.concat(frames, ignore_index=True)
            else:
                tidy = pd.DataFrame(columns=["resample_id"] + ESTIMATE_COLUMNS)
            self._tidy_cache[include_apparent] = tidy
        return self._tidy_cache[include_apparent]

    def tidy(self, include_apparent: bool = False) -> pd.DataFrame:
        """Flatten successful estimates into one long frame.

        Returns:
            Frame with resample_id, term, estimate, std_error (plus any extra
            estimate columns), in resample order. The frame is a copy.
        """
        return self._tidy_frame(include_apparent).copy()

    @property
    def terms(self) -> List[str]:
        """Estimated terms, in order of first appearance."""
        return list(dict.fromkeys(self._tidy_frame(False)["term"]))

    def values(self, term: str) -> np.ndarray:
        """Replicate estimates of one term (successful replicates only)."""
        tidy = self._tidy_frame(False)
        vals = tidy.loc[tidy["term"] == term, "estimate"].to_numpy(dtype=float)
        return vals[np.isfinite(vals)]

    def failure_frame(self) -> pd.DataFrame:
        """One row per failed replicate with its status and error message."""
        return pd.DataFrame({
            "resample_id": [r.resample_id for r in self.failures],
            "status": [r.status.value for r in self.failures],
            "error": [r.error for r in self.failures],
        })
