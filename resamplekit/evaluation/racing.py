"""
Hyperparameter grid evaluation and ANOVA racing.

Racing evaluates every active candidate on one resample per round. After
`burn_in` rounds it fits a repeated-measures ANOVA after each round:

    metric ~ candidate + (1 | resample)

The model compares each active candidate with the current best. A
candidate whose one-sided (1 - alpha) interval for "worse than best"
excludes zero is eliminated. Candidates move only from active to
eliminated. The race ends when resamples run out or one candidate is left.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats
from sklearn.model_selection import ParameterGrid, ParameterSampler
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from tqdm import tqdm

from resamplekit.config import RacingConfig
from resamplekit.data.resamples import Resample, ResampleSet
from resamplekit.data.splitters import RandomState, as_generator
from resamplekit.errors import InvalidParameterError
from resamplekit.evaluation.metrics import metric_direction

logger = logging.getLogger(__name__)

CandidateFunction = Callable[[Resample, Dict[str, Any]], Any]


class CandidateStatus(str, Enum):
    """Racing state of a candidate."""

    ACTIVE = "active"
    ELIMINATED = "eliminated"


@dataclass
class Candidate:
    """A hyperparameter combination and its racing state."""

    candidate_id: str
    params: Dict[str, Any]
    status: CandidateStatus = CandidateStatus.ACTIVE
    eliminated_at: Optional[int] = None  # Round in which it was eliminated


def grid_regular(param_grid: Mapping[str, Sequence[Any]]) -> List[Dict[str, Any]]:
    """All combinations of the given parameter values."""
    return [dict(p) for p in ParameterGrid(dict(param_grid))]


def grid_random(
    param_distributions: Mapping[str, Any],
    size: int,
    rng: RandomState = None,
) -> List[Dict[str, Any]]:
    """`size` random combinations (lists are sampled uniformly, scipy
    distributions through their rvs method)."""
    gen = as_generator(rng)
    sampler = ParameterSampler(
        dict(param_distributions), n_iter=size, random_state=int(gen.integers(0, 2**31 - 1))
    )
    return [dict(p) for p in sampler]


def _make_candidates(params_list: Sequence[Mapping[str, Any]]) -> List[Candidate]:
    if len(params_list) == 0:
        raise InvalidParameterError("At least one candidate is required")
    width = max(len(str(len(params_list))), 2)
    return [
        Candidate(candidate_id=f"Candidate{i + 1:0{width}d}", params=dict(p))
        for i, p in enumerate(params_list)
    ]


def _score(
    fit_fn: CandidateFunction,
    resample: Resample,
    candidate: Candidate,
    metric: Optional[str],
) -> float:
    """Evaluate one candidate on one resample; failures score NaN."""
    try:
        out = fit_fn(resample, candidate.params)
    except InvalidParameterError:
        raise
    except Exception as exc:
        logger.warning(
            "%s failed on %s: %s: %s",
            candidate.candidate_id, resample.resample_id, type(exc).__name__, exc,
        )
        return np.nan

    if isinstance(out, Mapping):
        if metric is None:
            if len(out) != 1:
                raise InvalidParameterError(
                    f"Fit function returned metrics {list(out)}; pass `metric` to choose one"
                )
            return float(next(iter(out.values())))
        if metric not in out:
            raise InvalidParameterError(f"Metric {metric!r} not in fit output {list(out)}")
        return float(out[metric])
    return float(out)


def _fit_anova(
    y: np.ndarray,
    X: np.ndarray,
    groups: np.ndarray,
    model: str,
    alpha: float,
) -> Tuple[np.ndarray, np.ndarray, float]:
    """Differences from the reference candidate, their SEs, and the critical value.

    X holds an intercept followed by one indicator column per non-reference
    candidate.
    """
    k = X.shape[1]
    if model == "mixed":
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", ConvergenceWarning)
                warnings.simplefilter("ignore", RuntimeWarning)
                result = sm.MixedLM(y, X, groups=groups).fit(reml=True)
            diffs = np.asarray(result.fe_params)[1:k]
            ses = np.asarray(result.bse_fe)[1:k]
            if np.all(np.isfinite(diffs)) and np.all(np.isfinite(ses)):
                return diffs, ses, float(stats.norm.ppf(1 - alpha))
            logger.warning("Mixed model gave non-finite estimates; using block ANOVA")
        except (np.linalg.LinAlgError, ValueError) as exc:
            logger.warning("Mixed model failed (%s); using block ANOVA", exc)

    # Randomized block design: resample as a blocking factor
    block_ids = pd.factorize(groups)[0]
    blocks = np.eye(block_ids.max() + 1)[block_ids][:, 1:]
    result = sm.OLS(y, np.column_stack([X, blocks])).fit()
    if result.df_resid <= 0:
        return np.full(k - 1, np.nan), np.full(k - 1, np.nan), np.nan
    diffs = np.asarray(result.params)[1:k]
    ses = np.asarray(result.bse)[1:k]
    return diffs, ses, float(stats.t.ppf(1 - alpha, result.df_resid))


def anova_eliminate(
    metrics: pd.DataFrame,
    active_ids: Sequence[str],
    alpha: float = 0.05,
    maximize: bool = False,
    model: str = "mixed",
) -> List[str]:
    """Active candidates that are significantly worse than the current best.

    Args:
        metrics: Long frame with candidate_id, resample_id, metric.
        active_ids: Currently active candidate ids, in candidate order.
        alpha: One-sided significance level.
        maximize: Whether larger metric values are better.
        model: "mixed" (random resample intercept) or "block".

    Returns:
        Ids to eliminate. Candidates without any finite metric are
        included; the current best never is.
    """
    data = metrics[metrics["candidate_id"].isin(active_ids)].dropna(subset=["metric"])
    loss = data["metric"].to_numpy(dtype=float) * (-1.0 if maximize else 1.0)
    means = pd.Series(loss, index=data["candidate_id"].to_numpy()).groupby(level=0).mean()
    if means.empty:
        return []
    means = means.reindex([c for c in active_ids if c in means.index])

    never_scored = [c for c in active_ids if c not in means.index]
    best = means.idxmin()
    others = [c for c in means.index if c != best]
    if not others:
        return never_scored

    ids = data["candidate_id"].to_numpy()
    X = np.column_stack([np.ones(len(ids))] + [(ids == c).astype(float) for c in others])
    diffs, ses, crit = _fit_anova(loss, X, data["resample_id"].to_numpy(), model, alpha)

    worse = [
        c for c, d, se in zip(others, diffs, ses)
        if np.isfinite(se) and se > 0 and d - crit * se > 0
    ]
    return never_scored + worse


class TuneResult:
    """Per-resample candidate metrics with the racing state of each candidate."""

    def __init__(
        self,
        candidates: List[Candidate],
        metrics: pd.DataFrame,
        maximize: bool,
        history: List[Dict[str, Any]] | None = None,
    ) -> None:
        self.candidates = candidates
        self.metrics = metrics
        self.maximize = maximize
        self.history = history or []

    @property
    def active(self) -> List[Candidate]:
        return [c for c in self.candidates if c.status == CandidateStatus.ACTIVE]

    @property
    def active_counts(self) -> List[int]:
        """Number of active candidates after each round."""
        return [h["n_active"] for h in self.history]

    def summary(self) -> pd.DataFrame:
        """One row per candidate: parameters, mean metric, SE, count, status."""
        grouped = self.metrics.dropna(subset=["metric"]).groupby("candidate_id")["metric"]
        stats_ = grouped.agg(["mean", "std", "count"])

        rows = []
        for c in self.candidates:
            mean = stats_["mean"].get(c.candidate_id, np.nan)
            std = stats_["std"].get(c.candidate_id, np.nan)
            n = int(stats_["count"].get(c.candidate_id, 0))
            rows.append({
                "candidate_id": c.candidate_id,
                **c.params,
                "mean": mean,
                "std_error": std / np.sqrt(n) if n > 1 else np.nan,
                "n": n,
                "status": c.status.value,
                "eliminated_at": c.eliminated_at,
            })
        return pd.DataFrame(rows)

    def show_best(self, n: int = 5) -> pd.DataFrame:
        """Top `n` active candidates by mean metric."""
        summary = self.summary()
        summary = summary[summary["status"] == CandidateStatus.ACTIVE.value]
        return summary.sort_values(
            "mean", ascending=not self.maximize, kind="stable"
        ).head(n).reset_index(drop=True)

    def select_best(self) -> Candidate:
        """Active candidate with the best mean metric.

        Lower mean wins (higher when maximising). Ties go to the earlier
        candidate.
        """
        best = self.show_best(n=1)
        if best.empty:
            raise InvalidParameterError("No active candidate has a finite metric")
        best_id = best.loc[0, "candidate_id"]
        return next(c for c in self.candidates if c.candidate_id == best_id)


def tune_grid(
    resamples: ResampleSet,
    candidates: Sequence[Mapping[str, Any]],
    fit_fn: CandidateFunction,
    maximize: Optional[bool] = None,
    metric: Optional[str] = None,
    show_progress: bool = False,
) -> TuneResult:
    """Evaluate every candidate on every resample.

    Args:
        resamples: Resamples (usually v-fold).
        candidates: Hyperparameter mappings.
        fit_fn: fit_fn(resample, params) returning a metric or metric mapping.
        maximize: Whether larger metric values are better. None follows
            the direction of a known `metric` name and otherwise minimises.
        metric: Name of the metric to use when fit_fn returns a mapping.
        show_progress: Whether to show a progress bar.

    Returns:
        TuneResult with all candidates active.
    """
    maximize = metric_direction(metric, maximize)
    cands = _make_candidates(candidates)
    iterator = tqdm(resamples, desc="Tuning grid") if show_progress else resamples

    records = []
    for rep in iterator:
        for cand in cands:
            records.append({
                "candidate_id": cand.candidate_id,
                "resample_id": rep.resample_id,
                "round": rep.index + 1,
                "metric": _score(fit_fn, rep, cand, metric),
            })

    logger.info("Evaluated %d candidates on %d resamples", len(cands), len(resamples))
    return TuneResult(cands, pd.DataFrame(records), maximize=maximize)


def tune_race_anova(
    resamples: ResampleSet,
    candidates: Sequence[Mapping[str, Any]],
    fit_fn: CandidateFunction,
    config: RacingConfig | None = None,
    metric: Optional[str] = None,
) -> TuneResult:
    """Race candidates across resamples, dropping those significantly worse.

    Args:
        resamples: Resamples (usually v-fold); one is consumed per round.
        candidates: Hyperparameter mappings.
        fit_fn: fit_fn(resample, params) returning a metric or metric mapping.
        config: Racing configuration (alpha, burn_in, model, maximize). An
            unset `maximize` follows the direction of a known `metric` name.
        metric: Name of the metric to use when fit_fn returns a mapping.

    Returns:
        TuneResult with final candidate states and per-round history.

    Raises:
        InvalidParameterError: If burn_in exceeds the number of resamples.
    """
    cfg = config or RacingConfig()
    if cfg.burn_in > len(resamples):
        raise InvalidParameterError(
            f"burn_in={cfg.burn_in} exceeds the number of resamples ({len(resamples)})"
        )
    maximize = metric_direction(metric, cfg.maximize)

    cands = _make_candidates(candidates)
    iterator = tqdm(resamples, desc="Racing") if cfg.show_progress else resamples

    records: List[Dict[str, Any]] = []
    history: List[Dict[str, Any]] = []
    for round_no, rep in enumerate(iterator, start=1):
        active = [c for c in cands if c.status == CandidateStatus.ACTIVE]
        for cand in active:
            records.append({
                "candidate_id": cand.candidate_id,
                "resample_id": rep.resample_id,
                "round": round_no,
                "metric": _score(fit_fn, rep, cand, metric),
            })

        eliminated: List[str] = []
        if round_no >= cfg.burn_in and len(active) > 1:
            eliminated = anova_eliminate(
                pd.DataFrame(records),
                [c.candidate_id for c in active],
                alpha=cfg.alpha,
                maximize=maximize,
                model=cfg.model,
            )
            for cand in active:
                if cand.candidate_id in eliminated:
                    cand.status = CandidateStatus.ELIMINATED
                    cand.eliminated_at = round_no

        n_active = len(active) - len(eliminated)
        history.append({
            "round": round_no,
            "resample_id": rep.resample_id,
            "n_active": n_active,
            "eliminated": eliminated,
        })
        logger.info("Round %d (%s): %d active, eliminated %s", round_no, rep.resample_id, n_active, eliminated)

        if n_active <= 1:
            logger.info("Race finished after %d of %d resamples", round_no, len(resamples))
            break

    return TuneResult(cands, pd.DataFrame(records), maximize=maximize, history=history)
