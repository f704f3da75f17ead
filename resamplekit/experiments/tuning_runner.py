"""
Hyperparameter tuning over resamples.

This runner:
- Builds resamples from the workflow's ResamplingConfig (usually v-fold)
- Races candidates with repeated-measures ANOVA, or evaluates the full grid
- Selects the best surviving candidate
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from resamplekit.config import WorkflowConfig
from resamplekit.data.dataset import Dataset
from resamplekit.data.resamples import ResampleSet
from resamplekit.data.splitters import RandomState, resample_from_config
from resamplekit.evaluation.racing import (
    Candidate,
    CandidateFunction,
    TuneResult,
    tune_grid,
    tune_race_anova,
)

logger = logging.getLogger(__name__)


@dataclass
class TuningRun:
    """Resamples, per-candidate results and the selected candidate."""

    resamples: ResampleSet
    result: TuneResult
    best: Candidate


def run_tuning(
    dataset: Dataset,
    candidates: Sequence[Mapping[str, Any]],
    fit_fn: CandidateFunction,
    config: Optional[WorkflowConfig] = None,
    race: bool = True,
    metric: Optional[str] = None,
    rng: RandomState = None,
) -> TuningRun:
    """Tune hyperparameters on resamples of `dataset`.

    Args:
        dataset: Source dataset.
        candidates: Hyperparameter mappings (see grid_regular / grid_random).
        fit_fn: fit_fn(resample, params) returning a metric or metric mapping.
        config: Workflow configuration; `resampling` and `racing` are used.
        race: Race with ANOVA elimination (True) or evaluate the full grid.
        metric: Metric name when fit_fn returns a mapping.
        rng: Generator or seed. If None, uses the resampling config's seed.

    Returns:
        TuningRun with the selected candidate.
    """
    cfg = config or WorkflowConfig()
    resamples = resample_from_config(dataset, cfg.resampling, rng=rng)

    if race:
        result = tune_race_anova(resamples, candidates, fit_fn, config=cfg.racing, metric=metric)
    else:
        result = tune_grid(
            resamples,
            candidates,
            fit_fn,
            maximize=cfg.racing.maximize,
            metric=metric,
            show_progress=cfg.racing.show_progress,
        )

    best = result.select_best()
    logger.info("Selected %s %s (%d of %d candidates active)",
                best.candidate_id, best.params, len(result.active), len(result.candidates))
    return TuningRun(resamples=resamples, result=result, best=best)
