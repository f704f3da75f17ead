"""
End-to-end resampled inference: resample, fit each replicate, aggregate.

This runner:
- Builds resamples from the workflow's ResamplingConfig
- Fits every replicate, recording failures instead of aborting
- Aggregates successful replicates into an interval report
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

import pandas as pd

from resamplekit.config import WorkflowConfig
from resamplekit.data.dataset import Dataset
from resamplekit.data.resamples import ResampleSet
from resamplekit.data.splitters import RandomState, resample_from_config
from resamplekit.evaluation.intervals import summarize_replicates
from resamplekit.fitting.fitter import FitFunction, fit_resamples
from resamplekit.fitting.results import FitBatch

logger = logging.getLogger(__name__)


@dataclass
class BootstrapInference:
    """Everything produced by one inference run.

    Replicate results are kept so callers can inspect or plot the
    replicate distribution; drop `batch` once the summary is all you need.
    """

    resamples: ResampleSet
    batch: FitBatch
    summary: pd.DataFrame

    def interval(self, term: str) -> tuple[float, float]:
        """(lower, upper) bounds for one term."""
        row = self.summary.loc[self.summary["term"] == term]
        if row.empty:
            raise KeyError(f"No summary for term {term!r}")
        return float(row["lower"].iloc[0]), float(row["upper"].iloc[0])


def run_bootstrap_inference(
    dataset: Dataset,
    fit_fn: FitFunction,
    config: Optional[WorkflowConfig] = None,
    rng: RandomState = None,
    cancel_event: Optional[threading.Event] = None,
) -> BootstrapInference:
    """Run resampled inference for a model on a dataset.

    Args:
        dataset: Source dataset.
        fit_fn: Fit function mapping a resample to estimates.
        config: Workflow configuration. Defaults to 1000 bootstraps and
            95% percentile intervals.
        rng: Generator or seed. If None, uses the resampling config's seed.
        cancel_event: When set, fitting stops and the partial batch is
            aggregated.

    Returns:
        BootstrapInference with resamples, replicate results and summary.
    """
    cfg = config or WorkflowConfig()

    resamples = resample_from_config(dataset, cfg.resampling, rng=rng)
    batch = fit_resamples(
        resamples,
        fit_fn,
        n_jobs=cfg.fitting.n_jobs,
        timeout=cfg.fitting.timeout,
        keep_models=cfg.fitting.keep_models,
        show_progress=cfg.fitting.show_progress,
        cancel_event=cancel_event,
    )
    summary = summarize_replicates(batch, cfg.intervals)

    logger.info(
        "Inference on %s: %d replicates ok, %d failed, %d terms",
        dataset.name, batch.n_ok, batch.n_failed, len(summary),
    )
    return BootstrapInference(resamples=resamples, batch=batch, summary=summary)
