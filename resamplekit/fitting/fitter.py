"""
Per-replicate fitting over a ResampleSet.

Replicate fits are independent: with n_jobs != 1 they run on a joblib
worker pool and each result lands in the slot of its resample position.
A fit that raises or overruns its wall-clock budget is recorded as failed
and excluded from aggregation; the batch keeps going. A cancelled batch
returns the results computed so far.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, List, Optional

import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

from resamplekit.config import FitConfig
from resamplekit.data.dataset import Dataset
from resamplekit.data.resamples import Resample, ResampleSet
from resamplekit.errors import InvalidParameterError
from resamplekit.fitting.results import (
    ESTIMATE_COLUMNS,
    FitBatch,
    FitStatus,
    ReplicateFit,
    ReplicateResult,
    tidy_estimates,
)

logger = logging.getLogger(__name__)

FitFunction = Callable[[Resample], Any]


class _BudgetExceeded(Exception):
    """A replicate fit ran past its wall-clock budget."""


def _normalise(output: Any) -> tuple[pd.DataFrame, dict, Any]:
    if isinstance(output, ReplicateFit):
        return tidy_estimates(output.estimates), dict(output.diagnostics), output.model
    return tidy_estimates(output), {}, None


def _call_with_budget(fit_fn: FitFunction, resample: Resample, timeout: float) -> Any:
    """Run `fit_fn` on a daemon thread and wait at most `timeout` seconds.

    An overrunning fit cannot be interrupted; its thread is abandoned and
    keeps running in the background until the fit returns on its own.
    """
    outcome: dict = {}

    def target() -> None:
        try:
            outcome["output"] = fit_fn(resample)
        except BaseException as exc:  # re-raised on the calling thread
            outcome["error"] = exc

    worker = threading.Thread(target=target, name=f"fit-{resample.resample_id}", daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        raise _BudgetExceeded(f"exceeded {timeout}s budget")
    if "error" in outcome:
        raise outcome["error"]
    return outcome["output"]


def _fit_one(
    resample: Resample,
    fit_fn: FitFunction,
    keep_models: bool,
    timeout: Optional[float] = None,
) -> ReplicateResult:
    """Fit one resample, converting fit exceptions and overruns into a failed result."""
    start = time.perf_counter()
    try:
        if timeout is None:
            output = fit_fn(resample)
        else:
            output = _call_with_budget(fit_fn, resample, timeout)
        estimates, diagnostics, model = _normalise(output)
    except InvalidParameterError:
        raise
    except _BudgetExceeded as exc:
        return ReplicateResult(
            resample_id=resample.resample_id,
            index=resample.index,
            kind=resample.kind,
            status=FitStatus.TIMEOUT,
            error=str(exc),
            elapsed=time.perf_counter() - start,
        )
    except Exception as exc:
        return ReplicateResult(
            resample_id=resample.resample_id,
            index=resample.index,
            kind=resample.kind,
            status=FitStatus.FAILED,
            error=f"{type(exc).__name__}: {exc}",
            elapsed=time.perf_counter() - start,
        )

    return ReplicateResult(
        resample_id=resample.resample_id,
        index=resample.index,
        kind=resample.kind,
        status=FitStatus.OK,
        estimates=estimates,
        diagnostics=diagnostics,
        model=model if keep_models else None,
        elapsed=time.perf_counter() - start,
    )


def fit_resamples(
    resamples: ResampleSet,
    fit_fn: FitFunction,
    n_jobs: int = 1,
    timeout: Optional[float] = None,
    keep_models: bool = False,
    show_progress: bool = False,
    cancel_event: Optional[threading.Event] = None,
) -> FitBatch:
    """Apply `fit_fn` to every resample.

    Args:
        resamples: Resamples to fit.
        fit_fn: Opaque fitting capability, resample in, estimates out.
        n_jobs: joblib worker count (1 = sequential, -1 = all cores).
        timeout: Wall-clock budget in seconds per replicate, counted from
            the moment that replicate starts. An overrunning replicate is
            recorded with status TIMEOUT; the others are unaffected.
        keep_models: Retain fitted model objects on the results.
        show_progress: Whether to show a progress bar.
        cancel_event: When set, stops the batch after the current replicate.

    Returns:
        FitBatch in resample order. `cancelled` is True if the batch stopped
        early; results computed before that remain valid.

    Raises:
        InvalidParameterError: If fit_fn returns output of unsupported shape,
            or timeout is not positive.
    """
    if timeout is not None and timeout <= 0:
        raise InvalidParameterError(f"timeout must be > 0, got {timeout}")

    items = list(resamples)
    slots: List[Optional[ReplicateResult]] = [None] * len(items)
    cancelled = False

    logger.info("Fitting %d resamples (n_jobs=%d)", len(items), n_jobs)

    if n_jobs == 1:
        iterator = tqdm(items, desc="Fitting replicates") if show_progress else items
        try:
            for pos, rep in enumerate(iterator):
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    break
                slots[pos] = _fit_one(rep, fit_fn, keep_models, timeout)
        except KeyboardInterrupt:
            cancelled = True
    else:
        parallel = Parallel(n_jobs=n_jobs, return_as="generator")
        outputs = parallel(delayed(_fit_one)(rep, fit_fn, keep_models, timeout) for rep in items)
        if show_progress:
            outputs = tqdm(outputs, total=len(items), desc="Fitting replicates")
        try:
            for pos, result in enumerate(outputs):
                slots[pos] = result
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    break
        except KeyboardInterrupt:
            cancelled = True

    results = [s for s in slots if s is not None]
    batch = FitBatch(results, cancelled=cancelled)

    for failure in batch.failures:
        logger.warning("Replicate %s %s: %s", failure.resample_id, failure.status.value, failure.error)
    if cancelled:
        logger.warning("Fitting stopped early: %d of %d replicates completed", len(results), len(items))
    logger.info("Fitted %d replicates: %d ok, %d failed", len(batch), batch.n_ok, batch.n_failed)

    return batch


def fit_from_config(resamples: ResampleSet, fit_fn: FitFunction, cfg: FitConfig) -> FitBatch:
    """Run `fit_resamples` with settings from a FitConfig."""
    return fit_resamples(
        resamples,
        fit_fn,
        n_jobs=cfg.n_jobs,
        timeout=cfg.timeout,
        keep_models=cfg.keep_models,
        show_progress=cfg.show_progress,
    )


def _fit_group(key: Any, frame: pd.DataFrame, fit_fn: Callable[[pd.DataFrame], Any]):
    try:
        estimates, _, _ = _normalise(fit_fn(frame))
    except InvalidParameterError:
        raise
    except Exception as exc:
        return key, None, f"{type(exc).__name__}: {exc}"
    return key, estimates, None


def fit_by_group(
    dataset: Dataset,
    key: str,
    fit_fn: Callable[[pd.DataFrame], Any],
    n_jobs: int = 1,
) -> pd.DataFrame:
    """Partition rows by `key`, fit each partition, and flatten the results.

    Args:
        dataset: Source dataset.
        key: Grouping column.
        fit_fn: Function of a group's rows returning estimates.
        n_jobs: joblib worker count.

    Returns:
        Frame with the key column followed by term / estimate / std_error.
        Groups whose fit raised are dropped and listed in
        `frame.attrs["failed_groups"]`.
    """
    groups = dataset.partition(key)
    outputs = Parallel(n_jobs=n_jobs)(
        delayed(_fit_group)(value, dataset.rows(idx), fit_fn)
        for value, idx in groups.items()
    )

    frames = []
    failed = []
    for value, estimates, error in outputs:
        if estimates is None:
            logger.warning("Group %s=%r failed: %s", key, value, error)
            failed.append(value)
            continue
        estimates = estimates.copy()
        estimates.insert(0, key, value)
        frames.append(estimates)

    if frames:
        result = pd.concat(frames, ignore_index=True)
    else:
        result = pd.DataFrame(columns=[key] + ESTIMATE_COLUMNS)
    result.attrs["failed_groups"] = failed
    return result
