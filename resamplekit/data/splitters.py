"""
Splitting utilities for creating resamples.

Implements:
- Bootstrap resampling (optionally stratified, optionally with an apparent resample)
- V-fold cross-validation (optionally stratified and repeated)
- Single validation / initial train-test splits
- Nested resampling as two independent, composable stages

Every function takes an explicit `rng` (numpy Generator or integer seed).
The same seed and dataset always give identical index arrays.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np
import pandas as pd
from sklearn.model_selection import KFold, StratifiedKFold, train_test_split

from resamplekit.config import ResamplingConfig
from resamplekit.data.dataset import Dataset
from resamplekit.data.resamples import Resample, ResampleSet
from resamplekit.errors import InvalidParameterError, ResamplingError

logger = logging.getLogger(__name__)

RandomState = np.random.Generator | int | None


def as_generator(rng: RandomState = None) -> np.random.Generator:
    """Return a numpy Generator for `rng`.

    A Generator is passed through unchanged so that consecutive calls share
    one stream; an int seeds a new Generator; None draws fresh entropy.
    """
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def _sklearn_seed(gen: np.random.Generator) -> int:
    """Derive an integer random_state for scikit-learn splitters."""
    return int(gen.integers(0, 2**31 - 1))


def make_strata(
    values: pd.Series | np.ndarray,
    breaks: int = 4,
    pool: float = 0.1,
) -> np.ndarray:
    """Turn a column into integer stratum codes.

    Numeric columns with more than `breaks` distinct values are binned into
    quantile groups. Strata smaller than `pool * n` rows are merged into
    their smaller neighbour until none remain (or one stratum is left).

    Args:
        values: Column to stratify on.
        breaks: Number of quantile bins for numeric columns.
        pool: Minimum stratum size as a fraction of rows.

    Returns:
        Integer codes 0..k-1, one per row.
    """
    values = pd.Series(values).reset_index(drop=True)
    if values.isna().any():
        raise InvalidParameterError("Stratification column contains missing values")

    is_numeric = pd.api.types.is_numeric_dtype(values) and not pd.api.types.is_bool_dtype(values)
    if is_numeric and values.nunique() > breaks:
        codes = pd.qcut(values, q=breaks, labels=False, duplicates="drop").to_numpy()
    else:
        codes = pd.factorize(values, sort=True)[0]
    codes = np.asarray(codes, dtype=np.int64)

    min_size = pool * len(values)
    while True:
        uniq, counts = np.unique(codes, return_counts=True)
        if len(uniq) <= 1:
            break
        smallest = int(np.argmin(counts))
        if counts[smallest] >= min_size:
            break
        # Merge into the smaller adjacent stratum
        if smallest == 0:
            target = uniq[1]
        elif smallest == len(uniq) - 1:
            target = uniq[-2]
        elif counts[smallest - 1] <= counts[smallest + 1]:
            target = uniq[smallest - 1]
        else:
            target = uniq[smallest + 1]
        logger.debug("Pooling stratum %s (%d rows) into %s", uniq[smallest], counts[smallest], target)
        codes[codes == uniq[smallest]] = target

    _, codes = np.unique(codes, return_inverse=True)
    return codes.astype(np.int64)


def _strata_codes(
    dataset: Dataset,
    strata: Optional[str],
    breaks: int,
    pool: float,
) -> Optional[np.ndarray]:
    if strata is None:
        return None
    return make_strata(dataset.column(strata), breaks=breaks, pool=pool)


def _draw_bootstrap(
    n: int,
    codes: Optional[np.ndarray],
    gen: np.random.Generator,
) -> np.ndarray:
    """Draw n row positions with replacement (within strata if given)."""
    if codes is None:
        return gen.choice(n, size=n, replace=True)

    parts = []
    for code in np.unique(codes):
        members = np.flatnonzero(codes == code)
        parts.append(gen.choice(members, size=len(members), replace=True))
    return np.concatenate(parts)


def bootstraps(
    dataset: Dataset,
    times: int = 25,
    strata: Optional[str] = None,
    breaks: int = 4,
    pool: float = 0.1,
    apparent: bool = False,
    rng: RandomState = None,
    max_retries: int = 0,
) -> ResampleSet:
    """Create bootstrap resamples.

    Each resample draws n rows independently and uniformly with replacement.
    Rows never drawn form the out-of-bag assessment set. A draw that contains
    every row has an empty assessment set; it is kept as drawn unless
    `max_retries` > 0, in which case it is redrawn up to that many times.
    Redrawing conditions the bootstrap on a non-empty out-of-bag set, so it
    is opt-in.

    Args:
        dataset: Source dataset of n rows.
        times: Number of bootstrap resamples.
        strata: Optional column whose proportions are preserved.
        breaks: Quantile bins for a numeric strata column.
        pool: Minimum stratum size as a fraction of rows.
        apparent: Append a resample whose analysis and assessment sets are
            the full dataset.
        rng: Generator or seed for reproducibility.
        max_retries: Redraws allowed per resample with no out-of-bag rows.

    Returns:
        ResampleSet with `times` bootstrap resamples (plus the apparent one).

    Raises:
        InvalidParameterError: If times < 1 or max_retries < 0.
        ResamplingError: If max_retries > 0 and a resample still has no
            out-of-bag rows after all redraws.
    """
    if times < 1:
        raise InvalidParameterError(f"times must be >= 1, got {times}")
    if max_retries < 0:
        raise InvalidParameterError(f"max_retries must be >= 0, got {max_retries}")

    gen = as_generator(rng)
    n = len(dataset)
    codes = _strata_codes(dataset, strata, breaks, pool)
    all_rows = np.arange(n)
    width = max(len(str(times)), 2)

    resamples: List[Resample] = []
    n_retried = 0
    n_empty = 0
    for b in range(times):
        analysis_idx = _draw_bootstrap(n, codes, gen)
        assessment_idx = np.setdiff1d(all_rows, analysis_idx)
        for attempt in range(max_retries):
            if len(assessment_idx) > 0:
                break
            n_retried += 1
            logger.debug("Bootstrap %d attempt %d drew every row; redrawing", b + 1, attempt + 1)
            analysis_idx = _draw_bootstrap(n, codes, gen)
            assessment_idx = np.setdiff1d(all_rows, analysis_idx)

        if len(assessment_idx) == 0:
            if max_retries > 0:
                raise ResamplingError(
                    f"Bootstrap {b + 1} had no out-of-bag rows after {max_retries} retries "
                    f"(n={n})"
                )
            n_empty += 1

        resamples.append(Resample(
            resample_id=f"Bootstrap{b + 1:0{width}d}",
            index=b,
            kind="bootstrap",
            analysis_indices=analysis_idx,
            assessment_indices=assessment_idx,
            dataset=dataset,
        ))

    if n_retried:
        logger.warning("Redrew %d bootstrap resamples with no out-of-bag rows", n_retried)
    if n_empty:
        logger.warning(
            "%d of %d bootstrap resamples have no out-of-bag rows; "
            "assessment-based metrics will fail on them",
            n_empty, times,
        )

    if apparent:
        resamples.append(Resample(
            resample_id="Apparent",
            index=times,
            kind="apparent",
            analysis_indices=all_rows,
            assessment_indices=all_rows,
            dataset=dataset,
        ))

    logger.info("Created %d bootstrap resamples of %s", times, dataset.name)
    return ResampleSet(
        resamples,
        method="bootstraps",
        params={"times": times, "strata": strata, "apparent": apparent},
    )


def vfold_cv(
    dataset: Dataset,
    v: int = 10,
    repeats: int = 1,
    strata: Optional[str] = None,
    breaks: int = 4,
    pool: float = 0.1,
    rng: RandomState = None,
) -> ResampleSet:
    """Create (repeated) v-fold cross-validation resamples.

    Rows are shuffled once per repeat and split into v disjoint groups of
    near-equal size. Each fold holds one group out for assessment.

    Args:
        dataset: Source dataset.
        v: Number of folds.
        repeats: Number of independent repeats of the whole partition.
        strata: Optional column whose proportions are preserved per fold.
        breaks: Quantile bins for a numeric strata column.
        pool: Minimum stratum size as a fraction of rows.
        rng: Generator or seed for reproducibility.

    Returns:
        ResampleSet with v * repeats resamples.

    Raises:
        InvalidParameterError: If v < 2, v > n, repeats < 1, or the smallest
            stratum has fewer rows than v.
    """
    n = len(dataset)
    if v < 2:
        raise InvalidParameterError(f"v must be >= 2, got {v}")
    if v > n:
        raise InvalidParameterError(f"v={v} exceeds the number of rows ({n})")
    if repeats < 1:
        raise InvalidParameterError(f"repeats must be >= 1, got {repeats}")

    codes = _strata_codes(dataset, strata, breaks, pool)
    if codes is not None:
        smallest = int(np.bincount(codes).min())
        if smallest < v:
            raise InvalidParameterError(
                f"Stratum in {strata!r} has {smallest} rows, fewer than v={v} folds"
            )

    gen = as_generator(rng)
    width = max(len(str(v)), 2)
    positions = np.zeros(n)

    resamples: List[Resample] = []
    for r in range(repeats):
        seed = _sklearn_seed(gen)
        if codes is None:
            splits = KFold(n_splits=v, shuffle=True, random_state=seed).split(positions)
        else:
            splits = StratifiedKFold(n_splits=v, shuffle=True, random_state=seed).split(positions, codes)

        for fold_id, (train_idx, val_idx) in enumerate(splits):
            fold_key = f"Fold{fold_id + 1:0{width}d}"
            resample_id = fold_key if repeats == 1 else f"Repeat{r + 1}/{fold_key}"
            resamples.append(Resample(
                resample_id=resample_id,
                index=len(resamples),
                kind="vfold",
                analysis_indices=train_idx,
                assessment_indices=val_idx,
                dataset=dataset,
                fold_id=fold_id,
                repeat_id=r,
            ))

    logger.info("Created %d-fold CV (%d repeats) of %s", v, repeats, dataset.name)
    return ResampleSet(
        resamples,
        method="vfold_cv",
        params={"v": v, "repeats": repeats, "strata": strata},
    )


def _single_split(
    dataset: Dataset,
    prop: float,
    strata: Optional[str],
    breaks: int,
    pool: float,
    rng: RandomState,
    kind: str,
    method: str,
) -> ResampleSet:
    if not 0.0 < prop < 1.0:
        raise InvalidParameterError(f"prop must be in (0, 1), got {prop}")

    n = len(dataset)
    codes = _strata_codes(dataset, strata, breaks, pool)
    gen = as_generator(rng)

    try:
        train_idx, test_idx = train_test_split(
            np.arange(n),
            train_size=prop,
            stratify=codes,
            random_state=_sklearn_seed(gen),
        )
    except ValueError as exc:
        raise InvalidParameterError(f"Cannot split {dataset.name!r}: {exc}") from exc

    resample = Resample(
        resample_id=kind,
        index=0,
        kind=kind,
        analysis_indices=np.sort(train_idx),
        assessment_indices=np.sort(test_idx),
        dataset=dataset,
    )
    return ResampleSet([resample], method=method, params={"prop": prop, "strata": strata})


def validation_split(
    dataset: Dataset,
    prop: float = 0.75,
    strata: Optional[str] = None,
    breaks: int = 4,
    pool: float = 0.1,
    rng: RandomState = None,
) -> ResampleSet:
    """Create a single analysis/validation partition.

    Used as an early-stopping stage; it composes with other resampling
    stages through `nested_resamples` and carries no nested semantics itself.
    """
    return _single_split(dataset, prop, strata, breaks, pool, rng, "validation", "validation_split")


def initial_split(
    dataset: Dataset,
    prop: float = 0.75,
    strata: Optional[str] = None,
    breaks: int = 4,
    pool: float = 0.1,
    rng: RandomState = None,
) -> ResampleSet:
    """Create a single training/testing partition."""
    return _single_split(dataset, prop, strata, breaks, pool, rng, "split", "initial_split")


@dataclass
class NestedResample:
    """An outer resample paired with resamples of its analysis rows.

    Inner indices refer to rows of `inner.dataset`, which holds the outer
    analysis rows in order.
    """

    outer: Resample
    inner: ResampleSet


def nested_resamples(
    outer: ResampleSet,
    inner: Callable[[Dataset], ResampleSet],
) -> List[NestedResample]:
    """Apply an inner resampling stage to each outer analysis set.

    Args:
        outer: Outer resamples (e.g. from vfold_cv).
        inner: Callable building a ResampleSet from a Dataset, e.g.
            `lambda d: bootstraps(d, times=25, rng=gen)`.

    Returns:
        One NestedResample per outer resample, in outer order.
    """
    nested = []
    for rep in outer:
        inner_data = rep.dataset.subset(
            rep.analysis_indices, name=f"{rep.dataset.name}/{rep.resample_id}"
        )
        nested.append(NestedResample(outer=rep, inner=inner(inner_data)))
    return nested


def resample_from_config(
    dataset: Dataset,
    cfg: ResamplingConfig,
    rng: RandomState = None,
) -> ResampleSet:
    """Create resamples as described by a ResamplingConfig.

    Args:
        dataset: Source dataset.
        cfg: Resampling configuration.
        rng: Generator or seed. If None, uses cfg.random_seed.
    """
    if rng is None:
        rng = cfg.random_seed

    if cfg.method == "bootstraps":
        return bootstraps(
            dataset,
            times=cfg.times,
            strata=cfg.strata,
            breaks=cfg.breaks,
            pool=cfg.pool,
            apparent=cfg.apparent,
            rng=rng,
            max_retries=cfg.max_retries,
        )
    if cfg.method == "vfold_cv":
        return vfold_cv(
            dataset,
            v=cfg.v,
            repeats=cfg.repeats,
            strata=cfg.strata,
            breaks=cfg.breaks,
            pool=cfg.pool,
            rng=rng,
        )
    return validation_split(
        dataset, prop=cfg.prop, strata=cfg.strata, breaks=cfg.breaks, pool=cfg.pool, rng=rng
    )
