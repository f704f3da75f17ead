"""Aggregation of replicate results: intervals, tests, racing, calibration."""

from resamplekit.evaluation.calibration import (
    Calibrator,
    calibration_table,
    fit_calibrator,
    validate_calibration,
)
from resamplekit.evaluation.hypothesis import (
    HypothesisTestResult,
    hypothesis_test,
    permutation_null,
    permutation_test,
    simulated_null,
    two_sided_p_value,
)
from resamplekit.evaluation.intervals import (
    percentile_intervals,
    summarize_replicates,
    t_intervals,
)
from resamplekit.evaluation.metrics import METRIC_DIRECTIONS, compute_metrics, metric_direction
from resamplekit.evaluation.racing import (
    CandidateStatus,
    TuneResult,
    anova_eliminate,
    grid_random,
    grid_regular,
    tune_grid,
    tune_race_anova,
)

__all__ = [
    "Calibrator",
    "CandidateStatus",
    "HypothesisTestResult",
    "METRIC_DIRECTIONS",
    "TuneResult",
    "anova_eliminate",
    "calibration_table",
    "compute_metrics",
    "fit_calibrator",
    "grid_random",
    "grid_regular",
    "hypothesis_test",
    "metric_direction",
    "percentile_intervals",
    "permutation_null",
    "permutation_test",
    "simulated_null",
    "summarize_replicates",
    "t_intervals",
    "tune_grid",
    "tune_race_anova",
    "two_sided_p_value",
    "validate_calibration",
]
