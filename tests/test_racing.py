"""
Unit tests for grid evaluation and ANOVA racing.

Run: python -m pytest tests/test_racing.py -v
"""

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from resamplekit.config import RacingConfig
from resamplekit.data.splitters import vfold_cv
from resamplekit.errors import FitError, InvalidParameterError
from resamplekit.evaluation.racing import (
    CandidateStatus,
    anova_eliminate,
    grid_random,
    grid_regular,
    tune_grid,
    tune_race_anova,
)

RESAMPLE_EFFECTS = [0.3, -1.2, 0.8, 2.0, -0.4, 1.1, -0.9, 0.0, 0.6, -1.5]


def offset_metric(resample, params):
    """Loss = candidate offset + resample effect + small noise."""
    noise = np.random.default_rng([resample.index, int(params["offset"] * 10)]).normal(0, 0.05)
    return params["offset"] + RESAMPLE_EFFECTS[resample.index] + noise


def quality_scores(resample, params):
    """AUC rises with q and Brier falls with it."""
    noise = np.random.default_rng([resample.index, int(params["q"] * 10)]).normal(0, 0.005)
    effect = 0.01 * RESAMPLE_EFFECTS[resample.index] + noise
    return {"auc": params["q"] + effect, "brier": 1.0 - params["q"] + effect}


@pytest.fixture
def folds(small_dataset):
    return vfold_cv(small_dataset, v=10, rng=0)


@pytest.fixture
def offsets():
    return [{"offset": 0.5 * k} for k in range(15)]


class TestGrids:
    """Candidate grid construction."""

    def test_regular_grid_is_cartesian(self):
        grid = grid_regular({"max_depth": [2, 4, 6], "learning_rate": [0.1, 0.3]})
        assert len(grid) == 6
        assert {"max_depth": 4, "learning_rate": 0.3} in grid

    def test_random_grid_is_seeded(self):
        space = {"learning_rate": stats.uniform(0.01, 0.3), "max_depth": [2, 3, 4]}
        a = grid_random(space, size=5, rng=1)
        b = grid_random(space, size=5, rng=1)
        assert len(a) == 5
        assert a == b


class TestTuneGrid:
    """Full-grid evaluation."""

    def test_every_pair_evaluated(self, folds, offsets):
        result = tune_grid(folds, offsets[:4], offset_metric)
        assert len(result.metrics) == 40
        assert len(result.active) == 4
        assert result.select_best().candidate_id == "Candidate01"

    def test_maximize_flips_selection(self, folds, offsets):
        result = tune_grid(folds, offsets[:4], offset_metric, maximize=True)
        assert result.select_best().candidate_id == "Candidate04"

    def test_show_best_sorted(self, folds, offsets):
        best = tune_grid(folds, offsets[:5], offset_metric).show_best(n=3)
        assert best["candidate_id"].tolist() == ["Candidate01", "Candidate02", "Candidate03"]
        assert "offset" in best.columns

    def test_metric_mapping_needs_name(self, folds, offsets):
        def two_metrics(resample, params):
            return {"rmse": params["offset"], "mae": params["offset"]}

        with pytest.raises(InvalidParameterError):
            tune_grid(folds, offsets[:2], two_metrics)
        result = tune_grid(folds, offsets[:2], two_metrics, metric="mae")
        assert result.select_best().params == {"offset": 0.0}

    def test_ties_go_to_earlier_candidate(self, folds):
        result = tune_grid(folds, [{"a": 1}, {"a": 2}], lambda r, p: 1.0)
        assert result.select_best().candidate_id == "Candidate01"

    def test_empty_candidates(self, folds):
        with pytest.raises(InvalidParameterError):
            tune_grid(folds, [], offset_metric)


class TestAnovaEliminate:
    """Single elimination step."""

    def _frame(self, means, n_resamples=6, sd=0.05, seed=0):
        gen = np.random.default_rng(seed)
        rows = []
        for r in range(n_resamples):
            effect = gen.normal(0, 1)
            for cid, mean in means.items():
                rows.append({
                    "candidate_id": cid,
                    "resample_id": f"Fold{r}",
                    "metric": mean + effect + gen.normal(0, sd),
                })
        return pd.DataFrame(rows)

    @pytest.mark.parametrize("model", ["mixed", "block"])
    def test_clearly_worse_removed_best_kept(self, model):
        frame = self._frame({"A": 0.0, "B": 3.0, "C": 0.3})
        out = anova_eliminate(frame, ["A", "B", "C"], model=model)
        assert "B" in out
        assert "A" not in out

    def test_maximize_orientation(self):
        frame = self._frame({"A": 0.0, "B": 3.0})
        out = anova_eliminate(frame, ["A", "B"], maximize=True)
        assert out == ["A"]

    def test_never_scored_candidates_eliminated(self):
        frame = self._frame({"A": 0.0, "B": 0.0})
        frame = pd.concat([frame, pd.DataFrame({
            "candidate_id": ["C"] * 6, "resample_id": [f"Fold{r}" for r in range(6)], "metric": np.nan,
        })])
        out = anova_eliminate(frame, ["A", "B", "C"])
        assert "C" in out


class TestRaceAnova:
    """Racing across resamples."""

    def test_race_converges_to_best(self, folds, offsets):
        result = tune_race_anova(folds, offsets, offset_metric, config=RacingConfig(burn_in=3))
        counts = result.active_counts
        assert all(a >= b for a, b in zip(counts, counts[1:]))
        assert counts[0] == 15
        assert counts[-1] < 15
        best = result.select_best()
        assert best.candidate_id == "Candidate01"
        assert best.status == CandidateStatus.ACTIVE

    def test_no_elimination_before_burn_in(self, folds, offsets):
        result = tune_race_anova(folds, offsets, offset_metric, config=RacingConfig(burn_in=4))
        assert result.history[0]["eliminated"] == []
        assert result.history[2]["eliminated"] == []
        assert all(c.eliminated_at is None or c.eliminated_at >= 4 for c in result.candidates)

    def test_eliminated_stay_eliminated(self, folds, offsets):
        result = tune_race_anova(folds, offsets, offset_metric)
        evaluated_after = result.metrics.groupby("candidate_id")["round"].max()
        for cand in result.candidates:
            if cand.status == CandidateStatus.ELIMINATED:
                assert evaluated_after[cand.candidate_id] == cand.eliminated_at

    def test_race_stops_with_single_survivor(self, folds, offsets):
        result = tune_race_anova(folds, offsets, offset_metric)
        if len(result.active) == 1:
            assert result.history[-1]["n_active"] == 1
            assert len(result.history) <= len(folds)

    def test_block_model(self, folds, offsets):
        cfg = RacingConfig(burn_in=3, model="block")
        result = tune_race_anova(folds, offsets, offset_metric, config=cfg)
        assert result.select_best().candidate_id == "Candidate01"

    def test_failing_candidate_eliminated(self, folds, offsets):
        def fails_for_one(resample, params):
            if params["offset"] == 1.0:
                raise FitError("diverged")
            return offset_metric(resample, params)

        result = tune_race_anova(folds, offsets[:4], fails_for_one, config=RacingConfig(burn_in=3))
        summary = result.summary().set_index("candidate_id")
        assert summary.loc["Candidate03", "status"] == "eliminated"
        assert summary.loc["Candidate03", "n"] == 0

    def test_burn_in_exceeds_resamples(self, small_dataset, offsets):
        folds = vfold_cv(small_dataset, v=3, rng=0)
        with pytest.raises(InvalidParameterError):
            tune_race_anova(folds, offsets, offset_metric, config=RacingConfig(burn_in=5))


class TestMetricDirection:
    """The named metric sets the optimisation direction unless overridden."""

    QUALITIES = [{"q": 0.5}, {"q": 0.9}, {"q": 0.6}]

    def test_grid_maximises_auc(self, folds):
        result = tune_grid(folds, self.QUALITIES, quality_scores, metric="auc")
        assert result.maximize
        assert result.select_best().params == {"q": 0.9}

    def test_grid_minimises_brier(self, folds):
        result = tune_grid(folds, self.QUALITIES, quality_scores, metric="brier")
        assert not result.maximize
        assert result.select_best().params == {"q": 0.9}

    def test_explicit_direction_overrides_metric(self, folds):
        result = tune_grid(folds, self.QUALITIES, quality_scores, maximize=False, metric="auc")
        assert result.select_best().params == {"q": 0.5}

    def test_race_keeps_best_auc(self, folds):
        result = tune_race_anova(folds, self.QUALITIES, quality_scores, RacingConfig(), metric="auc")
        best = result.select_best()
        assert best.params == {"q": 0.9}
        assert best.status == CandidateStatus.ACTIVE
        eliminated = {c.params["q"] for c in result.candidates if c.status == CandidateStatus.ELIMINATED}
        assert 0.9 not in eliminated
