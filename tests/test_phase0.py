"""
Tests for src/tournament/phase0.py - Sanity filter.
"""

import math

import pytest

from src.tournament.config import Phase0Config
from src.tournament.horizons import DEFAULT_HORIZONS
from src.tournament.phase0 import (
    RANDOM_BASELINE,
    Phase0Aggregate,
    aggregate_phase0,
    compute_baseline_log_loss,
    detect_degenerate_pattern,
    phase0_elimination_reason,
    run_phase0,
    should_eliminate_phase0,
)
from src.tournament.records import RoundScore
from src.tournament.state import ModelStateManager


def make_round(round_number, predictions, labels):
    """Build a round from per-horizon dicts, or scalars applied to every horizon."""
    if not isinstance(predictions, dict):
        predictions = {h: predictions for h in DEFAULT_HORIZONS}
    if not isinstance(labels, dict):
        labels = {h: labels for h in DEFAULT_HORIZONS}
    return RoundScore.from_predictions(round_number, predictions, labels)


def feed(manager, model_id, rounds):
    for r in rounds:
        manager.add_round_score(model_id, r)


class TestBaselines:
    """Tests for baseline log loss constants."""

    def test_random_baseline_is_ln2(self):
        """RANDOM_BASELINE is the log loss of a 0.5 forecast."""
        assert RANDOM_BASELINE == pytest.approx(0.6931, abs=1e-4)

    def test_baseline_log_loss(self):
        """Constant strategies are scored against the label set."""
        baseline = compute_baseline_log_loss([True, True, True, False])
        assert baseline.random == pytest.approx(math.log(2))
        assert baseline.trivial_best == baseline.always_true
        assert baseline.always_true < baseline.always_false

    def test_baseline_empty_labels(self):
        """No labels gives zeroed constant baselines."""
        baseline = compute_baseline_log_loss([])
        assert baseline.trivial_best == 0.0


class TestDegeneratePattern:
    """Tests for degenerate pattern detection."""

    def test_all_high_predictions(self):
        """Six rounds at 0.95 on every horizon is degenerate."""
        rounds = [make_round(i, 0.95, True) for i in range(1, 7)]
        assert detect_degenerate_pattern(rounds, DEFAULT_HORIZONS, Phase0Config())

    def test_only_recent_rounds_count(self):
        """Early varied rounds do not hide a degenerate recent stretch."""
        rounds = [make_round(i, 0.3, False) for i in range(1, 4)]
        rounds += [make_round(i, 0.92, True) for i in range(4, 10)]
        assert detect_degenerate_pattern(rounds, DEFAULT_HORIZONS, Phase0Config())

    def test_one_horizon_breaks_pattern(self):
        """A single discriminating horizon means the model is not degenerate."""
        predictions = {"15m": 0.95, "1h": 0.95, "24h": 0.95, "7d": 0.4}
        rounds = [make_round(i, predictions, True) for i in range(1, 7)]
        assert not detect_degenerate_pattern(rounds, DEFAULT_HORIZONS, Phase0Config())

    def test_too_few_rounds(self):
        """Fewer rounds than the window are never degenerate."""
        rounds = [make_round(i, 0.99, True) for i in range(1, 6)]
        assert not detect_degenerate_pattern(rounds, DEFAULT_HORIZONS, Phase0Config())


class TestAggregate:
    """Tests for aggregate_phase0."""

    def test_extreme_error_rate(self):
        """Extreme errors are confident (> 0.8) and wrong."""
        rounds = [
            make_round(1, 0.85, False),
            make_round(2, 0.85, True),
            make_round(3, 0.80, False),
            make_round(4, 0.30, False),
        ]
        aggregate = aggregate_phase0(rounds, DEFAULT_HORIZONS)
        assert aggregate.extreme_error_rate["15m"] == pytest.approx(0.25)

    def test_mean_log_loss(self):
        """Mean log loss averages the per-round losses."""
        rounds = [make_round(1, 0.5, True), make_round(2, 0.5, False)]
        aggregate = aggregate_phase0(rounds, DEFAULT_HORIZONS)
        assert aggregate.mean_log_loss["7d"] == pytest.approx(math.log(2))


class TestEliminationRule:
    """Tests for the Phase 0 elimination priority."""

    def aggregate(self, mean_ll=0.5, extreme=0.0, degenerate=False):
        return Phase0Aggregate(
            mean_log_loss={h: mean_ll for h in DEFAULT_HORIZONS},
            extreme_error_rate={h: extreme for h in DEFAULT_HORIZONS},
            degenerate_pattern=degenerate,
        )

    def test_degenerate_wins(self):
        """Degenerate pattern takes priority over everything else."""
        aggregate = self.aggregate(mean_ll=2.0, extreme=0.9, degenerate=True)
        assert phase0_elimination_reason(aggregate) == "Degenerate pattern"

    def test_high_log_loss_needs_two_horizons(self):
        """One bad horizon is not enough for the log loss rule."""
        aggregate = self.aggregate()
        aggregate.mean_log_loss["15m"] = 1.0
        assert phase0_elimination_reason(aggregate) is None

        aggregate.mean_log_loss["1h"] = 1.0
        assert phase0_elimination_reason(aggregate) == "High log loss on 15m, 1h"

    def test_threshold_is_strict(self):
        """Exactly 1.1 x baseline does not count as bad."""
        aggregate = self.aggregate(mean_ll=RANDOM_BASELINE * 1.1)
        assert not should_eliminate_phase0(aggregate)

    def test_extreme_errors_on_any_horizon(self):
        """One horizon above the extreme error rate eliminates."""
        aggregate = self.aggregate()
        aggregate.extreme_error_rate["24h"] = 0.25
        assert phase0_elimination_reason(aggregate) == "Extreme errors on 24h"

    def test_healthy_model_survives(self):
        """A reasonable model is kept."""
        assert not should_eliminate_phase0(self.aggregate())


class TestRunPhase0:
    """Tests for run_phase0 against a state manager."""

    def test_degenerate_model_eliminated(self):
        """Six rounds of 0.95+ on every horizon eliminates in phase 0."""
        manager = ModelStateManager(["degen", "ok"])
        feed(manager, "degen", [make_round(i, 0.96, i % 2 == 0) for i in range(1, 7)])
        feed(manager, "ok", [make_round(i, 0.7, True) for i in range(1, 7)])

        aggregate = aggregate_phase0(
            manager.get_model_state("degen").round_scores, DEFAULT_HORIZONS
        )
        assert aggregate.degenerate_pattern is True

        events = run_phase0(manager)
        assert [(e.model_id, e.phase, e.reason) for e in events] == [
            ("degen", 0, "Degenerate pattern")
        ]
        assert manager.is_eliminated("degen")
        assert not manager.is_eliminated("ok")

    def test_insufficient_rounds_skipped(self):
        """Models with fewer than 6 rounds produce no decision."""
        manager = ModelStateManager(["young"])
        feed(manager, "young", [make_round(i, 0.99, False) for i in range(1, 6)])
        assert run_phase0(manager) == []
        assert not manager.is_eliminated("young")

    def test_high_log_loss_model(self):
        """Confidently wrong on every horizon eliminates with horizons named."""
        manager = ModelStateManager(["bad"])
        feed(manager, "bad", [make_round(i, 0.2, True) for i in range(1, 7)])
        events = run_phase0(manager)
        assert events[0].reason == "High log loss on 15m, 1h, 24h, 7d"

    def test_extreme_error_model(self):
        """Confident misses on a single horizon eliminate."""
        manager = ModelStateManager(["overconfident"])
        rounds = []
        for i in range(1, 7):
            miss = i in (2, 5)
            predictions = {h: 0.7 for h in DEFAULT_HORIZONS}
            labels = {h: True for h in DEFAULT_HORIZONS}
            if miss:
                predictions["15m"] = 0.85
                labels["15m"] = False
            rounds.append(make_round(i, predictions, labels))
        feed(manager, "overconfident", rounds)

        events = run_phase0(manager)
        assert events[0].reason == "Extreme errors on 15m"

    def test_already_eliminated_untouched(self):
        """Eliminated models are not re-evaluated."""
        manager = ModelStateManager(["degen"])
        feed(manager, "degen", [make_round(i, 0.96, True) for i in range(1, 7)])
        manager.eliminate_model("degen", 0, "Manual")
        assert run_phase0(manager) == []
        assert manager.get_model_state("degen").elimination_reason == "Manual"
