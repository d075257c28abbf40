"""
Tests for src/tournament/qualification.py - Qualification mask.
"""

import math

import pytest

from src.tournament.config import QualificationConfig
from src.tournament.horizons import DEFAULT_HORIZONS
from src.tournament.qualification import (
    QualificationInput,
    compute_prevalence_log_loss,
    count_labels,
    qualify_models,
    qualify_models_for_horizon,
)
from src.tournament.records import RoundScore
from src.tournament.state import ModelStateManager


def make_input(model_id, log_loss, valid=DEFAULT_HORIZONS):
    return QualificationInput(
        model_id=model_id,
        mean_log_loss_by_horizon={h: log_loss for h in DEFAULT_HORIZONS},
        valid_horizons=list(valid),
    )


class TestPrevalenceLogLoss:
    """Tests for compute_prevalence_log_loss."""

    @pytest.mark.parametrize("true_count,false_count", [(0, 0), (100, 0), (0, 100)])
    def test_degenerate_distributions_are_infinite(self, true_count, false_count):
        """Empty or one-sided label sets give +inf."""
        value = compute_prevalence_log_loss(true_count, false_count)
        assert math.isinf(value) and value > 0

    def test_balanced_is_ln2(self):
        """A 50/50 split costs ln 2."""
        assert compute_prevalence_log_loss(50, 50) == pytest.approx(0.693, abs=0.01)

    def test_symmetric(self):
        """Swapping the classes does not change the entropy."""
        assert compute_prevalence_log_loss(70, 30) == pytest.approx(
            compute_prevalence_log_loss(30, 70)
        )

    def test_skew_lowers_baseline(self):
        """A skewed base rate is easier to predict."""
        assert compute_prevalence_log_loss(90, 10) < compute_prevalence_log_loss(60, 40)


class TestCountLabels:
    """Tests for count_labels."""

    def test_counts_across_models(self):
        """Labels are counted over every round of every given model."""
        manager = ModelStateManager(["a", "b"])
        for model_id in ("a", "b"):
            for i, label in enumerate([True, False, True], 1):
                manager.add_round_score(model_id, RoundScore.from_predictions(
                    i, {h: 0.6 for h in DEFAULT_HORIZONS}, {h: label for h in DEFAULT_HORIZONS}
                ))
        states = manager.get_all_model_states()
        assert count_labels(states, "1h") == (4, 2)


class TestPrevalenceMargin:
    """Tests for prevalence_margin qualification."""

    def test_threshold_is_prevalence_plus_margin(self):
        """Models within the margin of the base-rate loss qualify."""
        prevalence = compute_prevalence_log_loss(50, 50)
        result = qualify_models_for_horizon(
            [make_input("good", 0.5), make_input("edge", 0.78), make_input("bad", 0.9)],
            "15m",
            prevalence,
        )
        assert result.threshold == pytest.approx(prevalence + 0.1)
        assert result.qualified_models == ["good", "edge"]
        assert result.disqualified_models == ["bad"]

    def test_infinite_prevalence_propagates(self):
        """A degenerate label set gives an infinite threshold."""
        result = qualify_models_for_horizon(
            [make_input("a", 3.0)], "15m", math.inf
        )
        assert math.isinf(result.threshold)
        assert result.qualified_models == ["a"]

    def test_invalid_horizon_excluded(self):
        """Models without the horizon among their valid horizons are not considered."""
        result = qualify_models_for_horizon(
            [make_input("a", 0.3), make_input("b", 0.3, valid=["1h"])],
            "15m",
            0.69,
        )
        assert result.qualified_models == ["a"]
        assert result.disqualified_models == []


class TestTopPercent:
    """Tests for top_percent qualification."""

    def test_five_models_sixty_percent(self):
        """0.6 of five models qualifies exactly the three best."""
        config = QualificationConfig(mode="top_percent", top_percent=0.6)
        models = [
            make_input("m1", 0.50),
            make_input("m2", 0.30),
            make_input("m3", 0.70),
            make_input("m4", 0.40),
            make_input("m5", 0.60),
        ]
        result = qualify_models_for_horizon(models, "1h", 0.69, config)
        assert sorted(result.qualified_models) == ["m1", "m2", "m4"]
        assert result.threshold == pytest.approx(0.50)
        assert sorted(result.disqualified_models) == ["m3", "m5"]

    def test_at_least_one_model(self):
        """A tiny fraction still keeps one model."""
        config = QualificationConfig(mode="top_percent", top_percent=0.01)
        result = qualify_models_for_horizon(
            [make_input("a", 0.4), make_input("b", 0.2)], "1h", 0.69, config
        )
        assert result.qualified_models == ["b"]

    def test_unknown_mode(self):
        """An unknown mode is rejected."""
        with pytest.raises(ValueError):
            qualify_models_for_horizon(
                [make_input("a", 0.4)], "1h", 0.69, QualificationConfig(mode="best_guess")
            )


class TestQualificationMask:
    """Tests for qualify_models."""

    def test_mask_covers_every_model(self):
        """Every input model gets a mask entry, possibly empty."""
        models = [
            make_input("strong", 0.3),
            make_input("weak", 2.0),
            make_input("partial", 0.3, valid=["15m", "7d"]),
        ]
        prevalence = {h: math.log(2) for h in DEFAULT_HORIZONS}
        result = qualify_models(models, prevalence, DEFAULT_HORIZONS)

        assert result.qualified_by_model["strong"] == set(DEFAULT_HORIZONS)
        assert result.qualified_by_model["weak"] == set()
        assert result.qualified_by_model["partial"] == {"15m", "7d"}
        assert result.is_qualified("partial", "7d")
        assert not result.is_qualified("partial", "1h")
        assert set(result.by_horizon) == set(DEFAULT_HORIZONS)
