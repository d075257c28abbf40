"""
Tests for src/tournament/state.py and src/tournament/records.py.
"""

import math

import pytest

from src.tournament.errors import RoundScoreError, UnknownModelError
from src.tournament.horizons import DEFAULT_HORIZONS
from src.tournament.records import RoundScore, log_loss
from src.tournament.state import FINAL_PHASE, ModelStateManager


def make_score(round_number, p=0.7, label=True):
    return RoundScore.from_predictions(
        round_number,
        {h: p for h in DEFAULT_HORIZONS},
        {h: label for h in DEFAULT_HORIZONS},
    )


class TestLogLoss:
    """Tests for the per-prediction log loss."""

    def test_coin_flip(self):
        """A 0.5 forecast costs ln 2 whatever the outcome."""
        assert log_loss(0.5, True) == pytest.approx(math.log(2))
        assert log_loss(0.5, False) == pytest.approx(math.log(2))

    def test_certain_and_wrong_is_finite(self):
        """Probabilities are clamped so certainty never gives infinity."""
        assert math.isfinite(log_loss(0.0, True))
        assert math.isfinite(log_loss(1.0, False))


class TestRoundScore:
    """Tests for RoundScore construction and validation."""

    def test_from_predictions_derives_losses(self):
        """Log loss is derived for every horizon."""
        score = make_score(1, p=0.8, label=True)
        assert score.log_loss_by_horizon["1h"] == pytest.approx(-math.log(0.8))

    def test_immutable_mappings(self):
        """Stored mappings cannot be mutated."""
        score = make_score(1)
        with pytest.raises(TypeError):
            score.predictions["15m"] = 0.1

    def test_missing_horizon_rejected(self):
        """A prediction map missing a horizon fails validation."""
        score = RoundScore.from_predictions(
            1, {"15m": 0.5, "1h": 0.5, "24h": 0.5}, {h: True for h in DEFAULT_HORIZONS}
        )
        with pytest.raises(RoundScoreError, match="7d"):
            score.validate(DEFAULT_HORIZONS)

    def test_probability_out_of_range_rejected(self):
        """Predictions must lie in [0, 1]."""
        score = RoundScore(
            1,
            {h: 1.2 for h in DEFAULT_HORIZONS},
            {h: True for h in DEFAULT_HORIZONS},
            {h: 0.1 for h in DEFAULT_HORIZONS},
        )
        with pytest.raises(RoundScoreError):
            score.validate(DEFAULT_HORIZONS)

    def test_negative_log_loss_rejected(self):
        """Log losses must be non-negative."""
        score = RoundScore(
            1,
            {h: 0.5 for h in DEFAULT_HORIZONS},
            {h: True for h in DEFAULT_HORIZONS},
            {h: -0.1 for h in DEFAULT_HORIZONS},
        )
        with pytest.raises(RoundScoreError):
            score.validate(DEFAULT_HORIZONS)

    def test_from_dict_camel_case(self):
        """camelCase records parse and keep their pivot data."""
        score = RoundScore.from_dict({
            "roundNumber": 3,
            "predictions": {h: 0.6 for h in DEFAULT_HORIZONS},
            "labels": {h: False for h in DEFAULT_HORIZONS},
            "timeToPivotRatio": {"15m": 0.25},
            "firstPivotAt": {"15m": "2026-01-05T10:00:00Z"},
        })
        assert score.round_number == 3
        assert score.pivot_ratio("15m") == 0.25
        assert score.pivot_ratio("1h") is None
        assert score.first_pivot_at["15m"].year == 2026
        assert score.log_loss_by_horizon["24h"] == pytest.approx(-math.log(0.4))

    def test_from_dict_requires_labels(self):
        """Records without labels are rejected."""
        with pytest.raises(RoundScoreError):
            RoundScore.from_dict({"round_number": 1, "predictions": {}})


class TestModelStateManager:
    """Tests for ModelStateManager."""

    def test_active_models_in_registration_order(self):
        """Active ids come back in registration order."""
        manager = ModelStateManager(["c", "a", "b"])
        assert manager.get_active_models() == ["c", "a", "b"]

    def test_duplicate_ids_rejected(self):
        """Model ids must be unique."""
        with pytest.raises(ValueError):
            ModelStateManager(["a", "a"])

    def test_unknown_model_add_round(self):
        """Adding a round for an unregistered model is fatal."""
        manager = ModelStateManager(["a"])
        with pytest.raises(UnknownModelError):
            manager.add_round_score("ghost", make_score(1))

    def test_unknown_model_is_key_error(self):
        """UnknownModelError can be caught as KeyError."""
        manager = ModelStateManager(["a"])
        with pytest.raises(KeyError):
            manager.get_model_state("ghost")

    def test_add_round_updates_caches(self):
        """Appending a round updates history and the log loss cache."""
        manager = ModelStateManager(["a"])
        manager.add_round_score("a", make_score(1, p=0.8))
        manager.add_round_score("a", make_score(2, p=0.6))
        state = manager.get_model_state("a")
        assert state.rounds_completed == 2
        assert state.log_loss_by_horizon["15m"] == pytest.approx(
            [-math.log(0.8), -math.log(0.6)]
        )

    def test_invalid_round_not_appended(self):
        """A rejected round leaves the history untouched."""
        manager = ModelStateManager(["a"])
        bad = RoundScore.from_predictions(1, {"15m": 0.5}, {"15m": True})
        with pytest.raises(RoundScoreError):
            manager.add_round_score("a", bad)
        assert manager.get_model_state("a").rounds_completed == 0

    @pytest.mark.parametrize("ratio", [math.nan, math.inf, -0.1, "fast"])
    def test_bad_pivot_ratio_rejected(self, ratio):
        """A malformed pivot ratio is fatal at ingestion."""
        manager = ModelStateManager(["a"])
        score = RoundScore.from_predictions(
            1,
            {h: 0.7 for h in DEFAULT_HORIZONS},
            {h: True for h in DEFAULT_HORIZONS},
            time_to_pivot_ratio={"15m": ratio},
        )
        with pytest.raises(RoundScoreError):
            manager.add_round_score("a", score)
        state = manager.get_model_state("a")
        assert state.rounds_completed == 0
        assert state.time_to_pivot_ratios["15m"] == []

    def test_missing_pivot_ratio_allowed(self):
        """A horizon without a pivot ratio is not an error."""
        manager = ModelStateManager(["a"])
        score = RoundScore.from_predictions(
            1,
            {h: 0.7 for h in DEFAULT_HORIZONS},
            {h: True for h in DEFAULT_HORIZONS},
            time_to_pivot_ratio={"15m": None, "1h": 0.0},
        )
        manager.add_round_score("a", score)
        assert manager.get_model_state("a").time_to_pivot_ratios["1h"] == [0.0]

    @pytest.mark.parametrize("next_round", [2, 1])
    def test_rounds_must_be_chronological(self, next_round):
        """A round at or before the last stored round is rejected."""
        manager = ModelStateManager(["a"])
        manager.add_round_score("a", make_score(1))
        manager.add_round_score("a", make_score(2))
        with pytest.raises(RoundScoreError):
            manager.add_round_score("a", make_score(next_round))
        assert [r.round_number for r in manager.get_model_state("a").round_scores] == [1, 2]

    def test_round_gaps_allowed(self):
        """Round numbers may skip, e.g. around failed rounds."""
        manager = ModelStateManager(["a", "b"])
        manager.add_round_score("a", make_score(1))
        manager.add_round_score("a", make_score(4))
        manager.add_round_score("b", make_score(1))
        assert manager.get_model_state("a").rounds_completed == 2

    def test_pivot_ratios_cached(self):
        """Pivot ratios present on a round are cached per horizon."""
        manager = ModelStateManager(["a"])
        score = RoundScore.from_predictions(
            1,
            {h: 0.7 for h in DEFAULT_HORIZONS},
            {h: True for h in DEFAULT_HORIZONS},
            time_to_pivot_ratio={"1h": 0.4},
        )
        manager.add_round_score("a", score)
        state = manager.get_model_state("a")
        assert state.time_to_pivot_ratios["1h"] == [0.4]
        assert state.time_to_pivot_ratios["15m"] == []

    def test_elimination_is_permanent(self):
        """The first elimination wins; a second call is a no-op."""
        manager = ModelStateManager(["a", "b"])
        assert manager.eliminate_model("a", 0, "Degenerate pattern") is True
        assert manager.eliminate_model("a", 2, "High regret on 15m, 1h") is False

        state = manager.get_model_state("a")
        assert manager.is_eliminated("a")
        assert state.eliminated_in_phase == 0
        assert state.elimination_reason == "Degenerate pattern"
        assert manager.get_active_models() == ["b"]
        assert len(manager.elimination_events) == 1

    def test_eliminated_models_kept(self):
        """Eliminated models remain available for audit."""
        manager = ModelStateManager(["a", "b"])
        manager.eliminate_model("b", 1, "No horizon strength")
        eliminated = manager.get_eliminated_models()
        assert [m.model_id for m in eliminated] == ["b"]
        assert len(manager.get_all_model_states()) == 2

    def test_eliminate_unknown_model(self):
        """Eliminating an unregistered model is fatal."""
        manager = ModelStateManager(["a"])
        with pytest.raises(UnknownModelError):
            manager.eliminate_model("ghost", 0, "x")

    def test_phase_is_monotonic(self):
        """advance_phase only moves forward and stops at the final phase."""
        manager = ModelStateManager(["a"])
        assert manager.get_current_phase() == 0
        for _ in range(10):
            manager.advance_phase()
        assert manager.get_current_phase() == FINAL_PHASE

    def test_record_failed_round(self):
        """Failed rounds are tracked separately from completed rounds."""
        manager = ModelStateManager(["a"])
        manager.record_failed_round("a", 4)
        state = manager.get_model_state("a")
        assert state.failed_rounds == [4]
        assert state.rounds_completed == 0

    def test_custom_horizons(self):
        """The horizon set is configurable."""
        manager = ModelStateManager(["a"], horizons=("15m", "1h", "4h", "24h"))
        assert manager.horizons == ("15m", "1h", "4h", "24h")
        with pytest.raises(RoundScoreError):
            manager.add_round_score("a", make_score(1))
