"""
In-memory state manager for the tournament.

The only mutable store in the engine. Models are registered once at
construction; afterwards the store only grows (round scores appended) or
shrinks its active set (eliminations). Nothing is ever deleted.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List

from .errors import RoundScoreError, UnknownModelError
from .horizons import DEFAULT_HORIZONS, empty_horizon_map, validate_horizons
from .records import ModelState, RoundScore

logger = logging.getLogger(__name__)

FINAL_PHASE = 3


@dataclass(frozen=True)
class EliminationEvent:
    """Audit record of a single elimination."""
    model_id: str
    phase: int
    reason: str

    def to_dict(self) -> Dict[str, object]:
        return {"model_id": self.model_id, "phase": self.phase, "reason": self.reason}


class ModelStateManager:
    """
    Tracks model history and active/eliminated status across phases.

    Elimination is a one-way transition: the first call wins and later calls
    for the same model are no-ops, so a later phase can never overwrite the
    recorded phase or reason.
    """

    def __init__(self, model_ids: Iterable[str], horizons: Iterable[str] = DEFAULT_HORIZONS):
        """
        Register every candidate model.

        Args:
            model_ids: Candidate model ids in registration order
            horizons: Horizon set every round score must cover

        Raises:
            ValueError: On duplicate model ids or an invalid horizon set
        """
        self.horizons = validate_horizons(horizons)
        self._models: Dict[str, ModelState] = {}
        self._current_phase = 0
        self.elimination_events: List[EliminationEvent] = []

        for model_id in model_ids:
            if model_id in self._models:
                raise ValueError(f"Duplicate model id '{model_id}'")
            self._models[model_id] = ModelState(
                model_id=model_id,
                log_loss_by_horizon=empty_horizon_map(self.horizons, list),
                time_to_pivot_ratios=empty_horizon_map(self.horizons, list),
            )

    def _require(self, model_id: str) -> ModelState:
        try:
            return self._models[model_id]
        except KeyError:
            raise UnknownModelError(model_id) from None

    def get_current_phase(self) -> int:
        return self._current_phase

    def advance_phase(self) -> None:
        """Move to the next phase. The counter never decreases."""
        if self._current_phase < FINAL_PHASE:
            self._current_phase += 1
            logger.debug("Advanced to phase %d", self._current_phase)

    def get_active_models(self) -> List[str]:
        """Active model ids in registration order."""
        return [m.model_id for m in self._models.values() if m.is_active]

    def get_eliminated_models(self) -> List[ModelState]:
        return [m for m in self._models.values() if not m.is_active]

    def get_all_model_states(self) -> List[ModelState]:
        return list(self._models.values())

    def get_model_state(self, model_id: str) -> ModelState:
        return self._require(model_id)

    def is_eliminated(self, model_id: str) -> bool:
        return not self._require(model_id).is_active

    def eliminate_model(self, model_id: str, phase: int, reason: str) -> bool:
        """
        Eliminate an active model.

        Args:
            model_id: Model to eliminate
            phase: Phase in which the elimination happened
            reason: Free-text reason kept for the audit trail

        Returns:
            True if the model was eliminated by this call, False if it was
            already eliminated

        Raises:
            UnknownModelError: If the model was never registered
        """
        state = self._require(model_id)
        if not state.is_active:
            return False

        state.is_active = False
        state.eliminated_in_phase = phase
        state.elimination_reason = reason
        self.elimination_events.append(EliminationEvent(model_id, phase, reason))
        logger.info("Eliminated %s in phase %d: %s", model_id, phase, reason)
        return True

    def add_round_score(self, model_id: str, score: RoundScore) -> None:
        """
        Append a completed round to a model's history.

        Raises:
            UnknownModelError: If the model was never registered
            RoundScoreError: If the score does not cover every horizon, or its
                round number does not follow the last stored round
        """
        state = self._require(model_id)
        score.validate(self.horizons)
        if state.round_scores and score.round_number <= state.round_scores[-1].round_number:
            raise RoundScoreError(
                f"{model_id}: round {score.round_number} is not after "
                f"round {state.round_scores[-1].round_number}"
            )

        state.round_scores.append(score)
        for h in self.horizons:
            state.log_loss_by_horizon[h].append(score.log_loss_by_horizon[h])
            ratio = score.pivot_ratio(h)
            if ratio is not None:
                state.time_to_pivot_ratios[h].append(ratio)

    def record_failed_round(self, model_id: str, round_number: int) -> None:
        """Record a round in which the model produced no usable prediction."""
        self._require(model_id).failed_rounds.append(round_number)
