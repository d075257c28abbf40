"""
Tournament runner.

Executes the phases strictly in order against one ModelStateManager:

    Phase 0 (sanity) -> Phase 1 (competence) -> Phase 2 (stability/regret)
    -> Phase 3 (validity, qualification, composite ranking)

The manager's phase counter is advanced after each eliminating phase, and a
phase refuses to run while the manager has not reached it.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .config import TournamentConfig
from .errors import PhaseOrderError
from .phase0 import RANDOM_BASELINE, run_phase0
from .phase1 import mean_log_loss_by_horizon, run_phase1
from .phase2 import run_phase2
from .phase3 import RankedModel, build_ranking_candidates, rank_models_per_horizon
from .qualification import (
    QualificationInput,
    QualificationResult,
    compute_prevalence_log_loss,
    count_labels,
    qualify_models,
)
from .state import FINAL_PHASE, EliminationEvent, ModelStateManager
from .validity import ModelValidity, check_model_validity

logger = logging.getLogger(__name__)


@dataclass
class HorizonSummary:
    """Label distribution of a horizon and whether it can support a ranking."""
    horizon: str
    true_count: int
    false_count: int
    p_true: float
    minority_count: int
    prevalence_log_loss: float
    random_log_loss: float
    is_rankable: bool
    rankability_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "horizon": self.horizon,
            "true_count": self.true_count,
            "false_count": self.false_count,
            "p_true": self.p_true,
            "minority_count": self.minority_count,
            "prevalence_log_loss": _json_number(self.prevalence_log_loss),
            "random_log_loss": self.random_log_loss,
            "is_rankable": self.is_rankable,
            "rankability_reason": self.rankability_reason,
        }


@dataclass
class Phase3Result:
    validity: Dict[str, ModelValidity]
    qualification: QualificationResult
    rankings: Dict[str, List[RankedModel]]
    horizon_summaries: Dict[str, HorizonSummary]


@dataclass
class TournamentResult:
    eliminations: List[EliminationEvent]
    qualification: QualificationResult
    rankings: Dict[str, List[RankedModel]]
    validity: Dict[str, ModelValidity] = field(default_factory=dict)
    horizon_summaries: Dict[str, HorizonSummary] = field(default_factory=dict)

    @property
    def qualified_by_model(self) -> Dict[str, set]:
        return self.qualification.qualified_by_model

    def to_dict(self, horizons: Sequence[str]) -> Dict[str, object]:
        """JSON-ready summary. Mask entries are listed in horizon order."""
        return {
            "eliminations": [e.to_dict() for e in self.eliminations],
            "qualified_by_model": {
                model_id: [h for h in horizons if h in qualified]
                for model_id, qualified in self.qualification.qualified_by_model.items()
            },
            "rankings": {
                h: [r.to_dict() for r in self.rankings.get(h, [])]
                for h in horizons
            },
            "invalid_horizons": {
                model_id: {h: v.failure_reasons for h, v in validity.invalid_horizons.items()}
                for model_id, validity in self.validity.items()
                if validity.invalid_horizons
            },
            "horizon_summaries": {
                h: self.horizon_summaries[h].to_dict()
                for h in horizons
                if h in self.horizon_summaries
            },
        }


def _json_number(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


def summarize_horizon(
    horizon: str,
    true_count: int,
    false_count: int,
    config: Optional[TournamentConfig] = None
) -> HorizonSummary:
    """
    Summarize a horizon's labels and decide whether it is rankable.

    A horizon is rankable when the minority class has enough samples and the
    positive rate lies inside the configured bounds. Analysis only; ranking
    is not suppressed for non-rankable horizons.
    """
    reporting = (config or TournamentConfig()).reporting
    total = true_count + false_count
    p_true = true_count / total if total > 0 else 0.0
    minority = min(true_count, false_count)
    low, high = reporting.rankable_prevalence_bounds

    reason = None
    if minority < reporting.min_minority_for_rankable:
        reason = f"Minority count {minority} < {reporting.min_minority_for_rankable}"
    elif not low <= p_true <= high:
        reason = f"p_true {p_true:.3f} outside [{low}, {high}]"

    return HorizonSummary(
        horizon=horizon,
        true_count=true_count,
        false_count=false_count,
        p_true=p_true,
        minority_count=minority,
        prevalence_log_loss=compute_prevalence_log_loss(true_count, false_count),
        random_log_loss=RANDOM_BASELINE,
        is_rankable=reason is None,
        rankability_reason=reason,
    )


def _require_phase(manager: ModelStateManager, phase: int) -> None:
    current = manager.get_current_phase()
    if current < phase:
        raise PhaseOrderError(
            f"Phase {phase} cannot run while the tournament is at phase {current}"
        )


def run_phase(
    manager: ModelStateManager,
    phase: int,
    config: Optional[TournamentConfig] = None
) -> List[EliminationEvent]:
    """
    Run one eliminating phase (0, 1 or 2).

    Raises:
        PhaseOrderError: If the manager has not reached the phase yet
        ValueError: If the phase is not an eliminating phase
    """
    config = config or TournamentConfig()
    phases: Dict[int, Callable[[], List[EliminationEvent]]] = {
        0: lambda: run_phase0(manager, config.phase0),
        1: lambda: run_phase1(manager, config.phase1),
        2: lambda: run_phase2(manager, config.phase2),
    }
    if phase not in phases:
        raise ValueError(f"Phase {phase} is not an eliminating phase")
    _require_phase(manager, phase)
    return phases[phase]()


def run_phase3(
    manager: ModelStateManager,
    config: Optional[TournamentConfig] = None
) -> Phase3Result:
    """
    Qualify and rank the surviving models. Eliminates nothing.

    Steps:
        1. Validity gates per model and horizon
        2. Label counts and prevalence log loss per horizon over survivors
        3. Qualification mask
        4. Composite ranking per horizon, filtered by the mask

    Raises:
        PhaseOrderError: If the manager has not reached phase 3
    """
    config = config or TournamentConfig()
    _require_phase(manager, FINAL_PHASE)
    horizons = manager.horizons

    survivors = [manager.get_model_state(m) for m in manager.get_active_models()]
    scored = [s for s in survivors if s.rounds_completed > 0]

    validity = {
        s.model_id: check_model_validity(s, horizons, config.validity)
        for s in survivors
    }

    summaries = {}
    prevalence = {}
    for h in horizons:
        true_count, false_count = count_labels(scored, h)
        summaries[h] = summarize_horizon(h, true_count, false_count, config)
        prevalence[h] = summaries[h].prevalence_log_loss

    qualification = qualify_models(
        [
            QualificationInput(
                model_id=s.model_id,
                mean_log_loss_by_horizon=mean_log_loss_by_horizon(s, horizons),
                valid_horizons=validity[s.model_id].valid_horizons,
            )
            for s in scored
        ],
        prevalence,
        horizons,
        config.qualification,
    )
    # Survivors without rounds still get a (empty) mask entry
    for s in survivors:
        qualification.qualified_by_model.setdefault(s.model_id, set())

    candidates = build_ranking_candidates(
        manager, qualification.qualified_by_model, horizons, config.phase2.window_size
    )
    rankings = rank_models_per_horizon(candidates, horizons, config.composite, config.phase1)

    logger.info(
        "Phase 3: %d survivors, %d qualified on at least one horizon",
        len(survivors),
        sum(1 for q in qualification.qualified_by_model.values() if q),
    )
    return Phase3Result(validity, qualification, rankings, summaries)


def run_tournament(
    manager: ModelStateManager,
    config: Optional[TournamentConfig] = None
) -> TournamentResult:
    """
    Run every remaining phase, from the manager's current phase to the end.

    Args:
        manager: State manager with all round scores added
        config: Tournament configuration

    Returns:
        TournamentResult with every elimination recorded by the manager,
        the qualification mask and per-horizon rankings
    """
    config = config or TournamentConfig()

    while manager.get_current_phase() < FINAL_PHASE:
        phase = manager.get_current_phase()
        run_phase(manager, phase, config)
        manager.advance_phase()

    phase3 = run_phase3(manager, config)
    return TournamentResult(
        eliminations=list(manager.elimination_events),
        qualification=phase3.qualification,
        rankings=phase3.rankings,
        validity=phase3.validity,
        horizon_summaries=phase3.horizon_summaries,
    )
