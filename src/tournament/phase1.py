"""
Phase 1 - competence filter.

Ranks active models against each other per horizon and removes models with
no horizon of strength. Specialists (strong on one horizon, mediocre
elsewhere) survive.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .config import Phase1Config
from .records import ModelState
from .state import EliminationEvent, ModelStateManager
from .stats import mean

logger = logging.getLogger(__name__)


@dataclass
class Phase1ModelScore:
    model_id: str
    mean_log_loss: Dict[str, float]


def mean_log_loss_by_horizon(state: ModelState, horizons: Sequence[str]) -> Dict[str, float]:
    """Per-horizon mean log loss over all of a model's rounds."""
    return {h: mean(state.log_loss_by_horizon[h]) for h in horizons}


def compute_percentile_ranks(
    scores: Sequence[Phase1ModelScore],
    horizons: Sequence[str],
    config: Optional[Phase1Config] = None
) -> Dict[str, Dict[str, float]]:
    """
    Cohort-relative percentile rank per model and horizon.

    percentile = 100 * (1 - strictly_better / n), where strictly_better counts
    cohort members with a strictly lower mean log loss. Lower log loss gives
    a higher percentile.

    Cohorts smaller than ``min_cohort`` get ``default_percentile`` (50)
    everywhere; a distribution over fewer than 3 points is not meaningful.

    Args:
        scores: One entry per cohort member
        horizons: Horizon set

    Returns:
        Mapping of model id to percentile by horizon
    """
    config = config or Phase1Config()
    n = len(scores)

    if n < config.min_cohort:
        return {
            s.model_id: {h: config.default_percentile for h in horizons}
            for s in scores
        }

    ranks: Dict[str, Dict[str, float]] = {s.model_id: {} for s in scores}
    for h in horizons:
        values = [s.mean_log_loss[h] for s in scores]
        for s in scores:
            own = s.mean_log_loss[h]
            strictly_better = sum(1 for v in values if v < own)
            ranks[s.model_id][h] = 100.0 * (1 - strictly_better / n)
    return ranks


def phase1_elimination_reason(
    percentiles: Dict[str, float],
    config: Optional[Phase1Config] = None
) -> Optional[str]:
    """
    Elimination reason for one model's percentiles, or None to keep.

    Eliminates models in the bottom quartile on several horizons, and models
    with no horizon reaching the top quartile.
    """
    config = config or Phase1Config()
    weak = [h for h, p in percentiles.items() if p < config.bottom_quartile]
    if len(weak) >= config.min_bottom_horizons:
        return f"Bottom quartile on {', '.join(weak)}"

    if not any(p >= config.strength_percentile for p in percentiles.values()):
        return "No horizon strength"

    return None


def should_eliminate_phase1(
    percentiles: Dict[str, float],
    config: Optional[Phase1Config] = None
) -> bool:
    return phase1_elimination_reason(percentiles, config) is not None


def run_phase1(
    manager: ModelStateManager,
    config: Optional[Phase1Config] = None
) -> List[EliminationEvent]:
    """
    Run the competence filter over the active cohort.

    Models without any completed round are left out of the cohort.

    Returns:
        Elimination events produced by this pass
    """
    config = config or Phase1Config()
    horizons = manager.horizons

    scores = []
    for model_id in manager.get_active_models():
        state = manager.get_model_state(model_id)
        if state.rounds_completed == 0:
            logger.debug("Phase 1: %s has no rounds, skipping", model_id)
            continue
        scores.append(Phase1ModelScore(model_id, mean_log_loss_by_horizon(state, horizons)))

    events: List[EliminationEvent] = []
    if len(scores) < config.min_cohort:
        # Default percentiles carry no ranking information
        logger.info("Phase 1: cohort of %d is below %d, no eliminations", len(scores), config.min_cohort)
        return events

    percentile_ranks = compute_percentile_ranks(scores, horizons, config)

    for score in scores:
        reason = phase1_elimination_reason(percentile_ranks[score.model_id], config)
        if reason is not None and manager.eliminate_model(score.model_id, 1, reason):
            events.append(EliminationEvent(score.model_id, 1, reason))

    logger.info("Phase 1: %d of %d models eliminated", len(events), len(scores))
    return events
