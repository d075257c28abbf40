"""
Phase 0 - sanity filter.

Cheap round-level elimination of models whose output is degenerate or
wildly miscalibrated. Only models with enough completed rounds are judged;
the rest are left alone until more data arrives.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .config import Phase0Config
from .records import RoundScore, log_loss
from .state import EliminationEvent, ModelStateManager
from .stats import mean

logger = logging.getLogger(__name__)

# Log loss of an uninformative 0.5 forecast on a balanced binary outcome
RANDOM_BASELINE = math.log(2)

BASELINE_EPSILON = 1e-15


@dataclass
class Phase0Aggregate:
    mean_log_loss: Dict[str, float]
    extreme_error_rate: Dict[str, float]
    degenerate_pattern: bool


@dataclass
class BaselineLogLoss:
    """Log loss of trivial constant strategies on a label set."""
    random: float
    always_false: float
    always_true: float
    trivial_best: float


def compute_baseline_log_loss(labels: Sequence[bool]) -> BaselineLogLoss:
    """
    Compute baseline log loss values for a set of labels.

    - random: always predict 0.5 (ln 2 regardless of labels)
    - always_false / always_true: predict epsilon / 1 - epsilon
    - trivial_best: the better of the two constant strategies

    Args:
        labels: Observed binary outcomes

    Returns:
        BaselineLogLoss (all constant baselines 0.0 for no labels)
    """
    if not labels:
        return BaselineLogLoss(RANDOM_BASELINE, 0.0, 0.0, 0.0)

    always_false = mean([log_loss(BASELINE_EPSILON, y, BASELINE_EPSILON) for y in labels])
    always_true = mean([log_loss(1 - BASELINE_EPSILON, y, BASELINE_EPSILON) for y in labels])
    return BaselineLogLoss(
        random=RANDOM_BASELINE,
        always_false=always_false,
        always_true=always_true,
        trivial_best=min(always_false, always_true),
    )


def detect_degenerate_pattern(
    rounds: Sequence[RoundScore],
    horizons: Sequence[str],
    config: Phase0Config
) -> bool:
    """
    True when the most recent rounds are all near-constant extreme calls.

    Looks at the last ``degenerate_window`` rounds: every prediction on every
    horizon at or above ``degenerate_threshold`` means the model is not
    discriminating at all.
    """
    if len(rounds) < config.degenerate_window:
        return False
    recent = rounds[-config.degenerate_window:]
    return all(
        r.predictions[h] >= config.degenerate_threshold
        for r in recent
        for h in horizons
    )


def aggregate_phase0(
    rounds: Sequence[RoundScore],
    horizons: Sequence[str],
    config: Optional[Phase0Config] = None
) -> Phase0Aggregate:
    """
    Aggregate a model's rounds into Phase 0 statistics.

    Args:
        rounds: Chronological round scores (at least one)
        horizons: Horizon set
        config: Phase 0 thresholds

    Returns:
        Phase0Aggregate with per-horizon mean log loss and extreme error rate
    """
    config = config or Phase0Config()
    mean_ll: Dict[str, float] = {}
    extreme_rate: Dict[str, float] = {}

    for h in horizons:
        mean_ll[h] = mean([r.log_loss_by_horizon[h] for r in rounds])
        # Confident and wrong
        extreme = [
            r.predictions[h] > config.extreme_prediction and not r.labels[h]
            for r in rounds
        ]
        extreme_rate[h] = sum(extreme) / len(extreme) if extreme else 0.0

    return Phase0Aggregate(
        mean_log_loss=mean_ll,
        extreme_error_rate=extreme_rate,
        degenerate_pattern=detect_degenerate_pattern(rounds, horizons, config),
    )


def phase0_elimination_reason(
    aggregate: Phase0Aggregate,
    config: Optional[Phase0Config] = None
) -> Optional[str]:
    """
    Return the elimination reason for a Phase 0 aggregate, or None to keep.

    First match wins: degenerate pattern, then high log loss on multiple
    horizons, then extreme errors on any horizon.
    """
    config = config or Phase0Config()
    if aggregate.degenerate_pattern:
        return "Degenerate pattern"

    threshold = RANDOM_BASELINE * config.log_loss_multiplier
    bad = [h for h, ll in aggregate.mean_log_loss.items() if ll > threshold]
    if len(bad) >= config.min_bad_horizons:
        return f"High log loss on {', '.join(bad)}"

    extreme = [
        h for h, rate in aggregate.extreme_error_rate.items()
        if rate > config.max_extreme_error_rate
    ]
    if extreme:
        return f"Extreme errors on {', '.join(extreme)}"

    return None


def should_eliminate_phase0(
    aggregate: Phase0Aggregate,
    config: Optional[Phase0Config] = None
) -> bool:
    return phase0_elimination_reason(aggregate, config) is not None


def run_phase0(
    manager: ModelStateManager,
    config: Optional[Phase0Config] = None
) -> List[EliminationEvent]:
    """
    Run the sanity filter over every active model.

    Models with fewer than ``min_rounds`` completed rounds produce no
    decision.

    Returns:
        Elimination events produced by this pass
    """
    config = config or Phase0Config()
    events: List[EliminationEvent] = []
    skipped = 0

    for model_id in manager.get_active_models():
        state = manager.get_model_state(model_id)
        if state.rounds_completed < config.min_rounds:
            logger.debug("Phase 0: %s has %d rounds, skipping", model_id, state.rounds_completed)
            skipped += 1
            continue

        aggregate = aggregate_phase0(state.round_scores, manager.horizons, config)
        reason = phase0_elimination_reason(aggregate, config)
        if reason is not None and manager.eliminate_model(model_id, 0, reason):
            events.append(EliminationEvent(model_id, 0, reason))

    logger.info("Phase 0: %d eliminated, %d skipped for insufficient rounds", len(events), skipped)
    return events
