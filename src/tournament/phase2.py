"""
Phase 2 - stability and regret filter.

Looks at the shape of each model's per-round log loss series: how much it
varies, and how bad its worst stretch is compared to the cohort.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .config import Phase2Config
from .state import EliminationEvent, ModelStateManager
from .stats import mean, median, population_variance, rolling_window_means

logger = logging.getLogger(__name__)


@dataclass
class StabilityMetrics:
    best_window: float
    worst_window: float
    variance: float


@dataclass
class Phase2ModelScore:
    model_id: str
    stability_by_horizon: Dict[str, StabilityMetrics]
    regret_by_horizon: Dict[str, float] = field(default_factory=dict)

    def variance(self, horizon: str) -> float:
        return self.stability_by_horizon[horizon].variance

    def worst_window(self, horizon: str) -> float:
        return self.stability_by_horizon[horizon].worst_window


def compute_stability_metrics(losses: Sequence[float], window_size: int = 3) -> StabilityMetrics:
    """
    Best/worst rolling-window mean and variance of a log loss series.

    With fewer rounds than the window, both windows fall back to the
    whole-series mean. An empty series gives zeros.
    """
    if len(losses) == 0:
        return StabilityMetrics(0.0, 0.0, 0.0)

    windows = rolling_window_means(losses, window_size)
    if not windows:
        windows = [mean(losses)]

    return StabilityMetrics(
        best_window=min(windows),
        worst_window=max(windows),
        variance=population_variance(losses),
    )


def compute_regret(worst_window: float, median_worst_window: float) -> float:
    """
    Regret as the ratio of a model's worst window to the cohort median.

    A zero median gives 1.0 when the model's own worst window is also zero
    and infinity otherwise.
    """
    if median_worst_window == 0:
        return 1.0 if worst_window == 0 else math.inf
    return worst_window / median_worst_window


def compute_median_variance(
    scores: Sequence[Phase2ModelScore],
    horizons: Sequence[str]
) -> Dict[str, float]:
    return {h: median([s.variance(h) for s in scores]) for h in horizons}


def assign_regret(scores: Sequence[Phase2ModelScore], horizons: Sequence[str]) -> None:
    """Fill regret_by_horizon against the cohort median worst window."""
    for h in horizons:
        median_worst = median([s.worst_window(h) for s in scores])
        for s in scores:
            s.regret_by_horizon[h] = compute_regret(s.worst_window(h), median_worst)


def phase2_elimination_reason(
    score: Phase2ModelScore,
    median_variance: Dict[str, float],
    config: Optional[Phase2Config] = None
) -> Optional[str]:
    config = config or Phase2Config()

    high_regret = [h for h, r in score.regret_by_horizon.items() if r > config.max_regret]
    if len(high_regret) >= config.min_regret_horizons:
        return f"High regret on {', '.join(high_regret)}"

    unstable = [
        h for h in score.stability_by_horizon
        if score.variance(h) > config.variance_multiplier * median_variance[h]
    ]
    if len(unstable) >= config.min_unstable_horizons:
        return f"Unstable on {', '.join(unstable)}"

    return None


def should_eliminate_phase2(
    score: Phase2ModelScore,
    median_variance: Dict[str, float],
    config: Optional[Phase2Config] = None
) -> bool:
    return phase2_elimination_reason(score, median_variance, config) is not None


def build_phase2_scores(
    manager: ModelStateManager,
    window_size: int
) -> List[Phase2ModelScore]:
    scores = []
    for model_id in manager.get_active_models():
        state = manager.get_model_state(model_id)
        if state.rounds_completed == 0:
            continue
        scores.append(Phase2ModelScore(
            model_id=model_id,
            stability_by_horizon={
                h: compute_stability_metrics(state.log_loss_by_horizon[h], window_size)
                for h in manager.horizons
            },
        ))
    return scores


def run_phase2(
    manager: ModelStateManager,
    config: Optional[Phase2Config] = None
) -> List[EliminationEvent]:
    """
    Run the stability/regret filter over the active cohort.

    Returns:
        Elimination events produced by this pass
    """
    config = config or Phase2Config()
    scores = build_phase2_scores(manager, config.window_size)

    assign_regret(scores, manager.horizons)
    median_variance = compute_median_variance(scores, manager.horizons)

    events: List[EliminationEvent] = []
    for score in scores:
        reason = phase2_elimination_reason(score, median_variance, config)
        if reason is not None and manager.eliminate_model(score.model_id, 2, reason):
            events.append(EliminationEvent(score.model_id, 2, reason))

    logger.info("Phase 2: %d of %d models eliminated", len(events), len(scores))
    return events
