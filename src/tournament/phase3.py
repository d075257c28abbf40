"""
Phase 3 - composite ranking.

Terminal and non-eliminating: orders the qualified models of each horizon by
a weighted composite of percentile rank, best-window log loss, stability and
pivot timing.

    score = w_p * percentile / 100
          + w_b * max(0, 1 - best_window / best_window_max)
          + w_s * max(0, 1 - stability / stability_max)
          + w_t * max(0, 1 - pivot_ratio / pivot_max)
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Set

from .config import CompositeConfig, Phase1Config
from .phase1 import Phase1ModelScore, compute_percentile_ranks
from .phase2 import compute_stability_metrics
from .state import ModelStateManager
from .stats import mean
from .timing import mean_pivot_ratio

logger = logging.getLogger(__name__)


@dataclass
class HorizonMetrics:
    log_loss: float
    best_window: float
    stability: float
    pivot_ratio: Optional[float] = None


@dataclass
class RankingCandidate:
    model_id: str
    horizon_metrics: Dict[str, HorizonMetrics]
    qualified_horizons: Set[str] = field(default_factory=set)


@dataclass
class RankedModel:
    model_id: str
    score: float
    log_loss: float
    best_window: float
    stability: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "model_id": self.model_id,
            "score": self.score,
            "log_loss": self.log_loss,
            "best_window": self.best_window,
            "stability": self.stability,
        }


def normalize_lower_is_better(value: float, constant: float) -> float:
    """Map a lower-is-better metric onto [0, 1] against a fixed typical maximum."""
    return max(0.0, 1.0 - value / constant)


def compute_composite_score(
    percentile_rank: float,
    best_window: float,
    stability: float,
    pivot_ratio: Optional[float] = None,
    config: Optional[CompositeConfig] = None
) -> float:
    """
    Weighted composite score, higher is better.

    Args:
        percentile_rank: Cohort percentile, 0-100
        best_window: Best rolling-window mean log loss
        stability: Log loss variance
        pivot_ratio: Mean time-to-pivot ratio; default used when None
        config: Weights and normalization constants

    Returns:
        Composite score in [0, 1] for weights summing to 1
    """
    config = config or CompositeConfig()
    if pivot_ratio is None:
        pivot_ratio = config.default_pivot_ratio

    w_percentile, w_best, w_stability, w_pivot = config.weights
    return (
        w_percentile * (percentile_rank / 100.0)
        + w_best * normalize_lower_is_better(best_window, config.best_window_max)
        + w_stability * normalize_lower_is_better(stability, config.stability_max)
        + w_pivot * normalize_lower_is_better(pivot_ratio, config.pivot_max)
    )


def _has_finite_metrics(metrics: HorizonMetrics) -> bool:
    values = [metrics.log_loss, metrics.best_window, metrics.stability]
    if metrics.pivot_ratio is not None:
        values.append(metrics.pivot_ratio)
    return all(math.isfinite(v) for v in values)


def rank_models_for_horizon(
    candidates: Sequence[RankingCandidate],
    horizon: str,
    config: Optional[CompositeConfig] = None,
    percentile_config: Optional[Phase1Config] = None
) -> List[RankedModel]:
    """
    Rank the qualified candidates of one horizon.

    A candidate takes part iff the horizon is in its qualified set.
    Percentile ranks are computed within that cohort.

    Args:
        candidates: All surviving models
        horizon: Horizon id
        config: Composite weights, constants and optional arena size
        percentile_config: Cohort minimum and default percentile

    Returns:
        Ranked models, score descending then model id ascending

    Raises:
        ValueError: If a qualified candidate has missing or non-finite
            metrics for the horizon
    """
    config = config or CompositeConfig()
    percentile_config = percentile_config or Phase1Config()

    eligible = []
    for c in candidates:
        if horizon not in c.qualified_horizons:
            continue
        metrics = c.horizon_metrics.get(horizon)
        if metrics is None or not _has_finite_metrics(metrics):
            raise ValueError(f"{c.model_id} has no finite metrics on {horizon}: {metrics!r}")
        eligible.append((c.model_id, metrics))

    if not eligible:
        return []

    percentiles = compute_percentile_ranks(
        [Phase1ModelScore(model_id, {horizon: m.log_loss}) for model_id, m in eligible],
        [horizon],
        percentile_config,
    )

    ranked = [
        RankedModel(
            model_id=model_id,
            score=compute_composite_score(
                percentiles[model_id][horizon], m.best_window, m.stability, m.pivot_ratio, config
            ),
            log_loss=m.log_loss,
            best_window=m.best_window,
            stability=m.stability,
        )
        for model_id, m in eligible
    ]
    ranked.sort(key=lambda r: (-r.score, r.model_id))
    logger.debug("Phase 3: ranked %d models on %s", len(ranked), horizon)

    if config.arena_size is not None:
        ranked = ranked[:config.arena_size]
    return ranked


def rank_models_per_horizon(
    candidates: Sequence[RankingCandidate],
    horizons: Sequence[str],
    config: Optional[CompositeConfig] = None,
    percentile_config: Optional[Phase1Config] = None
) -> Dict[str, List[RankedModel]]:
    return {
        h: rank_models_for_horizon(candidates, h, config, percentile_config)
        for h in horizons
    }


def build_ranking_candidates(
    manager: ModelStateManager,
    qualified_by_model: Mapping[str, Set[str]],
    horizons: Sequence[str],
    window_size: int = 3
) -> List[RankingCandidate]:
    """
    Build ranking candidates for every active model with at least one round.

    Args:
        manager: State manager after Phase 2
        qualified_by_model: Qualification mask
        horizons: Horizon set
        window_size: Rolling window for best-window log loss

    Returns:
        One candidate per active model, carrying its qualified horizons
    """
    candidates = []
    for model_id in manager.get_active_models():
        state = manager.get_model_state(model_id)
        if state.rounds_completed == 0:
            continue
        metrics = {}
        for h in horizons:
            losses = state.log_loss_by_horizon[h]
            stability = compute_stability_metrics(losses, window_size)
            metrics[h] = HorizonMetrics(
                log_loss=mean(losses),
                best_window=stability.best_window,
                stability=stability.variance,
                pivot_ratio=mean_pivot_ratio(state, h),
            )
        candidates.append(RankingCandidate(
            model_id=model_id,
            horizon_metrics=metrics,
            qualified_horizons=set(qualified_by_model.get(model_id, set())),
        ))
    return candidates
