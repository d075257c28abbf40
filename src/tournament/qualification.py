"""
Per-horizon qualification.

Produces the qualification mask: for every surviving model, the set of
horizons on which it is eligible to be ranked. Every downstream view filters
by this mask.

Modes:
    prevalence_margin - beat the "always predict the base rate" log loss
                        by at most a margin
    top_percent       - keep the best fraction of the cohort by log loss
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .config import QualificationConfig
from .records import ModelState

logger = logging.getLogger(__name__)


@dataclass
class QualificationInput:
    model_id: str
    mean_log_loss_by_horizon: Dict[str, float]
    valid_horizons: Sequence[str]


@dataclass
class HorizonQualification:
    horizon: str
    qualified_models: List[str]
    disqualified_models: List[str]
    threshold: float
    prevalence_log_loss: float


@dataclass
class QualificationResult:
    by_horizon: Dict[str, HorizonQualification]
    qualified_by_model: Dict[str, Set[str]] = field(default_factory=dict)

    def is_qualified(self, model_id: str, horizon: str) -> bool:
        return horizon in self.qualified_by_model.get(model_id, set())


def compute_prevalence_log_loss(true_count: int, false_count: int) -> float:
    """
    Log loss of always predicting the empirical base rate.

    Equals the binary entropy -(p ln p + (1 - p) ln(1 - p)) with
    p = true / (true + false). Infinite when there are no labels or when
    p is exactly 0 or 1.
    """
    total = true_count + false_count
    if total == 0:
        return math.inf
    p_true = true_count / total
    if p_true == 0.0 or p_true == 1.0:
        return math.inf
    p_false = 1 - p_true
    return -(p_true * math.log(p_true) + p_false * math.log(p_false))


def count_labels(states: Iterable[ModelState], horizon: str) -> Tuple[int, int]:
    """Count (true, false) labels for a horizon across the given models' rounds."""
    true_count = 0
    false_count = 0
    for state in states:
        for label in state.labels_for(horizon):
            if label:
                true_count += 1
            else:
                false_count += 1
    return true_count, false_count


def qualify_models_for_horizon(
    models: Sequence[QualificationInput],
    horizon: str,
    prevalence_log_loss: float,
    config: Optional[QualificationConfig] = None
) -> HorizonQualification:
    """
    Qualify models for a single horizon.

    Only models listing the horizon among their valid horizons are
    considered.

    Args:
        models: Candidate models
        horizon: Horizon id
        prevalence_log_loss: Base-rate log loss for the horizon
        config: Qualification mode and parameters

    Returns:
        HorizonQualification for the horizon
    """
    config = config or QualificationConfig()
    candidates = [m for m in models if horizon in m.valid_horizons]

    if not candidates:
        return HorizonQualification(
            horizon, [], [], prevalence_log_loss + config.prevalence_margin, prevalence_log_loss
        )

    if config.mode == "prevalence_margin":
        threshold = prevalence_log_loss + config.prevalence_margin
        qualified = [
            m.model_id for m in candidates
            if m.mean_log_loss_by_horizon[horizon] <= threshold
        ]
    elif config.mode == "top_percent":
        ordered = sorted(
            candidates,
            key=lambda m: (m.mean_log_loss_by_horizon[horizon], m.model_id)
        )
        keep = max(1, math.ceil(len(ordered) * config.top_percent))
        kept = ordered[:keep]
        threshold = kept[-1].mean_log_loss_by_horizon[horizon]
        kept_ids = {m.model_id for m in kept}
        qualified = [m.model_id for m in candidates if m.model_id in kept_ids]
    else:
        raise ValueError(f"Unknown qualification mode '{config.mode}'")

    qualified_set = set(qualified)
    disqualified = [m.model_id for m in candidates if m.model_id not in qualified_set]
    return HorizonQualification(horizon, qualified, disqualified, threshold, prevalence_log_loss)


def qualify_models(
    models: Sequence[QualificationInput],
    prevalence_by_horizon: Dict[str, float],
    horizons: Sequence[str],
    config: Optional[QualificationConfig] = None
) -> QualificationResult:
    """
    Qualify models on every horizon and build the qualification mask.

    Every input model gets an entry in ``qualified_by_model``, possibly an
    empty set.
    """
    config = config or QualificationConfig()
    result = QualificationResult(
        by_horizon={},
        qualified_by_model={m.model_id: set() for m in models},
    )

    for h in horizons:
        horizon_result = qualify_models_for_horizon(models, h, prevalence_by_horizon[h], config)
        result.by_horizon[h] = horizon_result
        for model_id in horizon_result.qualified_models:
            result.qualified_by_model[model_id].add(h)
        logger.info(
            "Qualification %s (%s): %d qualified, %d disqualified, threshold %.4f",
            h, config.mode, len(horizon_result.qualified_models),
            len(horizon_result.disqualified_models), horizon_result.threshold,
        )

    return result
