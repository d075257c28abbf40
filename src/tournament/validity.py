"""
Per-horizon validity gates.

Decides on which horizons a model produced usable output at all. Only valid
horizons take part in that horizon's qualification.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .config import ValidityConfig
from .records import ModelState
from .stats import standard_deviation

logger = logging.getLogger(__name__)

# Confident-call bounds for the wrong-call rate
CONFIDENT_HIGH = 0.8
CONFIDENT_LOW = 0.2

FAILURE_REASONS = (
    "coverage",
    "failure_rate",
    "constant_predictor",
    "extreme_predictions",
    "extreme_wrong_rate",
)


@dataclass
class ValidityMetrics:
    effective_n: int
    total_n: int
    coverage: float
    failure_rate: float
    unique_p: int
    p_std_dev: float
    extreme_prediction_rate: float
    confident_wrong_rate: float


@dataclass
class HorizonValidity:
    horizon: str
    is_valid: bool
    failure_reasons: List[str]
    metrics: ValidityMetrics


@dataclass
class ModelValidity:
    model_id: str
    valid_horizons: List[str]
    invalid_horizons: Dict[str, HorizonValidity] = field(default_factory=dict)

    @property
    def is_fully_invalid(self) -> bool:
        return not self.valid_horizons


def _compute_metrics(
    predictions: Sequence[float],
    labels: Sequence[bool],
    failed_rounds: int,
    total_rounds: int,
    config: ValidityConfig
) -> ValidityMetrics:
    effective_n = len(predictions)
    extreme = sum(1 for p in predictions if p >= config.extreme_high or p <= config.extreme_low)
    confident_wrong = sum(
        1 for p, y in zip(predictions, labels)
        if (p > CONFIDENT_HIGH and not y) or (p < CONFIDENT_LOW and y)
    )
    return ValidityMetrics(
        effective_n=effective_n,
        total_n=total_rounds,
        coverage=effective_n / total_rounds if total_rounds > 0 else 0.0,
        failure_rate=failed_rounds / total_rounds if total_rounds > 0 else 0.0,
        unique_p=len({round(p, 6) for p in predictions}),
        p_std_dev=standard_deviation(predictions) if effective_n > 1 else 0.0,
        extreme_prediction_rate=extreme / effective_n if effective_n > 0 else 0.0,
        confident_wrong_rate=confident_wrong / effective_n if effective_n > 0 else 0.0,
    )


def _detect_failures(metrics: ValidityMetrics, config: ValidityConfig) -> List[str]:
    reasons = []
    if metrics.coverage < config.min_coverage:
        reasons.append("coverage")
    if metrics.failure_rate > config.max_failure_rate:
        reasons.append("failure_rate")

    is_constant = (
        metrics.unique_p <= config.constant_max_unique
        and metrics.p_std_dev <= config.constant_max_std
    )
    if is_constant and metrics.effective_n > 1:
        reasons.append("constant_predictor")

    if metrics.extreme_prediction_rate > config.max_extreme_prediction_rate:
        reasons.append("extreme_predictions")
    if metrics.confident_wrong_rate > config.extreme_wrong_rate:
        reasons.append("extreme_wrong_rate")
    return reasons


def check_horizon_validity(
    predictions: Sequence[float],
    labels: Sequence[bool],
    failed_rounds: int,
    total_rounds: int,
    horizon: str,
    config: Optional[ValidityConfig] = None
) -> HorizonValidity:
    """
    Check one horizon's prediction series against the validity gates.

    Args:
        predictions: Predictions for the horizon, one per completed round
        labels: Matching outcomes
        failed_rounds: Rounds with no usable prediction
        total_rounds: Intended rounds (completed + failed)
        horizon: Horizon id
        config: Gate thresholds

    Returns:
        HorizonValidity with failure reasons and the metrics behind them

    Raises:
        ValueError: If predictions and labels differ in length
    """
    config = config or ValidityConfig()
    if len(predictions) != len(labels):
        raise ValueError(
            f"Length mismatch: predictions ({len(predictions)}) vs labels ({len(labels)})"
        )
    metrics = _compute_metrics(predictions, labels, failed_rounds, total_rounds, config)
    reasons = _detect_failures(metrics, config)
    return HorizonValidity(horizon, not reasons, reasons, metrics)


def check_model_validity(
    state: ModelState,
    horizons: Sequence[str],
    config: Optional[ValidityConfig] = None
) -> ModelValidity:
    """Run the validity gates on every horizon of one model."""
    config = config or ValidityConfig()
    failed = len(state.failed_rounds)
    total = state.rounds_completed + failed

    result = ModelValidity(model_id=state.model_id, valid_horizons=[])
    for h in horizons:
        check = check_horizon_validity(
            state.predictions_for(h), state.labels_for(h), failed, total, h, config
        )
        if check.is_valid:
            result.valid_horizons.append(h)
        else:
            result.invalid_horizons[h] = check
            logger.debug("%s invalid on %s: %s", state.model_id, h, ", ".join(check.failure_reasons))
    return result
