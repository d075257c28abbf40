"""
Metric separability analysis.

For each profile metric, measures how much it spreads the cohort apart and
how well it agrees with the ordering by mean log loss. With fewer than
``min_models`` profiles the ``separates`` flag is left as None: not
computable, which is different from False.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .profiles import ModelProfile
from .stats import rank_values, spearman_correlation, standard_deviation, value_range

MIN_MODELS_FOR_SEPARABILITY = 3

SEPARABILITY_MIN_RANGE = 0.1
SEPARABILITY_MIN_STD = 0.05

METRICS: Tuple[Tuple[str, Callable[[ModelProfile], float]], ...] = (
    ("mean_log_loss", lambda p: p.mean_log_loss),
    ("mean_brier", lambda p: p.mean_brier),
    ("expected_calibration_error", lambda p: p.expected_calibration_error),
    ("tp_rate", lambda p: p.tp_rate),
    ("fp_rate", lambda p: p.fp_rate),
)


@dataclass
class MetricSeparability:
    metric_name: str
    range: float
    std_dev: float
    rank_correlation: float
    separates: Optional[bool]

    def to_dict(self):
        return {
            "metric_name": self.metric_name,
            "range": self.range,
            "std_dev": self.std_dev,
            "rank_correlation": self.rank_correlation,
            "separates": self.separates,
        }


def analyze_metric_separability(
    profiles: Sequence[ModelProfile],
    min_models: int = MIN_MODELS_FOR_SEPARABILITY
) -> List[MetricSeparability]:
    """
    Analyze every profile metric across the cohort.

    A metric separates models when its range exceeds 0.1 and its standard
    deviation exceeds 0.05.

    Args:
        profiles: One profile per model
        min_models: Smallest cohort for which ``separates`` is decided

    Returns:
        One MetricSeparability per metric, empty for no profiles
    """
    if not profiles:
        return []

    insufficient = len(profiles) < min_models
    reference_ranks = rank_values([p.mean_log_loss for p in profiles])

    results = []
    for name, accessor in METRICS:
        values = [accessor(p) for p in profiles]
        spread = value_range(values)
        std = standard_deviation(values)
        separates = None
        if not insufficient:
            separates = bool(spread > SEPARABILITY_MIN_RANGE and std > SEPARABILITY_MIN_STD)
        results.append(MetricSeparability(
            metric_name=name,
            range=spread,
            std_dev=std,
            rank_correlation=spearman_correlation(reference_ranks, rank_values(values)),
            separates=separates,
        ))
    return results
