"""
Timing analytics (analysis only, never eliminates).

Measures how early a model called a move correctly, from the per-round
time-to-pivot ratio: the fraction of the horizon that had elapsed when the
pivot was detected. Lower is earlier.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from .horizons import horizon_duration_ms
from .records import ModelState, RoundScore
from .stats import mean


@dataclass
class TimingMetrics:
    has_timing_data: bool
    correct_prediction_count: int
    earliest_correct_prediction_ms: Optional[float]
    mean_time_to_detection_ratio: Optional[float]
    redundant_confirmations: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "has_timing_data": self.has_timing_data,
            "correct_prediction_count": self.correct_prediction_count,
            "earliest_correct_prediction_ms": self.earliest_correct_prediction_ms,
            "mean_time_to_detection_ratio": self.mean_time_to_detection_ratio,
            "redundant_confirmations": self.redundant_confirmations,
        }


def compute_timing_metrics(
    rounds: Sequence[RoundScore],
    horizons: Sequence[str]
) -> Dict[str, TimingMetrics]:
    """
    Compute timing metrics per horizon.

    A correct call is a round whose label is true and whose prediction is
    above 0.5. Correct calls without a pivot ratio carry no timing data;
    a horizon with none reports has_timing_data=False and None timings
    instead of pretending the model was late.

    Args:
        rounds: A model's round scores
        horizons: Horizon set

    Returns:
        TimingMetrics by horizon
    """
    by_horizon = {}
    for h in horizons:
        correct = [r for r in rounds if r.labels.get(h) is True and r.predictions.get(h, 0.0) > 0.5]
        ratios = [r.pivot_ratio(h) for r in correct]
        ratios = [v for v in ratios if v is not None]

        if not ratios:
            by_horizon[h] = TimingMetrics(
                has_timing_data=False,
                correct_prediction_count=len(correct),
                earliest_correct_prediction_ms=None,
                mean_time_to_detection_ratio=None,
                redundant_confirmations=max(0, len(correct) - 1),
            )
            continue

        by_horizon[h] = TimingMetrics(
            has_timing_data=True,
            correct_prediction_count=len(correct),
            earliest_correct_prediction_ms=min(ratios) * horizon_duration_ms(h),
            mean_time_to_detection_ratio=mean(ratios),
            redundant_confirmations=max(0, len(correct) - 1),
        )
    return by_horizon


def mean_pivot_ratio(state: ModelState, horizon: str) -> Optional[float]:
    """Mean recorded time-to-pivot ratio for a horizon, None when there is none."""
    ratios = state.time_to_pivot_ratios.get(horizon, [])
    if not ratios:
        return None
    return mean(ratios)
