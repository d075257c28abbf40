"""
Quintile calibration buckets.

Sorts (predicted, realized) samples by prediction and splits them into five
equal-count buckets. A well-calibrated forecaster shows a small gap between
mean predicted and mean realized value in every bucket.
"""

import math
from dataclasses import dataclass
from typing import Hashable, List, Mapping, Sequence

QUINTILE_LABELS = ("Q1 (lowest)", "Q2", "Q3", "Q4", "Q5 (highest)")


@dataclass
class QuintileSample:
    predicted: float
    realized: float


@dataclass
class QuintileBucket:
    label: str
    mean_predicted: float = 0.0
    mean_realized: float = 0.0
    gap: float = 0.0
    sample_count: int = 0


def bucket_by_quintile(samples: Sequence[QuintileSample]) -> List[QuintileBucket]:
    """
    Bucket samples into quintiles by predicted value.

    Always returns five buckets; buckets that receive no samples stay at
    zero.
    """
    buckets = [QuintileBucket(label) for label in QUINTILE_LABELS]
    if not samples:
        return buckets

    ordered = sorted(samples, key=lambda s: s.predicted)
    per_bucket = len(ordered) / len(buckets)
    for index, sample in enumerate(ordered):
        bucket = buckets[min(math.floor(index / per_bucket), len(buckets) - 1)]
        bucket.mean_predicted += sample.predicted
        bucket.mean_realized += sample.realized
        bucket.sample_count += 1

    for bucket in buckets:
        if bucket.sample_count > 0:
            bucket.mean_predicted /= bucket.sample_count
            bucket.mean_realized /= bucket.sample_count
            bucket.gap = bucket.mean_predicted - bucket.mean_realized
    return buckets


def collect_samples(
    predicted: Mapping[Hashable, float],
    realized: Mapping[Hashable, float]
) -> List[QuintileSample]:
    """Pair predicted and realized values by key; unmatched keys are dropped."""
    return [
        QuintileSample(value, realized[key])
        for key, value in predicted.items()
        if key in realized
    ]
