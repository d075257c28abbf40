"""
Small numeric helpers shared by the phase filters and reports.

All functions accept plain sequences and return Python floats.
"""

import math
from typing import List, Sequence

import numpy as np
from scipy.stats import rankdata


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean, NaN for an empty sequence."""
    if len(values) == 0:
        return math.nan
    return float(np.mean(values))


def population_variance(values: Sequence[float]) -> float:
    """Population variance (n denominator), 0.0 for fewer than 2 values."""
    if len(values) < 2:
        return 0.0
    return float(np.var(values))


def sample_variance(values: Sequence[float]) -> float:
    """Sample variance (n - 1 denominator), NaN for fewer than 2 values."""
    if len(values) < 2:
        return math.nan
    return float(np.var(values, ddof=1))


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation over the non-NaN values."""
    valid = [v for v in values if not math.isnan(v)]
    if len(valid) < 2:
        return math.nan
    return float(np.std(valid))


def value_range(values: Sequence[float]) -> float:
    """max - min over the non-NaN values, NaN if none."""
    valid = [v for v in values if not math.isnan(v)]
    if not valid:
        return math.nan
    return float(max(valid) - min(valid))


def median(values: Sequence[float]) -> float:
    """
    Median of a sequence.

    Even-sized inputs average the two middle values; a single value is its
    own median; an empty sequence gives 0.0.
    """
    if len(values) == 0:
        return 0.0
    return float(np.median(values))


def rolling_window_means(values: Sequence[float], window: int) -> List[float]:
    """Means of every contiguous window of the given size."""
    if window <= 0:
        raise ValueError("window must be positive")
    if len(values) < window:
        return []
    kernel = np.ones(window) / window
    return [float(v) for v in np.convolve(np.asarray(values, dtype=float), kernel, mode="valid")]


def rank_values(values: Sequence[float]) -> List[float]:
    """1-based ranks, ties share their average rank."""
    if len(values) == 0:
        return []
    return [float(r) for r in rankdata(values, method="average")]


def spearman_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Spearman rank correlation: 1 - 6 * sum(d^2) / (n * (n^2 - 1)).

    Returns NaN for fewer than 2 points.

    Raises:
        ValueError: If the sequences differ in length
    """
    if len(x) != len(y):
        raise ValueError(f"Length mismatch: x ({len(x)}) vs y ({len(y)})")
    n = len(x)
    if n < 2:
        return math.nan

    d = np.asarray(rank_values(x)) - np.asarray(rank_values(y))
    return float(1 - (6 * np.sum(d ** 2)) / (n * (n ** 2 - 1)))
