"""
Cross-horizon model quality profiles.

A profile pools a model's predictions across the horizons it is qualified
on and summarizes calibration and classification behaviour:
    - mean log loss and Brier score
    - calibration slope (least-squares slope of outcome on prediction)
    - Expected Calibration Error
    - TP / FP / FN rates at the 0.5 decision threshold
    - sample variance of predictions per horizon
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence, Set

import numpy as np

from .leaderboard import expected_calibration_error
from .records import ModelState, RoundScore, brier_score
from .stats import mean, sample_variance


@dataclass
class ConfusionCounts:
    tp: int = 0
    fp: int = 0
    tn: int = 0
    fn: int = 0

    @property
    def tp_rate(self) -> float:
        positives = self.tp + self.fn
        return self.tp / positives if positives else math.nan

    @property
    def fp_rate(self) -> float:
        negatives = self.fp + self.tn
        return self.fp / negatives if negatives else math.nan

    @property
    def fn_rate(self) -> float:
        positives = self.tp + self.fn
        return self.fn / positives if positives else math.nan


@dataclass
class ModelProfile:
    model_id: str
    mean_log_loss: float
    mean_brier: float
    calibration_slope: float
    expected_calibration_error: float
    tp_rate: float
    fp_rate: float
    fn_rate: float
    variance_by_horizon: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "model_id": self.model_id,
            "mean_log_loss": self.mean_log_loss,
            "mean_brier": self.mean_brier,
            "calibration_slope": self.calibration_slope,
            "expected_calibration_error": self.expected_calibration_error,
            "tp_rate": self.tp_rate,
            "fp_rate": self.fp_rate,
            "fn_rate": self.fn_rate,
            "variance_by_horizon": dict(self.variance_by_horizon),
        }


def calibration_slope(predictions: Sequence[float], labels: Sequence[bool]) -> float:
    """
    Least-squares slope of outcome (0/1) on predicted probability.

    1.0 is perfect calibration. NaN for fewer than 2 samples or when every
    prediction is identical.

    Raises:
        ValueError: If predictions and labels differ in length
    """
    if len(predictions) != len(labels):
        raise ValueError(
            f"Array length mismatch: predictions ({len(predictions)}) vs labels ({len(labels)})"
        )
    if len(predictions) < 2:
        return math.nan

    x = np.asarray(predictions, dtype=float)
    y = np.asarray([1.0 if label else 0.0 for label in labels])
    x_diff = x - x.mean()
    denominator = float(np.sum(x_diff ** 2))
    if denominator == 0:
        return math.nan
    return float(np.sum(x_diff * (y - y.mean())) / denominator)


def confusion_counts(predictions: Sequence[float], labels: Sequence[bool]) -> ConfusionCounts:
    counts = ConfusionCounts()
    for p, y in zip(predictions, labels):
        called = p > 0.5
        if called and y:
            counts.tp += 1
        elif called:
            counts.fp += 1
        elif y:
            counts.fn += 1
        else:
            counts.tn += 1
    return counts


def build_model_profile(
    model_id: str,
    rounds: Sequence[RoundScore],
    horizons: Sequence[str]
) -> ModelProfile:
    """
    Build a quality profile from a model's rounds, restricted to ``horizons``.

    Args:
        model_id: Model id
        rounds: Round scores
        horizons: Horizons to pool (the model's qualified horizons)

    Returns:
        ModelProfile; metrics are NaN where undefined
    """
    predictions: List[float] = []
    labels: List[bool] = []
    losses: List[float] = []
    for r in rounds:
        for h in horizons:
            predictions.append(r.predictions[h])
            labels.append(r.labels[h])
            losses.append(r.log_loss_by_horizon[h])

    counts = confusion_counts(predictions, labels)
    return ModelProfile(
        model_id=model_id,
        mean_log_loss=mean(losses),
        mean_brier=mean([brier_score(p, y) for p, y in zip(predictions, labels)]),
        calibration_slope=calibration_slope(predictions, labels),
        expected_calibration_error=expected_calibration_error(predictions, labels),
        tp_rate=counts.tp_rate,
        fp_rate=counts.fp_rate,
        fn_rate=counts.fn_rate,
        variance_by_horizon={
            h: sample_variance([r.predictions[h] for r in rounds]) for h in horizons
        },
    )


def build_model_profiles(
    states: Iterable[ModelState],
    qualified_by_model: Mapping[str, Set[str]],
    horizons: Sequence[str]
) -> List[ModelProfile]:
    """
    Profiles for every model qualified on at least one horizon.

    Only the model's qualified horizons feed its profile. Models with an
    empty mask, or without rounds, are omitted.
    """
    profiles = []
    for state in states:
        qualified = qualified_by_model.get(state.model_id, set())
        model_horizons = [h for h in horizons if h in qualified]
        if not model_horizons or state.rounds_completed == 0:
            continue
        profiles.append(build_model_profile(state.model_id, state.round_scores, model_horizons))
    return profiles
