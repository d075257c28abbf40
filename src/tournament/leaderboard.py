"""
Per-horizon leaderboards.

Read-only view over model histories. A model appears on horizon h's
leaderboard only when h is in its qualification mask; having data for h is
not enough.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .config import ReportingConfig
from .records import ModelState, brier_score
from .stats import mean

ECE_BIN_COUNT = 10

# Below this many samples calibration error is noise
MIN_SAMPLES_FOR_CALIBRATION = 20


def _check_lengths(predictions: Sequence[float], labels: Sequence[bool]) -> None:
    if len(predictions) != len(labels):
        raise ValueError(
            f"Array length mismatch: predictions ({len(predictions)}) vs labels ({len(labels)})"
        )


def win_rate(predictions: Sequence[float], labels: Sequence[bool]) -> float:
    """Fraction of rounds where (p > 0.5) matches the label. NaN when empty."""
    _check_lengths(predictions, labels)
    if not predictions:
        return math.nan
    correct = sum(1 for p, y in zip(predictions, labels) if (p > 0.5) == y)
    return correct / len(predictions)


def precision(predictions: Sequence[float], labels: Sequence[bool]) -> float:
    """TP / (TP + FP) over positive calls (p > 0.5). NaN without positive calls."""
    _check_lengths(predictions, labels)
    positives = [y for p, y in zip(predictions, labels) if p > 0.5]
    if not positives:
        return math.nan
    return sum(1 for y in positives if y) / len(positives)


def expected_calibration_error(
    predictions: Sequence[float],
    labels: Sequence[bool],
    bins: int = ECE_BIN_COUNT
) -> float:
    """
    Expected Calibration Error over equal-width probability bins.

    Each bin contributes |mean predicted - observed frequency| weighted by
    its share of the samples. A prediction of exactly 1.0 falls in the last
    bin. NaN when empty.
    """
    _check_lengths(predictions, labels)
    n = len(predictions)
    if n == 0:
        return math.nan

    sums = [0.0] * bins
    positives = [0] * bins
    counts = [0] * bins
    for p, y in zip(predictions, labels):
        index = min(int(math.floor(p * bins)), bins - 1)
        sums[index] += p
        counts[index] += 1
        if y:
            positives[index] += 1

    ece = 0.0
    for total, hits, count in zip(sums, positives, counts):
        if count == 0:
            continue
        ece += (count / n) * abs(total / count - hits / count)
    return ece


def calibration_error(
    predictions: Sequence[float],
    labels: Sequence[bool],
    min_samples: int = MIN_SAMPLES_FOR_CALIBRATION,
    bins: int = ECE_BIN_COUNT
) -> float:
    """ECE, or NaN when there are fewer than ``min_samples`` samples."""
    if len(predictions) < min_samples:
        return math.nan
    return expected_calibration_error(predictions, labels, bins)


@dataclass
class ModelScoreData:
    log_losses: List[float]
    briers: List[float]
    predictions: List[float]
    labels: List[bool]


@dataclass
class LeaderboardEntry:
    model_id: str
    rank: int
    mean_log_loss: float
    mean_brier: float
    win_rate: float
    precision: float
    calibration_error: float
    rounds_played: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "model_id": self.model_id,
            "rank": self.rank,
            "mean_log_loss": self.mean_log_loss,
            "mean_brier": self.mean_brier,
            "win_rate": self.win_rate,
            "precision": self.precision,
            "calibration_error": self.calibration_error,
            "rounds_played": self.rounds_played,
        }


@dataclass
class HorizonLeaderboard:
    horizon: str
    entries: List[LeaderboardEntry] = field(default_factory=list)


def build_leaderboard_data(
    states: Iterable[ModelState],
    qualified_by_model: Mapping[str, Set[str]],
    horizons: Sequence[str]
) -> Dict[str, Dict[str, ModelScoreData]]:
    """
    Collect per-horizon score data for every qualified model.

    Eliminated models are not filtered here: the mask alone decides. Models
    missing from the mask are treated as qualified nowhere.

    Returns:
        Mapping of horizon to model id to score data
    """
    data: Dict[str, Dict[str, ModelScoreData]] = {h: {} for h in horizons}
    for state in states:
        qualified = qualified_by_model.get(state.model_id, set())
        for h in horizons:
            if h not in qualified or not state.log_loss_by_horizon.get(h):
                continue
            predictions = state.predictions_for(h)
            labels = state.labels_for(h)
            data[h][state.model_id] = ModelScoreData(
                log_losses=list(state.log_loss_by_horizon[h]),
                briers=[brier_score(p, y) for p, y in zip(predictions, labels)],
                predictions=predictions,
                labels=labels,
            )
    return data


def _sort_key(entry: LeaderboardEntry):
    is_nan = math.isnan(entry.mean_log_loss)
    return (is_nan, 0.0 if is_nan else entry.mean_log_loss, entry.model_id)


def generate_leaderboard(
    horizon: str,
    model_scores: Mapping[str, ModelScoreData],
    config: Optional[ReportingConfig] = None
) -> HorizonLeaderboard:
    """
    Rank models on one horizon by mean log loss (lower is better).

    NaN log losses sort last; ties break by model id. Ranks are 1-based.
    """
    config = config or ReportingConfig()

    entries = []
    for model_id, data in model_scores.items():
        entries.append(LeaderboardEntry(
            model_id=model_id,
            rank=0,
            mean_log_loss=mean(data.log_losses),
            mean_brier=mean(data.briers),
            win_rate=win_rate(data.predictions, data.labels),
            precision=precision(data.predictions, data.labels),
            calibration_error=calibration_error(
                data.predictions, data.labels,
                config.min_calibration_samples, config.calibration_bins,
            ),
            rounds_played=len(data.predictions),
        ))

    entries.sort(key=_sort_key)
    for rank, entry in enumerate(entries, start=1):
        entry.rank = rank
    return HorizonLeaderboard(horizon=horizon, entries=entries)


def generate_leaderboards(
    states: Iterable[ModelState],
    qualified_by_model: Mapping[str, Set[str]],
    horizons: Sequence[str],
    config: Optional[ReportingConfig] = None
) -> Dict[str, HorizonLeaderboard]:
    """Build every horizon's leaderboard from model histories and the mask."""
    data = build_leaderboard_data(states, qualified_by_model, horizons)
    return {
        h: generate_leaderboard(h, data[h], config)
        for h in horizons
    }
