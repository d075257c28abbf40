"""
Round score records and per-model state.

A RoundScore is produced by an external scorer once per model per completed
round and is immutable afterwards. ModelState is the mutable per-model record
owned by the ModelStateManager.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import RoundScoreError
from .horizons import require_total

# Clamp for log(0)
LOG_LOSS_EPSILON = 1e-15


def log_loss(prediction: float, label: bool, epsilon: float = LOG_LOSS_EPSILON) -> float:
    """
    Binary log loss for a single prediction.

    LL = -[y * ln(p) + (1 - y) * ln(1 - p)], with p clamped to
    [epsilon, 1 - epsilon]. Lower is better.
    """
    p = max(epsilon, min(1 - epsilon, prediction))
    if label:
        return -math.log(p)
    return -math.log(1 - p)


def brier_score(prediction: float, label: bool) -> float:
    """Squared error between a probability and a binary outcome."""
    outcome = 1.0 if label else 0.0
    return (prediction - outcome) ** 2


def _frozen(mapping: Optional[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    if mapping is None:
        return None
    return MappingProxyType(dict(mapping))


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


@dataclass(frozen=True)
class RoundScore:
    """Scored outcome of one round for one model."""
    round_number: int
    predictions: Mapping[str, float]
    labels: Mapping[str, bool]
    log_loss_by_horizon: Mapping[str, float]
    time_to_pivot_ratio: Optional[Mapping[str, Optional[float]]] = None
    first_pivot_at: Optional[Mapping[str, Optional[datetime]]] = None

    def __post_init__(self):
        # Read-only views so a stored score cannot be mutated through a caller's dict
        object.__setattr__(self, "predictions", _frozen(self.predictions))
        object.__setattr__(self, "labels", _frozen(self.labels))
        object.__setattr__(self, "log_loss_by_horizon", _frozen(self.log_loss_by_horizon))
        object.__setattr__(self, "time_to_pivot_ratio", _frozen(self.time_to_pivot_ratio))
        object.__setattr__(self, "first_pivot_at", _frozen(self.first_pivot_at))

    @classmethod
    def from_predictions(
        cls,
        round_number: int,
        predictions: Mapping[str, float],
        labels: Mapping[str, bool],
        time_to_pivot_ratio: Optional[Mapping[str, Optional[float]]] = None,
        first_pivot_at: Optional[Mapping[str, Optional[datetime]]] = None,
    ) -> "RoundScore":
        """
        Build a RoundScore, deriving per-horizon log loss from predictions.

        Only horizons present in both predictions and labels get a log loss;
        validate() reports anything missing.
        """
        losses = {
            h: log_loss(p, labels[h])
            for h, p in predictions.items()
            if h in labels
        }
        return cls(
            round_number=round_number,
            predictions=predictions,
            labels=labels,
            log_loss_by_horizon=losses,
            time_to_pivot_ratio=time_to_pivot_ratio,
            first_pivot_at=first_pivot_at,
        )

    def validate(self, horizons: Iterable[str]) -> None:
        """
        Check the record against the horizon set.

        Raises:
            RoundScoreError: On a missing horizon key, a probability outside
                [0, 1], a negative / non-finite log loss or pivot ratio
        """
        horizons = tuple(horizons)
        prefix = f"round {self.round_number}"
        require_total(self.predictions, horizons, f"{prefix}: predictions")
        require_total(self.labels, horizons, f"{prefix}: labels")
        require_total(self.log_loss_by_horizon, horizons, f"{prefix}: log_loss_by_horizon")

        for h in horizons:
            p = self.predictions[h]
            if not isinstance(p, (int, float)) or not 0.0 <= p <= 1.0:
                raise RoundScoreError(f"{prefix}: prediction for {h} must be in [0, 1], got {p!r}")
            if not isinstance(self.labels[h], bool):
                raise RoundScoreError(f"{prefix}: label for {h} must be a bool")
            ll = self.log_loss_by_horizon[h]
            if not isinstance(ll, (int, float)) or not math.isfinite(ll) or ll < 0:
                raise RoundScoreError(f"{prefix}: log loss for {h} must be finite and >= 0, got {ll!r}")
            ratio = self.pivot_ratio(h)
            if ratio is not None and (
                not isinstance(ratio, (int, float)) or not math.isfinite(ratio) or ratio < 0
            ):
                raise RoundScoreError(f"{prefix}: pivot ratio for {h} must be finite and >= 0, got {ratio!r}")

    def pivot_ratio(self, horizon: str) -> Optional[float]:
        if self.time_to_pivot_ratio is None:
            return None
        return self.time_to_pivot_ratio.get(horizon)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RoundScore":
        """
        Parse a JSON record. Accepts camelCase or snake_case keys.

        When no per-horizon log loss is supplied it is derived from the
        predictions and labels.
        """
        round_number = _pick(data, "round_number", "roundNumber")
        predictions = _pick(data, "predictions")
        labels = _pick(data, "labels")
        if round_number is None or predictions is None or labels is None:
            raise RoundScoreError("Round score requires round_number, predictions and labels")

        pivot_ratio = _pick(data, "time_to_pivot_ratio", "timeToPivotRatio")
        pivots_raw = _pick(data, "first_pivot_at", "firstPivotAt")
        first_pivot_at = None
        if pivots_raw is not None:
            first_pivot_at = {
                h: datetime.fromisoformat(v.replace("Z", "+00:00")) if v else None
                for h, v in pivots_raw.items()
            }

        losses = _pick(data, "log_loss_by_horizon", "logLossByHorizon")
        if losses is None:
            return cls.from_predictions(
                int(round_number), predictions, labels,
                time_to_pivot_ratio=pivot_ratio,
                first_pivot_at=first_pivot_at,
            )
        return cls(
            round_number=int(round_number),
            predictions=predictions,
            labels=labels,
            log_loss_by_horizon=losses,
            time_to_pivot_ratio=pivot_ratio,
            first_pivot_at=first_pivot_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "round_number": self.round_number,
            "predictions": dict(self.predictions),
            "labels": dict(self.labels),
            "log_loss_by_horizon": dict(self.log_loss_by_horizon),
        }
        if self.time_to_pivot_ratio is not None:
            record["time_to_pivot_ratio"] = dict(self.time_to_pivot_ratio)
        if self.first_pivot_at is not None:
            record["first_pivot_at"] = {
                h: v.isoformat() if v else None
                for h, v in self.first_pivot_at.items()
            }
        return record


@dataclass
class ModelState:
    """Tournament status and round history for a single model."""
    model_id: str
    is_active: bool = True
    eliminated_in_phase: Optional[int] = None
    elimination_reason: Optional[str] = None
    round_scores: List[RoundScore] = field(default_factory=list)
    log_loss_by_horizon: Dict[str, List[float]] = field(default_factory=dict)
    time_to_pivot_ratios: Dict[str, List[float]] = field(default_factory=dict)
    failed_rounds: List[int] = field(default_factory=list)

    @property
    def rounds_completed(self) -> int:
        return len(self.round_scores)

    def predictions_for(self, horizon: str) -> List[float]:
        return [r.predictions[horizon] for r in self.round_scores]

    def labels_for(self, horizon: str) -> List[bool]:
        return [r.labels[horizon] for r in self.round_scores]
