"""
Horizon enumeration and total per-horizon mappings.

A horizon is a key, not a quantity: every per-horizon mapping handled by the
engine must carry exactly the configured horizon set.
"""

from typing import Any, Callable, Dict, Iterable, Mapping, Tuple

from .errors import RoundScoreError


DEFAULT_HORIZONS: Tuple[str, ...] = ("15m", "1h", "24h", "7d")
INTRADAY_HORIZONS: Tuple[str, ...] = ("15m", "1h", "4h", "24h")

_MINUTE_MS = 60_000

HORIZON_DURATION_MS: Dict[str, int] = {
    "15m": 15 * _MINUTE_MS,
    "1h": 60 * _MINUTE_MS,
    "4h": 4 * 60 * _MINUTE_MS,
    "24h": 24 * 60 * _MINUTE_MS,
    "7d": 7 * 24 * 60 * _MINUTE_MS,
}


def horizon_duration_ms(horizon: str) -> int:
    """Return the duration of a horizon in milliseconds."""
    try:
        return HORIZON_DURATION_MS[horizon]
    except KeyError:
        raise ValueError(f"Unknown horizon '{horizon}'")


def validate_horizons(horizons: Iterable[str]) -> Tuple[str, ...]:
    """
    Validate a horizon set and return it as a tuple.

    Args:
        horizons: Horizon ids in display order

    Returns:
        Tuple of horizon ids

    Raises:
        ValueError: If the set is empty, has duplicates or unknown ids
    """
    result = tuple(horizons)
    if not result:
        raise ValueError("At least one horizon is required")
    if len(set(result)) != len(result):
        raise ValueError(f"Duplicate horizons in {list(result)}")
    unknown = [h for h in result if h not in HORIZON_DURATION_MS]
    if unknown:
        raise ValueError(f"Unknown horizons: {', '.join(unknown)}")
    return result


def require_total(
    mapping: Mapping[str, Any],
    horizons: Iterable[str],
    field_name: str
) -> None:
    """
    Check that a per-horizon mapping covers every horizon.

    Raises:
        RoundScoreError: If any horizon key is missing
    """
    missing = [h for h in horizons if h not in mapping]
    if missing:
        raise RoundScoreError(f"{field_name} missing horizons: {', '.join(missing)}")


def empty_horizon_map(horizons: Iterable[str], factory: Callable[[], Any]) -> Dict[str, Any]:
    """Build a total mapping with a fresh value per horizon."""
    return {h: factory() for h in horizons}
