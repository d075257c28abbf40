"""
Tournament configuration.

Every threshold used by the phase filters lives here as data so the same
engine can run any benchmark variant (horizon set, qualification mode,
composite weights). Config files are JSON (or YAML) validated against
config/schemas/tournament_config.schema.json plus business rules.
"""

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import jsonschema
import yaml

from .errors import ConfigError
from .horizons import DEFAULT_HORIZONS, validate_horizons

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/tournament_config.json")
DEFAULT_SCHEMA_PATH = Path("config/schemas/tournament_config.schema.json")

QUALIFICATION_MODES = ("prevalence_margin", "top_percent")

WEIGHT_SUM_TOLERANCE = 1e-6


@dataclass
class Phase0Config:
    min_rounds: int = 6
    log_loss_multiplier: float = 1.1
    min_bad_horizons: int = 2
    extreme_prediction: float = 0.8
    max_extreme_error_rate: float = 0.2
    degenerate_window: int = 6
    degenerate_threshold: float = 0.9


@dataclass
class Phase1Config:
    min_cohort: int = 3
    default_percentile: float = 50.0
    bottom_quartile: float = 25.0
    min_bottom_horizons: int = 2
    strength_percentile: float = 75.0


@dataclass
class Phase2Config:
    window_size: int = 3
    max_regret: float = 1.5
    min_regret_horizons: int = 2
    variance_multiplier: float = 2.0
    min_unstable_horizons: int = 3


@dataclass
class QualificationConfig:
    mode: str = "prevalence_margin"
    prevalence_margin: float = 0.1
    top_percent: float = 0.7


@dataclass
class ValidityConfig:
    min_coverage: float = 0.8
    max_failure_rate: float = 0.1
    constant_max_unique: int = 2
    constant_max_std: float = 0.02
    extreme_wrong_rate: float = 0.2
    extreme_high: float = 0.9
    extreme_low: float = 0.1
    max_extreme_prediction_rate: float = 0.9


@dataclass
class CompositeConfig:
    """
    Composite ranking weights and normalization constants.

    best_window_max and stability_max are assumed typical maxima, not
    derived from the cohort.
    """
    weight_percentile: float = 0.4
    weight_best_window: float = 0.3
    weight_stability: float = 0.2
    weight_pivot: float = 0.1
    best_window_max: float = 2.0
    stability_max: float = 1.0
    pivot_max: float = 1.0
    default_pivot_ratio: float = 0.5
    arena_size: Optional[int] = None

    @property
    def weights(self) -> Tuple[float, float, float, float]:
        return (self.weight_percentile, self.weight_best_window,
                self.weight_stability, self.weight_pivot)


@dataclass
class ReportingConfig:
    min_calibration_samples: int = 20
    min_separability_models: int = 3
    calibration_bins: int = 10
    min_minority_for_rankable: int = 5
    rankable_prevalence_bounds: Tuple[float, float] = (0.1, 0.9)


@dataclass
class TournamentConfig:
    horizons: Tuple[str, ...] = DEFAULT_HORIZONS
    phase0: Phase0Config = field(default_factory=Phase0Config)
    phase1: Phase1Config = field(default_factory=Phase1Config)
    phase2: Phase2Config = field(default_factory=Phase2Config)
    qualification: QualificationConfig = field(default_factory=QualificationConfig)
    validity: ValidityConfig = field(default_factory=ValidityConfig)
    composite: CompositeConfig = field(default_factory=CompositeConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["horizons"] = list(self.horizons)
        data["reporting"]["rankable_prevalence_bounds"] = list(
            self.reporting.rankable_prevalence_bounds
        )
        return data


_SECTIONS = {
    "phase0": Phase0Config,
    "phase1": Phase1Config,
    "phase2": Phase2Config,
    "qualification": QualificationConfig,
    "validity": ValidityConfig,
    "composite": CompositeConfig,
    "reporting": ReportingConfig,
}


def _check_unit_interval(errors: List[str], name: str, value: Any) -> None:
    if not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
        errors.append(f"{name} must be in [0, 1], got {value!r}")


def validate_tournament_config(
    config: Dict[str, Any],
    schema_path: Optional[Path] = DEFAULT_SCHEMA_PATH
) -> List[str]:
    """
    Validate a raw tournament configuration.

    Validation rules:
    1. horizons, if present, is a non-empty list of unique known horizon ids
    2. only known sections and keys are present
    3. qualification.mode is prevalence_margin or top_percent
    4. qualification.top_percent is in (0, 1]
    5. composite weights sum to 1.0 (tolerance: 1e-6)
    6. composite normalization constants are positive
    7. window sizes and round minimums are positive integers

    Args:
        config: Parsed config dictionary
        schema_path: Path to JSON schema (optional)

    Returns:
        List of validation errors (empty if valid)
    """
    errors: List[str] = []

    if schema_path is not None and schema_path.exists():
        try:
            with open(schema_path) as f:
                schema = json.load(f)
            jsonschema.validate(config, schema)
        except jsonschema.ValidationError as e:
            errors.append(f"Schema validation failed: {e.message}")
            return errors
        except (IOError, json.JSONDecodeError):
            logger.warning("Could not read schema %s, using manual validation only", schema_path)

    if not isinstance(config, dict):
        return ["config must be an object"]

    if "horizons" in config:
        try:
            validate_horizons(config["horizons"])
        except (TypeError, ValueError) as e:
            errors.append(f"horizons: {e}")

    for section, values in config.items():
        if section in ("horizons", "config_version"):
            continue
        section_cls = _SECTIONS.get(section)
        if section_cls is None:
            errors.append(f"Unknown section '{section}'")
            continue
        if not isinstance(values, dict):
            errors.append(f"{section} must be an object")
            continue
        known = {f.name for f in fields(section_cls)}
        for key in values:
            if key not in known:
                errors.append(f"{section}: unknown key '{key}'")

    qual = config.get("qualification", {})
    if isinstance(qual, dict):
        mode = qual.get("mode", "prevalence_margin")
        if mode not in QUALIFICATION_MODES:
            errors.append(f"qualification.mode must be one of {list(QUALIFICATION_MODES)}, got '{mode}'")
        top = qual.get("top_percent", 0.7)
        if not isinstance(top, (int, float)) or not 0.0 < top <= 1.0:
            errors.append(f"qualification.top_percent must be in (0, 1], got {top!r}")
        margin = qual.get("prevalence_margin", 0.1)
        if not isinstance(margin, (int, float)) or margin < 0:
            errors.append("qualification.prevalence_margin must be >= 0")

    comp = config.get("composite", {})
    if isinstance(comp, dict):
        defaults = CompositeConfig()
        weights = [
            comp.get("weight_percentile", defaults.weight_percentile),
            comp.get("weight_best_window", defaults.weight_best_window),
            comp.get("weight_stability", defaults.weight_stability),
            comp.get("weight_pivot", defaults.weight_pivot),
        ]
        if all(isinstance(w, (int, float)) for w in weights):
            if abs(sum(weights) - 1.0) > WEIGHT_SUM_TOLERANCE:
                errors.append(f"composite weights must sum to 1.0, got {sum(weights):.6f}")
        for name in ("best_window_max", "stability_max", "pivot_max"):
            value = comp.get(name, getattr(defaults, name))
            if not isinstance(value, (int, float)) or value <= 0:
                errors.append(f"composite.{name} must be > 0")
        arena = comp.get("arena_size")
        if arena is not None and (not isinstance(arena, int) or arena < 1):
            errors.append("composite.arena_size must be a positive integer or null")

    for section, key in (("phase0", "min_rounds"), ("phase0", "degenerate_window"),
                         ("phase1", "min_cohort"), ("phase2", "window_size")):
        values = config.get(section, {})
        if isinstance(values, dict) and key in values:
            value = values[key]
            if not isinstance(value, int) or value < 1:
                errors.append(f"{section}.{key} must be a positive integer")

    phase0 = config.get("phase0", {})
    if isinstance(phase0, dict):
        for key in ("extreme_prediction", "max_extreme_error_rate", "degenerate_threshold"):
            if key in phase0:
                _check_unit_interval(errors, f"phase0.{key}", phase0[key])

    validity = config.get("validity", {})
    if isinstance(validity, dict):
        for key in ("min_coverage", "max_failure_rate", "extreme_wrong_rate",
                    "extreme_high", "extreme_low", "max_extreme_prediction_rate"):
            if key in validity:
                _check_unit_interval(errors, f"validity.{key}", validity[key])

    return errors


def config_from_dict(config: Dict[str, Any]) -> TournamentConfig:
    """Build a TournamentConfig from an already validated dictionary."""
    kwargs: Dict[str, Any] = {}
    if "horizons" in config:
        kwargs["horizons"] = validate_horizons(config["horizons"])
    for section, section_cls in _SECTIONS.items():
        values = dict(config.get(section, {}))
        if section == "reporting" and "rankable_prevalence_bounds" in values:
            low, high = values["rankable_prevalence_bounds"]
            values["rankable_prevalence_bounds"] = (float(low), float(high))
        kwargs[section] = section_cls(**values)
    return TournamentConfig(**kwargs)


def load_tournament_config(
    config_path: Path = DEFAULT_CONFIG_PATH,
    schema_path: Optional[Path] = DEFAULT_SCHEMA_PATH
) -> TournamentConfig:
    """
    Load and validate a tournament configuration file.

    Args:
        config_path: Path to a .json, .yaml or .yml file
        schema_path: Path to JSON schema (optional)

    Returns:
        Parsed TournamentConfig

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigError: If the file cannot be parsed or fails validation
    """
    config_path = Path(config_path)
    with open(config_path, "r") as f:
        try:
            if config_path.suffix in (".yaml", ".yml"):
                raw = yaml.safe_load(f) or {}
            else:
                raw = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to parse {config_path}: {e}")

    errors = validate_tournament_config(raw, schema_path)
    if errors:
        raise ConfigError(f"Invalid config {config_path}: " + "; ".join(errors))

    config = config_from_dict(raw)
    logger.debug("Loaded tournament config from %s", config_path)
    return config
