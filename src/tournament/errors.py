"""Exception types raised by the tournament engine."""


class TournamentError(Exception):
    """Base class for tournament engine failures."""
    pass


class UnknownModelError(TournamentError, KeyError):
    """Raised when a model id was not registered with the state manager."""

    def __init__(self, model_id: str):
        super().__init__(model_id)
        self.model_id = model_id

    def __str__(self) -> str:
        return f"Unknown model '{self.model_id}'"


class RoundScoreError(TournamentError, ValueError):
    """Raised when a round score breaks the per-horizon record contract."""
    pass


class ConfigError(TournamentError):
    """Raised when the tournament configuration is invalid."""
    pass


class PhaseOrderError(TournamentError):
    """Raised when a phase runs before its predecessor has pruned the cohort."""
    pass
