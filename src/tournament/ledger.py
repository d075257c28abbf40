"""
JSONL round ledger reader.

One record per line. Each record carries ``model_id`` plus the RoundScore
fields; a record with ``"failed": true`` marks a round in which the model
produced no usable prediction and only needs ``round_number``.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import RoundScoreError
from .horizons import DEFAULT_HORIZONS
from .records import RoundScore
from .state import ModelStateManager

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Raised when ledger operations fail."""
    pass


@dataclass
class RoundLedger:
    """Rounds read from a ledger, grouped by model in first-seen order."""
    scores: Dict[str, List[RoundScore]] = field(default_factory=dict)
    failed_rounds: Dict[str, List[int]] = field(default_factory=dict)

    @property
    def model_ids(self) -> List[str]:
        ids = list(self.scores)
        ids.extend(m for m in self.failed_rounds if m not in self.scores)
        return ids


def read_records(
    file_path: Path,
    filter_fn: Optional[Callable[[Dict[str, Any]], bool]] = None
) -> List[Dict[str, Any]]:
    """
    Read all records from a JSONL file, optionally filtered.

    Args:
        file_path: Path to JSONL file
        filter_fn: Optional predicate function to filter records

    Returns:
        List of matching record dictionaries

    Raises:
        LedgerError: If the file cannot be read or a line is not a JSON object
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise LedgerError(f"Ledger not found: {file_path}")

    records = []
    try:
        with open(file_path, 'r') as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError as e:
                    raise LedgerError(f"Invalid JSON on line {line_num}: {e}")
                if not isinstance(record, dict):
                    raise LedgerError(f"Line {line_num} is not a JSON object")
                if filter_fn is None or filter_fn(record):
                    records.append(record)
    except IOError as e:
        raise LedgerError(f"Failed to read ledger: {e}")

    return records


def load_round_ledger(file_path: Path) -> RoundLedger:
    """
    Parse a round ledger into scores and failed rounds per model.

    Rounds are kept in file order, which must be chronological per model.

    Raises:
        LedgerError: On unreadable input or a malformed record
    """
    ledger = RoundLedger()
    for index, record in enumerate(read_records(file_path), 1):
        model_id = record.get("model_id") or record.get("modelId")
        if not model_id:
            raise LedgerError(f"Record {index} has no model_id")

        if record.get("failed"):
            round_number = record.get("round_number", record.get("roundNumber"))
            if round_number is None:
                raise LedgerError(f"Failed-round record {index} has no round_number")
            ledger.failed_rounds.setdefault(model_id, []).append(int(round_number))
            continue

        try:
            score = RoundScore.from_dict(record)
        except (RoundScoreError, KeyError, TypeError, ValueError) as e:
            raise LedgerError(f"Record {index} ({model_id}): {e}")
        ledger.scores.setdefault(model_id, []).append(score)

    logger.debug(
        "Loaded %d models from %s",
        len(ledger.model_ids), file_path,
    )
    return ledger


def load_round_scores(file_path: Path) -> Dict[str, List[RoundScore]]:
    """Round scores per model id, failed rounds excluded."""
    return load_round_ledger(file_path).scores


def build_manager(
    ledger: RoundLedger,
    horizons: Iterable[str] = DEFAULT_HORIZONS
) -> ModelStateManager:
    """
    Register every model in the ledger and feed it its rounds.

    Raises:
        RoundScoreError: If a round does not cover the horizon set
    """
    manager = ModelStateManager(ledger.model_ids, horizons)
    for model_id, scores in ledger.scores.items():
        for score in scores:
            manager.add_round_score(model_id, score)
    for model_id, rounds in ledger.failed_rounds.items():
        for round_number in rounds:
            manager.record_failed_round(model_id, round_number)
    return manager
