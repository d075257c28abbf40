"""
Command-line interface for the horizon tournament.

Subcommands:
    run             - run all phases over a JSONL round ledger and print a
                      JSON summary
    validate-config - validate a tournament config file
"""

import argparse
import json
import logging
import math
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from src.logging_config import configure_logging

from . import ledger
from .config import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_SCHEMA_PATH,
    TournamentConfig,
    load_tournament_config,
)
from .errors import TournamentError
from .leaderboard import generate_leaderboards
from .profiles import build_model_profiles
from .runner import run_tournament
from .separability import analyze_metric_separability


def _json_safe(value: Any) -> Any:
    """Replace NaN/inf with None so the output is strict JSON."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def _load_config(path: Optional[str]) -> TournamentConfig:
    if path:
        return load_tournament_config(Path(path), DEFAULT_SCHEMA_PATH)
    if DEFAULT_CONFIG_PATH.exists():
        return load_tournament_config(DEFAULT_CONFIG_PATH, DEFAULT_SCHEMA_PATH)
    return TournamentConfig()


def build_summary(manager, result, config: TournamentConfig, with_reports: bool) -> Dict[str, Any]:
    horizons = manager.horizons
    summary = result.to_dict(horizons)
    summary["horizons"] = list(horizons)
    summary["active_models"] = manager.get_active_models()

    if with_reports:
        states = manager.get_all_model_states()
        mask = result.qualified_by_model
        leaderboards = generate_leaderboards(states, mask, horizons, config.reporting)
        profiles = build_model_profiles(states, mask, horizons)
        summary["leaderboards"] = {
            h: [e.to_dict() for e in board.entries] for h, board in leaderboards.items()
        }
        summary["profiles"] = [p.to_dict() for p in profiles]
        summary["separability"] = [
            s.to_dict()
            for s in analyze_metric_separability(profiles, config.reporting.min_separability_models)
        ]
    return _json_safe(summary)


def cmd_run(args: argparse.Namespace) -> int:
    """Run the tournament over a round ledger."""
    try:
        config = _load_config(args.config)
        rounds = ledger.load_round_ledger(Path(args.rounds))
        if not rounds.model_ids:
            print("Error: ledger contains no rounds", file=sys.stderr)
            return 1

        manager = ledger.build_manager(rounds, config.horizons)
        result = run_tournament(manager, config)
        summary = build_summary(manager, result, config, args.reports)

        output = json.dumps(summary, indent=2, sort_keys=False)
        if args.output:
            output_path = Path(args.output)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, 'w') as f:
                f.write(output + "\n")
            print(f"Wrote tournament summary to {output_path}")
        else:
            print(output)

        if args.verbose:
            for event in result.eliminations:
                print(f"  phase {event.phase}: {event.model_id} - {event.reason}", file=sys.stderr)

        return 0

    except (TournamentError, ledger.LedgerError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_validate_config(args: argparse.Namespace) -> int:
    """Validate a tournament config file."""
    try:
        load_tournament_config(Path(args.config), DEFAULT_SCHEMA_PATH)
        print(f"Config OK: {args.config}")
        return 0

    except TournamentError as e:
        print(f"Validation failed: {e}", file=sys.stderr)
        return 1
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def main(argv: Optional[list] = None) -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="tournament",
        description="Horizon forecaster tournament engine"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Run the tournament over a round ledger")
    run_parser.add_argument("--rounds", required=True, help="Path to rounds JSONL")
    run_parser.add_argument("--config", help="Tournament config (.json/.yaml)")
    run_parser.add_argument("--output", "-o", help="Output file (JSON)")
    run_parser.add_argument("--reports", action="store_true",
                            help="Include leaderboards, profiles and separability")
    run_parser.set_defaults(func=cmd_run)

    # validate-config command
    validate_parser = subparsers.add_parser("validate-config", help="Validate a tournament config")
    validate_parser.add_argument("--config", default=str(DEFAULT_CONFIG_PATH),
                                 help="Path to config file")
    validate_parser.set_defaults(func=cmd_validate_config)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
