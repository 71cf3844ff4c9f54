#!/usr/bin/env python3
"""Inspect or repair tournament brackets stored in DynamoDB.

``status`` and ``validate`` are read-only. ``fix``, ``clear`` and
``regenerate`` only describe their planned changes unless ``--execute`` is
passed.
"""

from __future__ import annotations

import argparse
import logging
import os
import pathlib
import sys
from collections.abc import Sequence
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

ROOT_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:  # pragma: no cover - simple environment setup
    sys.path.insert(0, str(ROOT_DIR))

from tournament_progression import (
    PersistenceFailureError,
    ProgressionService,
    TournamentStorage,
)
from tournament_progression.config import configure_logging
from tournament_progression.models import ROUND_OF_32

log = logging.getLogger(__name__)

READ_ONLY_ACTIONS = ("status", "validate")
MUTATING_ACTIONS = ("fix", "clear", "regenerate")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "action",
        choices=READ_ONLY_ACTIONS + MUTATING_ACTIONS,
        help="Operation to run for each tournament",
    )
    parser.add_argument(
        "--tournament",
        action="append",
        dest="tournament_ids",
        required=True,
        help="Tournament id to process (repeat for multiple)",
    )
    parser.add_argument(
        "--table",
        default=os.getenv("TOURNAMENT_TABLE_NAME"),
        help="DynamoDB table name (defaults to TOURNAMENT_TABLE_NAME)",
    )
    parser.add_argument("--profile", help="Optional AWS profile to use")
    parser.add_argument(
        "--region",
        default=os.getenv("AWS_REGION"),
        help="AWS region (defaults to boto3's resolution order)",
    )
    parser.add_argument(
        "--admin",
        default=os.getenv("USER", "operator"),
        help="Admin name recorded in the audit log",
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Apply changes instead of printing the planned ones",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def describe_plan(
    storage: TournamentStorage, action: str, tournament_id: str
) -> str | None:
    tournament = storage.get_tournament(tournament_id)
    if tournament is None:
        return None
    if action == "clear":
        return f"Would clear {len(tournament.schedule)} matches"
    if action == "fix":
        first_round = tournament.matches_in_round(ROUND_OF_32)
        downstream = len(tournament.schedule) - len(first_round)
        return (
            f"Would drop {downstream} matches after {ROUND_OF_32} "
            "and regenerate Round of 16"
        )
    registrations = storage.list_registrations(tournament_id)
    return (
        f"Would discard {len(tournament.schedule)} matches and reseed "
        f"{len(registrations)} participants"
    )


def run_action(
    service: ProgressionService,
    storage: TournamentStorage,
    action: str,
    tournament_id: str,
    *,
    admin_user: str,
    execute: bool,
) -> bool:
    if action == "status":
        result = service.get_progression_status(tournament_id)
    elif action == "validate":
        result = service.validate_integrity(tournament_id)
    elif not execute:
        plan = describe_plan(storage, action, tournament_id)
        if plan is None:
            log.info("Tournament %s not found", tournament_id)
            return False
        log.info("%s: %s", tournament_id, plan)
        return True
    elif action == "fix":
        result = service.fix_progression(tournament_id, admin_user)
    elif action == "clear":
        result = service.clear_schedule(tournament_id, admin_user)
    else:
        result = service.regenerate_progression(tournament_id, admin_user)

    log.info("%s: %s", tournament_id, result.message)
    for key, value in result.details.items():
        log.info("  %s: %s", key, value)
    for step in result.steps:
        log.info("  - %s", step)
    if result.error == PersistenceFailureError.code:
        raise PersistenceFailureError(result.message)
    return result.success


def build_storage(args: argparse.Namespace) -> TournamentStorage:
    session_kwargs: dict[str, Any] = {}
    if args.profile:
        session_kwargs["profile_name"] = args.profile
    if args.region:
        session_kwargs["region_name"] = args.region
    session = boto3.Session(**session_kwargs)
    return TournamentStorage(session.resource("dynamodb").Table(args.table))


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    if not args.table:
        raise SystemExit("No DynamoDB table specified (use --table)")

    storage = build_storage(args)
    service = ProgressionService(storage)
    failures = 0
    try:
        for tournament_id in args.tournament_ids:
            ok = run_action(
                service,
                storage,
                args.action,
                tournament_id,
                admin_user=args.admin,
                execute=args.execute,
            )
            if not ok:
                failures += 1
    except (ClientError, BotoCoreError, PersistenceFailureError) as exc:
        log.error("AWS request failed: %s", exc)
        raise SystemExit(2) from exc

    if args.action in MUTATING_ACTIONS and not args.execute:
        log.info("Dry-run complete. Pass --execute to apply changes.")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
