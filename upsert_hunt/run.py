#!/usr/bin/env python3
"""Command runner for the upsert hunt.

Examples::

    python -m upsert_hunt --search 140           # first vulnerable bloat size
    python -m upsert_hunt --test 148             # one size, writes db-error on failure
    python -m upsert_hunt --replay db-error      # rerun the diagnostic series

Exit codes: 0 ok, 1 config or setup failure, 2 usage error (from argparse),
3 search bound exhausted, 4 divergence observed by --test or --replay.
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, Sequence, Tuple

from .backends import EngineError
from .config import ConfigError, HarnessConfig, apply_env_overrides, configure_logging, load_config
from .replay import REPLAY_VALUES, replay_case
from .search import SearchExhausted, candidate_sizes, first_vulnerable_size, limit_attempts, until_deadline
from .tester import check_size
from .transfer import LogParseError
from .workspace import DatabaseHandle, SetupError


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Hunt down the smallest database that breaks upsert.")
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--search", type=int, metavar="START", help="Search upwards from this bloat size.")
    mode.add_argument("--test", type=int, metavar="SIZE", help="Test a single bloat size.")
    mode.add_argument("--replay", metavar="PATH", help="Import a frozen case and run the manual series.")
    parser.add_argument("--config", help="Path to JSON config (default: tc_config.json if present).")
    parser.add_argument(
        "--allow-env-overrides",
        action="store_true",
        help="Allow UPSERT_HUNT_* environment variables to override config keys (default: off).",
    )
    parser.add_argument("--output", help="Where to write a vulnerable case (overrides config).")
    parser.add_argument("--max-attempts", type=int, help="Stop --search after this many sizes.")
    parser.add_argument("--deadline", type=float, help="Stop --search after this many seconds.")
    parser.add_argument("--entity", type=int, help="Entity for --replay (default: largest entity id in the case).")
    parser.add_argument(
        "--values",
        nargs="+",
        default=list(REPLAY_VALUES),
        help="Values for --replay (default: %(default)s).",
    )
    parser.add_argument("--log-level", help="Logging level (overrides config).")
    parser.add_argument("--log-file", help="Also log to this file (overrides config).")
    return parser.parse_args(argv)


def resolve_config(args: argparse.Namespace) -> Tuple[HarnessConfig, List[str]]:
    config = load_config(args.config)
    if not args.allow_env_overrides:
        return config, []
    return apply_env_overrides(config)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config, applied = resolve_config(args)
    except ConfigError as exc:
        configure_logging(args.log_level or "INFO", args.log_file)
        logging.error("%s", exc)
        return 1
    configure_logging(args.log_level or config.log_level, args.log_file or config.log_file)
    if applied:
        logging.info("Environment overrides applied: %s", ", ".join(applied))

    handle = DatabaseHandle.from_config(config.store)
    output_path = args.output or config.output_path
    logging.info("Store backend=%s id=%s output=%s", config.store.backend, config.store.id, output_path)

    def is_vulnerable(size: int) -> bool:
        return check_size(
            size,
            handle=handle,
            output_path=output_path,
            attribute=config.tracked_attribute,
            base_value=config.base_value,
        ).vulnerable

    try:
        if args.search is not None:
            if args.search < 0:
                logging.error("search start must be >= 0 (got %s)", args.search)
                return 1
            sizes = candidate_sizes(args.search)
            if args.max_attempts is not None:
                sizes = limit_attempts(sizes, args.max_attempts)
            if args.deadline is not None:
                sizes = until_deadline(sizes, args.deadline)
            size = first_vulnerable_size(args.search, is_vulnerable, sizes)
            logging.info("Vulnerable case for size %d written to %s", size, output_path)
            return 0
        if args.test is not None:
            if args.test < 0:
                logging.error("size must be >= 0 (got %s)", args.test)
                return 1
            return 4 if is_vulnerable(args.test) else 0
        steps = replay_case(
            args.replay,
            entity=args.entity,
            attribute=config.tracked_attribute,
            values=args.values,
            handle=handle,
            batch_size=config.import_batch_size,
        )
        return 4 if any(not step.matches for step in steps) else 0
    except SearchExhausted as exc:
        logging.warning("%s", exc)
        return 3
    except (SetupError, EngineError, LogParseError, OSError) as exc:
        logging.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
