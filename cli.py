"""
Command line entry point.

Usage:
    payments-engine transactions.csv > accounts.csv
"""

import argparse
import sys
from typing import List, Optional

import structlog

from config import get_settings
from csv_io import write_accounts
from errors import IoFailure, MalformedRecord
from logging_config import configure_logging
from services import process_records

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="payments-engine",
        description="Apply a CSV of transactions to client accounts and print the final balances as CSV.",
    )
    ap.add_argument("input", help="Path to the transactions CSV file")
    ap.add_argument("--skip-malformed", action="store_true", help="Log and skip malformed rows instead of aborting")
    ap.add_argument(
        "--remember-ignored-ids",
        action="store_true",
        help="Also block reuse of IDs from ignored deposits and withdrawals",
    )
    ap.add_argument("--log-level", default=None, help="Override the configured log level (logs go to stderr)")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.skip_malformed:
        overrides["malformed_policy"] = "skip"
    if args.remember_ignored_ids:
        overrides["remember_ignored_ids"] = True
    if args.log_level:
        overrides["log_level"] = args.log_level
    settings = get_settings().model_copy(update=overrides)

    configure_logging(settings)

    try:
        with open(args.input, "rb") as source:
            accounts = process_records(source, settings)
    except OSError as e:
        logger.error("Cannot open input", path=args.input, error=str(e))
        print(f"error: cannot open {args.input}: {e.strerror or e}", file=sys.stderr)
        return 1
    except (MalformedRecord, IoFailure) as e:
        logger.error("Processing aborted", path=args.input, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1

    write_accounts(accounts.values(), sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
