# main.py

"""Entry point for the nellis_scanner command line."""

import argparse
import asyncio
import logging
import sys

from src.config.logging_config import setup_logging
from src.models.category import Category

logger = logging.getLogger("nellis_scanner.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid = ", ".join(c.name.lower() for c in Category)

    parser = argparse.ArgumentParser(
        prog="nellis_scanner",
        description="Nellis Auction listing scanner and reconciler.",
        epilog=f"Available categories: {valid}",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan listings into the database.")
    scan.add_argument(
        "-c",
        "--category",
        default=None,
        help="Category to scan (default: every category).",
    )

    sub.add_parser(
        "reconcile",
        help="Confirm state and final price of overdue listings.",
    )
    sub.add_parser(
        "run-once",
        help="Scan every category, then reconcile.",
    )

    watch = sub.add_parser("watch", help="Stream live price updates.")
    watch.add_argument("listing_id", type=int)
    watch.add_argument(
        "--record",
        action="store_true",
        default=False,
        help="Store the listing and every update as a price snapshot.",
    )

    history = sub.add_parser("history", help="Show stored price history.")
    history.add_argument("listing_id", type=int)
    return parser


def _dispatch(args: argparse.Namespace) -> int:
    from src.cli import runner

    if args.command == "scan":
        return asyncio.run(runner.run_scan(args.category))
    if args.command == "reconcile":
        return asyncio.run(runner.run_reconcile())
    if args.command == "run-once":
        return asyncio.run(runner.run_once())
    if args.command == "watch":
        return asyncio.run(runner.run_watch(args.listing_id, args.record))
    return runner.run_history(args.listing_id)


def main() -> None:
    """Parse arguments, set up the job log and run the command."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(args.command.replace("-", "_"))
    logger.info("nellis_scanner %s starting, log file: %s", args.command, log_file)

    try:
        exit_code = _dispatch(args)
    except KeyboardInterrupt:
        logger.info("nellis_scanner %s interrupted", args.command)
        exit_code = 130
    except Exception:
        logger.critical("Fatal error during %s", args.command, exc_info=True)
        raise
    finally:
        logger.info("nellis_scanner %s shutting down", args.command)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
