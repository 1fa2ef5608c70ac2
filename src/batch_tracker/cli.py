"""
Batch Tracker CLI

Command-line access to the provenance engine for recall work and
maintenance, without any UI.

Usage Examples:
    # Create tables in the configured database
    batch-tracker init-db

    # Print the provenance report of a batch as JSON
    batch-tracker trace 20240314-2

    # Same, by database id, written to a file
    batch-tracker trace --id 42 -o recall_42.json

    # List recent batches
    batch-tracker list --status COMPLETED --limit 20

    # Re-deliver queued corrective actions
    batch-tracker retry-corrective-actions

    # Use a specific database
    batch-tracker --database sqlite:////srv/haccp/batch_tracker.db trace 20240314
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .services import batch_service, corrective_action_service, provenance_service
from .services.database import initialize_app_database
from .services.dto import BatchFilter, PaginationParams
from .services.exceptions import ServiceError
from .utils.config import Config, get_config, set_config
from .utils.constants import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT


def _write_json(data, output: Optional[str]) -> None:
    text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        print(f"Written to {output}")
    else:
        print(text)


def trace_cmd(batch_number: Optional[str], batch_id: Optional[int], output: Optional[str]) -> int:
    """Print the provenance report of one batch."""
    if batch_id is not None:
        report = provenance_service.get_provenance(batch_id)
    else:
        report = provenance_service.get_provenance_by_number(batch_number)
    _write_json(report.to_dict(), output)
    return 0


def _list_limit(value: str) -> int:
    """argparse type for --limit: an integer from 1 to MAX_LIST_LIMIT."""
    try:
        limit = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if not 1 <= limit <= MAX_LIST_LIMIT:
        raise argparse.ArgumentTypeError(f"must be between 1 and {MAX_LIST_LIMIT} (got {limit})")
    return limit


def list_cmd(status: Optional[str], search: Optional[str], limit: int) -> int:
    """Print a short table of batches."""
    result = batch_service.list_batches(
        BatchFilter(status=status, search=search),
        PaginationParams(page=1, per_page=limit),
    )
    for batch in result.items:
        compliant = batch["temperature_compliant"]
        flag = "-" if compliant is None else ("OK" if compliant else "NON-COMPLIANT")
        print(
            f"{batch['batch_number']:<14} {batch['status']:<14} "
            f"{batch['product_name'] or '':<30} {flag}"
        )
    print(f"{len(result.items)} of {result.total} batch(es)")
    return 0


def retry_cmd(limit: Optional[int]) -> int:
    """Re-attempt delivery of queued corrective actions."""
    counts = corrective_action_service.retry_pending_corrective_actions(limit=limit)
    print(
        f"Attempted {counts['attempted']}: delivered {counts['delivered']}, "
        f"still pending {counts['pending']}, failed {counts['failed']}"
    )
    return 0 if counts["pending"] == 0 and counts["failed"] == 0 else 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="batch-tracker",
        description="Production batch provenance and compliance utility",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--database", help="SQLAlchemy database URL (overrides configuration)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create database tables")

    trace_parser = subparsers.add_parser("trace", help="Print a batch's provenance report")
    trace_parser.add_argument("batch_number", nargs="?", help="Printed batch number")
    trace_parser.add_argument("--id", type=int, dest="batch_id", help="Batch database id")
    trace_parser.add_argument("-o", "--output", help="Write JSON to this file")

    list_parser = subparsers.add_parser("list", help="List production batches")
    list_parser.add_argument("--status", help="Filter by status")
    list_parser.add_argument("--search", help="Free-text filter")
    list_parser.add_argument(
        "--limit",
        type=_list_limit,
        default=DEFAULT_LIST_LIMIT,
        help=f"Maximum rows, at most {MAX_LIST_LIMIT} (default {DEFAULT_LIST_LIMIT})",
    )

    retry_parser = subparsers.add_parser(
        "retry-corrective-actions", help="Re-deliver queued corrective actions"
    )
    retry_parser.add_argument("--limit", type=int, help="Maximum requests to attempt")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1
    if args.command == "trace" and args.batch_number is None and args.batch_id is None:
        parser.error("trace needs a batch number or --id")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.database:
        set_config(Config(get_config().environment, database_url=args.database))

    initialize_app_database()

    try:
        if args.command == "init-db":
            print("Database initialized")
            return 0
        elif args.command == "trace":
            return trace_cmd(args.batch_number, args.batch_id, args.output)
        elif args.command == "list":
            return list_cmd(args.status, args.search, args.limit)
        elif args.command == "retry-corrective-actions":
            return retry_cmd(args.limit)
        else:
            print(f"Unknown command: {args.command}")
            return 1
    except ServiceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
