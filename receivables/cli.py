"""
Command line entry point for ledger maintenance jobs.

    receivables init-db
    receivables rebuild [--customer-id N]
    receivables recalculate [--months-back N]
    receivables monthly-closing [--months-back N]
    receivables yearly-closing [--year Y]
    receivables reconcile
"""

import argparse
import logging
import sys
from datetime import datetime

from receivables.application.services import BalanceAggregationService, StatementService
from receivables.application.services.closing import (
    calculate_yearly_closing_for_all_customers,
    process_monthly_closing_for_all_customers,
    rebuild_all_customers,
)
from receivables.core.config import settings
from receivables.core.logging import configure_logging
from receivables.domain.exceptions import LedgerError
from receivables.infrastructure.database import SessionLocal, commit_with_retry, init_db

logger = logging.getLogger(__name__)


def _print_stats(title: str, stats: dict) -> None:
    print(title)
    print(f"  Total customers: {stats['total']}")
    print(f"  Successfully processed: {stats['processed']}")
    print(f"  Skipped (no data): {stats['skipped']}")
    print(f"  Errors: {stats['errors']}")
    for error in stats["error_details"]:
        print(f"    Customer {error['customer_id']}: {error['error']}")


def cmd_init_db(args) -> int:
    init_db()
    print("Database initialized successfully!")
    return 0


def cmd_rebuild(args) -> int:
    db = SessionLocal()
    try:
        if args.customer_id is None:
            stats = rebuild_all_customers(db)
            _print_stats("Full rebuild completed", stats)
            return 1 if stats["errors"] else 0

        result = commit_with_retry(
            db, lambda s: BalanceAggregationService(s).full_rebuild(args.customer_id)
        )
        print(f"Customer {result.customer_id}: {result.previous_balance} -> {result.current_balance}")
        print(f"  Months rebuilt: {result.months_rebuilt}")
        for name, count in result.breakdown.items():
            print(f"  {name}: {count}")
        return 0
    finally:
        db.close()


def cmd_recalculate(args) -> int:
    db = SessionLocal()
    try:
        stats = process_monthly_closing_for_all_customers(db, args.months_back)
        _print_stats("Closing balances recalculated", stats)
        return 1 if stats["errors"] else 0
    finally:
        db.close()


def cmd_monthly_closing(args) -> int:
    print("Starting monthly closing balance calculation...")
    return cmd_recalculate(args)


def cmd_yearly_closing(args) -> int:
    year = args.year or datetime.utcnow().year - 1
    print(f"Starting yearly closing balance calculation for year {year}...")
    db = SessionLocal()
    try:
        stats = calculate_yearly_closing_for_all_customers(db, year)
        _print_stats(f"Yearly closing balance calculation completed for year {year}!", stats)
        return 1 if stats["errors"] else 0
    finally:
        db.close()


def cmd_reconcile(args) -> int:
    db = SessionLocal()
    try:
        result = commit_with_retry(db, lambda s: StatementService(s).recalculate_balances())
    finally:
        db.close()
    print(f"Customers checked: {result['total_customers']}")
    print(f"  Updated: {result['updated_count']}")
    print(f"  Unchanged: {result['unchanged_count']}")
    for customer in result["updated_customers"]:
        print(f"    {customer['code']}: {customer['old_balance']} -> {customer['new_balance']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="receivables", description="Customer receivables ledger jobs")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables").set_defaults(func=cmd_init_db)

    rebuild = sub.add_parser("rebuild", help="Rebuild balances from source transactions")
    rebuild.add_argument("--customer-id", type=int, default=None)
    rebuild.set_defaults(func=cmd_rebuild)

    for name, func, help_text in (
        ("recalculate", cmd_recalculate, "Re-chain closing balances from stored counters"),
        ("monthly-closing", cmd_monthly_closing, "Run the end-of-month closing for every customer"),
    ):
        command = sub.add_parser(name, help=help_text)
        command.add_argument("--months-back", type=int, default=None, help="Only the last N tracked months")
        command.set_defaults(func=func)

    yearly = sub.add_parser("yearly-closing", help="Aggregate monthly balances into yearly records")
    yearly.add_argument("--year", type=int, default=None, help="Defaults to the previous year")
    yearly.set_defaults(func=cmd_yearly_closing)

    sub.add_parser(
        "reconcile", help="Overwrite drifted cached balances from the source tables"
    ).set_defaults(func=cmd_reconcile)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level, settings.log_format)
    try:
        return args.func(args)
    except LedgerError as exc:
        logger.error("%s failed: %s", args.command, exc.message, extra={"code": exc.code})
        return 1


if __name__ == "__main__":
    sys.exit(main())
