"""
Batch closing jobs run over every active customer.

Each customer is committed on its own; one customer's failure is logged and
counted without stopping the batch.
"""

import logging
from collections.abc import Callable

from sqlalchemy.orm import Session

from receivables.application.services.balance_aggregation import BalanceAggregationService
from receivables.domain.exceptions import LedgerError
from receivables.infrastructure.database import commit_with_retry
from receivables.infrastructure.repositories import SqlBalanceLedgerRepository

logger = logging.getLogger(__name__)


def _new_stats() -> dict:
    return {"total": 0, "processed": 0, "skipped": 0, "errors": 0, "error_details": []}


def _run_for_all(db: Session, job: str, step: Callable[[Session, int], bool]) -> dict:
    """``step`` returns False when a customer had nothing to process."""
    stats = _new_stats()
    customer_ids = SqlBalanceLedgerRepository(db).customer_ids()
    stats["total"] = len(customer_ids)

    for customer_id in customer_ids:
        try:
            did_work = commit_with_retry(db, lambda session: step(session, customer_id))
        except (LedgerError, ValueError, ArithmeticError) as exc:
            stats["errors"] += 1
            stats["error_details"].append({"customer_id": customer_id, "error": str(exc)})
            logger.error(
                "%s failed for customer %s: %s",
                job,
                customer_id,
                exc,
                extra={"customer_id": customer_id},
            )
            continue
        if did_work:
            stats["processed"] += 1
        else:
            stats["skipped"] += 1

    summary = {k: v for k, v in stats.items() if k != "error_details"}
    if stats["errors"]:
        logger.warning("%s completed with errors", job, extra=summary)
    else:
        logger.info("%s completed", job, extra=summary)
    return stats


def process_monthly_closing_for_all_customers(db: Session, months_back: int | None = None) -> dict:
    def step(session: Session, customer_id: int) -> bool:
        result = BalanceAggregationService(session).recalculate_closing_balances(customer_id, months_back)
        return result.months_processed > 0

    return _run_for_all(db, "Monthly closing", step)


def calculate_yearly_closing_for_all_customers(db: Session, year: int) -> dict:
    def step(session: Session, customer_id: int) -> bool:
        result = BalanceAggregationService(session).calculate_yearly_closing(customer_id, year)
        return result.months_included > 0

    return _run_for_all(db, f"Yearly closing for {year}", step)


def rebuild_all_customers(db: Session) -> dict:
    def step(session: Session, customer_id: int) -> bool:
        BalanceAggregationService(session).full_rebuild(customer_id)
        return True

    return _run_for_all(db, "Full rebuild", step)
