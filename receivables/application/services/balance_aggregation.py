"""
Application Service - Maintains the monthly/yearly balance ledger.

Every method locks the customer row first, so postings for one customer are
serialised. Nothing here commits: callers wrap the business action in
``commit_with_retry`` so the source change and its ledger posting land together.
"""

import logging
from collections import Counter
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from receivables.domain.entities import (
    LedgerPostingResult,
    PeriodTotals,
    RebuildResult,
    RecalculationResult,
    StatementFilters,
    YearlyClosingResult,
)
from receivables.domain.exceptions import LedgerValidationError, UnknownTransactionTypeError
from receivables.domain.services import group_by_period
from receivables.domain.value_objects import ZERO, Period, TransactionType, balance_delta
from receivables.infrastructure.database.models import CustomerBalanceMonthly
from receivables.infrastructure.repositories import (
    SqlBalanceLedgerRepository,
    SqlTransactionSourceRepository,
)

logger = logging.getLogger(__name__)


def _parse_type(transaction_type) -> TransactionType:
    try:
        return TransactionType(transaction_type)
    except ValueError:
        raise UnknownTransactionTypeError(
            str(transaction_type), [t.value for t in TransactionType]
        ) from None


def _month_record(row: CustomerBalanceMonthly) -> dict:
    return {
        "year": row.year,
        "month": row.month,
        "transaction_total": row.transaction_total,
        "closing_balance": row.closing_balance,
    }


def _transaction_total(row) -> Decimal:
    return sum(
        (balance_delta(t, getattr(row, f"total_{t.value}_amount")) for t in TransactionType),
        ZERO,
    )


class BalanceAggregationService:

    def __init__(self, db: Session):
        self.db = db
        self.ledger = SqlBalanceLedgerRepository(db)
        self.sources = SqlTransactionSourceRepository(db)

    # Postings

    def apply_transaction(
        self,
        customer_id: int,
        transaction_type: TransactionType | str,
        amount_usd: Decimal,
        transaction_date: date | datetime,
        source_id: int,
        *,
        quantity: int = 1,
        recorded_at: datetime | None = None,
    ) -> LedgerPostingResult:
        """
        Post one counted transaction into the month containing ``transaction_date``.

        The month's counters and ``transaction_total`` move, every later month's
        closing balance shifts by the same delta, yearly rows are re-rolled and
        the customer's cached balance follows the latest month.
        """
        amount = Decimal(amount_usd)
        if amount < 0:
            raise LedgerValidationError("amount_usd must not be negative")
        if quantity < 1:
            raise LedgerValidationError("quantity must be at least 1")
        return self._post(
            customer_id,
            _parse_type(transaction_type),
            amount,
            quantity,
            transaction_date,
            source_id,
            recorded_at,
            action="APPLY",
        )

    def revert_transaction(
        self,
        customer_id: int,
        transaction_type: TransactionType | str,
        amount_usd: Decimal,
        transaction_date: date | datetime,
        source_id: int,
        *,
        quantity: int = 1,
        recorded_at: datetime | None = None,
    ) -> LedgerPostingResult:
        """Withdraw a previously applied transaction. Call once the source no longer counts."""
        amount = Decimal(amount_usd)
        if amount < 0:
            raise LedgerValidationError("amount_usd must not be negative")
        if quantity < 1:
            raise LedgerValidationError("quantity must be at least 1")

        ttype = _parse_type(transaction_type)
        period = Period.from_date(transaction_date)
        if self.ledger.get_month(customer_id, period) is None:
            # Nothing was ever posted there; only the sources can tell.
            self.ledger.lock_customer(customer_id)
            return self._rebuild_instead(customer_id, ttype, period, reason="untracked month")

        return self._post(
            customer_id,
            ttype,
            -amount,
            -quantity,
            transaction_date,
            source_id,
            recorded_at,
            action="REVERT",
        )

    def _post(
        self,
        customer_id: int,
        transaction_type: TransactionType,
        amount: Decimal,
        quantity: int,
        transaction_date: date | datetime,
        source_id: int,
        recorded_at: datetime | None,
        action: str,
    ) -> LedgerPostingResult:
        customer = self.ledger.lock_customer(customer_id)
        period = Period.from_date(transaction_date)

        existing = self.ledger.get_month(customer_id, period)
        if (
            existing is not None
            and existing.last_verified_at is not None
            and recorded_at is not None
            and existing.last_verified_at >= recorded_at
        ):
            # The last rebuild already read this source; adding it again would double count.
            return self._rebuild_instead(customer_id, transaction_type, period, reason="verified period")

        month, created = self.ledger.get_or_create_month(customer_id, period)
        delta = balance_delta(transaction_type, amount)
        now = datetime.utcnow()

        counter = f"total_{transaction_type.value}"
        setattr(month, counter, getattr(month, counter) + quantity)
        setattr(month, f"{counter}_amount", getattr(month, f"{counter}_amount") + amount)
        month.transaction_total += delta
        month.closing_balance += delta
        month.last_updated_by = transaction_type.value
        month.updated_by_entry_id = source_id
        month.updated_at = now

        reverified: list[Period] = []
        if month.last_verified_at is not None:
            logger.warning(
                "Write into verified period %s for customer %s",
                period,
                customer_id,
                extra={"customer_id": customer_id, "period": str(period), "source_id": source_id},
            )
            month.last_verified_at = None
            reverified.append(period)

        later = self.ledger.months_after(customer_id, period)
        for row in later:
            row.closing_balance += delta
            row.updated_at = now

        latest = later[-1] if later else month
        self.db.flush()
        for year in range(period.year, latest.year + 1):
            self.ledger.rollup_year(customer_id, year)

        previous_balance = customer.current_balance
        customer.current_balance = latest.closing_balance
        customer.updated_at = now

        self.ledger.audit(
            customer_id,
            action,
            entity_type=transaction_type.value,
            entity_id=source_id,
            old_value={"current_balance": previous_balance},
            new_value={
                "period": str(period),
                "delta": delta,
                "current_balance": customer.current_balance,
            },
        )
        self.db.flush()

        return LedgerPostingResult(
            customer_id=customer_id,
            period=period,
            transaction_type=transaction_type,
            delta=delta,
            current_balance=customer.current_balance,
            months_shifted=len(later),
            months_created=created,
            reverified_periods=reverified,
        )

    def _rebuild_instead(
        self, customer_id: int, transaction_type: TransactionType, period: Period, reason: str
    ) -> LedgerPostingResult:
        logger.warning(
            "Falling back to full rebuild for customer %s (%s, %s)",
            customer_id,
            reason,
            period,
            extra={"customer_id": customer_id, "period": str(period)},
        )
        result = self.full_rebuild(customer_id)
        return LedgerPostingResult(
            customer_id=customer_id,
            period=period,
            transaction_type=transaction_type,
            delta=result.drift,
            current_balance=result.current_balance,
            mode="rebuild",
        )

    # Rebuilds

    def full_rebuild(self, customer_id: int) -> RebuildResult:
        """
        Recompute every monthly and yearly row from the source tables.

        Months that no longer hold transactions are zeroed, never deleted, and
        the chain is filled so no calendar month is skipped.
        """
        customer = self.ledger.lock_customer(customer_id)
        previous_balance = customer.current_balance

        lines = self.sources.fetch_lines(customer_id, StatementFilters())
        grouped = group_by_period(lines)
        existing = {row.period: row for row in self.ledger.months(customer_id)}

        periods = set(grouped) | set(existing)
        now = datetime.utcnow()
        running = ZERO
        records: list[dict] = []

        if periods:
            for period in min(periods).through(max(periods)):
                totals = grouped.get(period, PeriodTotals())
                row = existing.get(period)
                if row is None:
                    row = CustomerBalanceMonthly(customer_id=customer_id, year=period.year, month=period.month)
                    self.db.add(row)
                for t in TransactionType:
                    setattr(row, f"total_{t.value}", getattr(totals, f"{t.value}_count"))
                    setattr(row, f"total_{t.value}_amount", getattr(totals, f"{t.value}_amount"))
                row.transaction_total = totals.transaction_total
                running += row.transaction_total
                row.closing_balance = running
                row.last_verified_at = now
                row.last_updated_by = None
                row.updated_by_entry_id = None
                row.updated_at = now
                records.append(_month_record(row))

            self.db.flush()
            for year in range(min(periods).year, max(periods).year + 1):
                self.ledger.rollup_year(customer_id, year)

        customer.current_balance = running
        customer.updated_at = now

        breakdown = Counter(line.ledger_type.value for line in lines)
        result = RebuildResult(
            customer_id=customer_id,
            previous_balance=previous_balance,
            current_balance=running,
            breakdown={t.value: breakdown.get(t.value, 0) for t in TransactionType},
            months_rebuilt=len(records),
            monthly_records=records,
            verified_at=now if records else None,
        )

        if result.drift != 0:
            logger.warning(
                "Balance drift for customer %s: %s -> %s",
                customer_id,
                previous_balance,
                running,
                extra={
                    "customer_id": customer_id,
                    "old_balance": previous_balance,
                    "new_balance": running,
                },
            )
        logger.info(
            "Rebuilt %d months for customer %s",
            result.months_rebuilt,
            customer_id,
            extra={"customer_id": customer_id, "current_balance": running},
        )

        self.ledger.audit(
            customer_id,
            "REBUILD",
            old_value={"current_balance": previous_balance},
            new_value={"current_balance": running, "months_rebuilt": result.months_rebuilt},
        )
        self.db.flush()
        return result

    def recalculate_closing_balances(
        self, customer_id: int, months_back: int | None = None
    ) -> RecalculationResult:
        """
        Re-derive ``transaction_total`` from the stored counters and re-chain the
        closing balances of the last ``months_back`` tracked months (all when None).
        Source tables are not read.
        """
        if months_back is not None and months_back < 1:
            raise LedgerValidationError("months_back must be at least 1")

        customer = self.ledger.lock_customer(customer_id)
        months = self.ledger.months(customer_id)
        if not months:
            return RecalculationResult(
                customer_id=customer_id,
                months_processed=0,
                months_recalculated=[],
                current_balance=customer.current_balance,
            )

        start = 0 if months_back is None else max(len(months) - months_back, 0)
        running = months[start - 1].closing_balance if start > 0 else ZERO
        now = datetime.utcnow()

        recalculated: list[dict] = []
        for row in months[start:]:
            row.transaction_total = _transaction_total(row)
            running += row.transaction_total
            row.closing_balance = running
            row.updated_at = now
            recalculated.append(_month_record(row))

        self.db.flush()
        for year in range(months[start].year, months[-1].year + 1):
            self.ledger.rollup_year(customer_id, year)

        previous_balance = customer.current_balance
        customer.current_balance = running
        customer.updated_at = now

        self.ledger.audit(
            customer_id,
            "RECALCULATE",
            old_value={"current_balance": previous_balance},
            new_value={"current_balance": running, "months_processed": len(recalculated)},
        )
        self.db.flush()

        return RecalculationResult(
            customer_id=customer_id,
            months_processed=len(recalculated),
            months_recalculated=recalculated,
            current_balance=running,
        )

    def calculate_yearly_closing(self, customer_id: int, year: int) -> YearlyClosingResult:
        """Roll a year's months into its yearly row and stamp them verified."""
        self.ledger.lock_customer(customer_id)
        months = self.ledger.months(customer_id, year)
        if not months:
            logger.info(
                "No monthly balances for customer %s in %s",
                customer_id,
                year,
                extra={"customer_id": customer_id, "year": year},
            )
            return YearlyClosingResult(
                customer_id=customer_id, year=year, months_included=0, yearly_balance=ZERO
            )

        row = self.ledger.rollup_year(customer_id, year)
        now = datetime.utcnow()
        for month in months:
            month.last_verified_at = now

        self.ledger.audit(
            customer_id,
            "YEARLY_CLOSE",
            new_value={"year": year, "closing_balance": row.closing_balance},
        )
        self.db.flush()

        return YearlyClosingResult(
            customer_id=customer_id,
            year=year,
            months_included=len(months),
            yearly_balance=row.closing_balance,
        )
