"""
Repository implementations over SQLAlchemy sessions.
"""

import json
from datetime import datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from receivables.domain.entities import StatementFilters, TransactionLine, epoch_seconds
from receivables.domain.exceptions import CustomerNotFoundError
from receivables.domain.services import ITransactionSourceRepository
from receivables.domain.value_objects import (
    ZERO,
    Period,
    SourceTable,
    StatementTransactionType,
    TransactionType,
    signed_effect,
)
from receivables.infrastructure.database.models import (
    COUNTER_FIELDS,
    BalanceAuditLog,
    Customer,
    CustomerBalanceMonthly,
    CustomerBalanceYearly,
    CustomerCreditDebitNote,
    CustomerPayment,
    CustomerReturn,
    Sale,
)


def _line(
    record,
    amount_usd: Decimal,
    type_label: str,
    ledger_type: TransactionType,
    transaction_type: StatementTransactionType,
    source_table: SourceTable,
) -> TransactionLine:
    amount = Decimal(amount_usd or 0)
    is_debit = signed_effect(ledger_type) > 0
    return TransactionLine(
        id=record.id,
        code=f"{record.prefix}{record.code}",
        type_label=type_label,
        date=record.date,
        amount=amount if is_debit else -amount,
        debit=amount if is_debit else ZERO,
        credit=ZERO if is_debit else amount,
        note=record.note,
        transaction_type=transaction_type,
        ledger_type=ledger_type,
        source_table=source_table,
        timestamp=epoch_seconds(record.date),
    )


class SqlTransactionSourceRepository(ITransactionSourceRepository):
    """Reads counted transactions from the four source tables."""

    def __init__(self, db: Session):
        self.db = db

    def _filtered(self, model, customer_id: int, filters: StatementFilters, *conditions):
        query = self.db.query(model).filter(model.customer_id == customer_id, *conditions)
        if filters.from_date:
            query = query.filter(model.date >= datetime.combine(filters.from_date, time.min))
        if filters.to_date:
            next_day = datetime.combine(filters.to_date + timedelta(days=1), time.min)
            query = query.filter(model.date < next_day)
        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.filter(
                or_(model.note.ilike(pattern), model.code.ilike(pattern), model.prefix.ilike(pattern))
            )
        return query.order_by(model.date, model.id).all()

    def fetch_lines(self, customer_id: int, filters: StatementFilters) -> list[TransactionLine]:
        lines: list[TransactionLine] = []

        if filters.includes(StatementTransactionType.CREDIT_DEBIT_NOTE):
            for note in self._filtered(CustomerCreditDebitNote, customer_id, filters):
                lines.append(_line(
                    note,
                    note.amount_usd,
                    "Credit Note" if note.ledger_type is TransactionType.CREDIT else "Debit Note",
                    note.ledger_type,
                    StatementTransactionType.CREDIT_DEBIT_NOTE,
                    SourceTable.CUSTOMER_CREDIT_DEBIT_NOTES,
                ))

        if filters.includes(StatementTransactionType.SALE):
            for sale in self._filtered(Sale, customer_id, filters, Sale.approved_at.is_not(None)):
                lines.append(_line(
                    sale,
                    sale.total_usd,
                    "Sale Invoice",
                    TransactionType.SALE,
                    StatementTransactionType.SALE,
                    SourceTable.SALES,
                ))

        if filters.includes(StatementTransactionType.PAYMENT):
            approved = CustomerPayment.approved_at.is_not(None)
            for payment in self._filtered(CustomerPayment, customer_id, filters, approved):
                lines.append(_line(
                    payment,
                    payment.amount_usd,
                    "Payment",
                    TransactionType.PAYMENT,
                    StatementTransactionType.PAYMENT,
                    SourceTable.CUSTOMER_PAYMENTS,
                ))

        if filters.includes(StatementTransactionType.RETURN):
            counted = and_(
                CustomerReturn.approved_at.is_not(None),
                CustomerReturn.return_received_at.is_not(None),
            )
            for customer_return in self._filtered(CustomerReturn, customer_id, filters, counted):
                lines.append(_line(
                    customer_return,
                    customer_return.total_usd,
                    "Sales Return",
                    TransactionType.RETURN,
                    StatementTransactionType.RETURN,
                    SourceTable.CUSTOMER_RETURNS,
                ))

        return lines


class SqlBalanceLedgerRepository:
    """
    Monthly and yearly balance rows of one database session.

    Methods only add and flush; committing is left to the caller's unit of work.
    """

    def __init__(self, db: Session):
        self.db = db

    # Customers

    def get_customer(self, customer_id: int) -> Customer:
        customer = self.db.get(Customer, customer_id)
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        return customer

    def lock_customer(self, customer_id: int) -> Customer:
        """Row lock serialising every ledger write of one customer."""
        customer = (
            self.db.query(Customer)
            .filter(Customer.id == customer_id)
            .with_for_update()
            .first()
        )
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        return customer

    def customer_ids(self, active_only: bool = True) -> list[int]:
        query = self.db.query(Customer.id)
        if active_only:
            query = query.filter(Customer.is_active.is_(True))
        return [row[0] for row in query.order_by(Customer.id).all()]

    # Monthly rows

    def _months_query(self, customer_id: int):
        return self.db.query(CustomerBalanceMonthly).filter(
            CustomerBalanceMonthly.customer_id == customer_id
        )

    def get_month(self, customer_id: int, period: Period) -> CustomerBalanceMonthly | None:
        return self._months_query(customer_id).filter(
            CustomerBalanceMonthly.year == period.year,
            CustomerBalanceMonthly.month == period.month,
        ).first()

    def months(self, customer_id: int, year: int | None = None) -> list[CustomerBalanceMonthly]:
        query = self._months_query(customer_id)
        if year is not None:
            query = query.filter(CustomerBalanceMonthly.year == year)
        return query.order_by(CustomerBalanceMonthly.year, CustomerBalanceMonthly.month).all()

    def months_after(self, customer_id: int, period: Period) -> list[CustomerBalanceMonthly]:
        return self._months_query(customer_id).filter(
            or_(
                CustomerBalanceMonthly.year > period.year,
                and_(
                    CustomerBalanceMonthly.year == period.year,
                    CustomerBalanceMonthly.month > period.month,
                ),
            )
        ).order_by(CustomerBalanceMonthly.year, CustomerBalanceMonthly.month).all()

    def month_before(self, customer_id: int, period: Period) -> CustomerBalanceMonthly | None:
        """Latest tracked month strictly before ``period``."""
        return self._months_query(customer_id).filter(
            or_(
                CustomerBalanceMonthly.year < period.year,
                and_(
                    CustomerBalanceMonthly.year == period.year,
                    CustomerBalanceMonthly.month < period.month,
                ),
            )
        ).order_by(
            CustomerBalanceMonthly.year.desc(), CustomerBalanceMonthly.month.desc()
        ).first()

    def _new_month(self, customer_id: int, period: Period, opening: Decimal) -> CustomerBalanceMonthly:
        row = CustomerBalanceMonthly(
            customer_id=customer_id,
            year=period.year,
            month=period.month,
            transaction_total=ZERO,
            closing_balance=opening,
        )
        self.db.add(row)
        return row

    def get_or_create_month(
        self, customer_id: int, period: Period
    ) -> tuple[CustomerBalanceMonthly, int]:
        """
        Return the month row and how many rows were created to reach it.

        A new month opens at the closing balance of the nearest earlier tracked
        month. Empty months are also created between that month and the target,
        and between the target and the nearest later tracked month, so the
        closing-balance chain never skips a calendar month.
        """
        existing = self.get_month(customer_id, period)
        if existing is not None:
            return existing, 0

        previous = self.month_before(customer_id, period)
        opening = previous.closing_balance if previous else ZERO
        start = previous.period.next() if previous else period

        created = 0
        row = None
        for current in start.through(period):
            row = self._new_month(customer_id, current, opening)
            created += 1

        following = self.months_after(customer_id, period)
        if following:
            for current in period.next().through(following[0].period.previous()):
                self._new_month(customer_id, current, opening)
                created += 1

        self.db.flush()
        return row, created

    # Yearly rows

    def get_year(self, customer_id: int, year: int) -> CustomerBalanceYearly | None:
        return self.db.query(CustomerBalanceYearly).filter(
            CustomerBalanceYearly.customer_id == customer_id,
            CustomerBalanceYearly.year == year,
        ).first()

    def get_or_create_year(self, customer_id: int, year: int) -> CustomerBalanceYearly:
        row = self.get_year(customer_id, year)
        if row is not None:
            return row

        prior = self.db.query(CustomerBalanceYearly).filter(
            CustomerBalanceYearly.customer_id == customer_id,
            CustomerBalanceYearly.year < year,
        ).order_by(CustomerBalanceYearly.year.desc()).first()
        if prior is not None:
            opening = prior.closing_balance
        else:
            month = self.month_before(customer_id, Period(year, 1))
            opening = month.closing_balance if month else ZERO

        row = CustomerBalanceYearly(
            customer_id=customer_id,
            year=year,
            transaction_total=ZERO,
            closing_balance=opening,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def rollup_year(self, customer_id: int, year: int) -> CustomerBalanceYearly | None:
        """Re-sum a year's months into its yearly row. None when the year has no months."""
        months = self.months(customer_id, year)
        if not months:
            return None

        row = self.get_or_create_year(customer_id, year)
        for name in COUNTER_FIELDS:
            zero = ZERO if name.endswith("_amount") else 0
            setattr(row, name, sum((getattr(m, name) for m in months), zero))
        row.transaction_total = sum((m.transaction_total for m in months), ZERO)
        row.closing_balance = months[-1].closing_balance
        row.updated_at = datetime.utcnow()
        self.db.flush()
        return row

    # Audit trail

    def audit(
        self,
        customer_id: int,
        action: str,
        entity_type: str | None = None,
        entity_id: int | None = None,
        old_value: dict | None = None,
        new_value: dict | None = None,
    ) -> BalanceAuditLog:
        entry = BalanceAuditLog(
            customer_id=customer_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_value=json.dumps(old_value, default=str) if old_value is not None else None,
            new_value=json.dumps(new_value, default=str) if new_value is not None else None,
        )
        self.db.add(entry)
        return entry
