"""
Domain Entities - Statement lines, filters and ledger results.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal

from .exceptions import InvalidDateRangeError, UnknownTransactionTypeError
from .value_objects import (
    ZERO,
    Period,
    SourceTable,
    StatementTransactionType,
    TransactionType,
    balance_delta,
)


def epoch_seconds(value: datetime) -> int:
    """Naive datetimes are read as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


@dataclass(frozen=True)
class TransactionLine:
    """
    One counted transaction projected into the uniform statement shape.
    ``balance`` is filled in by the statement builder.
    """
    id: int
    code: str
    type_label: str
    date: datetime
    amount: Decimal
    debit: Decimal
    credit: Decimal
    transaction_type: StatementTransactionType
    ledger_type: TransactionType
    source_table: SourceTable
    timestamp: int
    note: str | None = None
    balance: Decimal | None = None

    @property
    def period(self) -> Period:
        return Period.from_date(self.date)

    @property
    def delta(self) -> Decimal:
        return self.credit - self.debit

    def with_balance(self, balance: Decimal) -> "TransactionLine":
        return replace(self, balance=balance)


@dataclass(frozen=True)
class StatementFilters:
    """Server-side statement filters. Any set filter disables reconciliation."""
    from_date: date | None = None
    to_date: date | None = None
    search: str | None = None
    transaction_type: StatementTransactionType | None = None

    @classmethod
    def create(
        cls,
        from_date: date | None = None,
        to_date: date | None = None,
        search: str | None = None,
        transaction_type: str | None = None,
    ) -> "StatementFilters":
        if from_date and to_date and from_date > to_date:
            raise InvalidDateRangeError(from_date, to_date)
        parsed_type = None
        if transaction_type:
            try:
                parsed_type = StatementTransactionType(transaction_type)
            except ValueError:
                raise UnknownTransactionTypeError(
                    transaction_type, [t.value for t in StatementTransactionType]
                ) from None
        return cls(
            from_date=from_date,
            to_date=to_date,
            search=search or None,
            transaction_type=parsed_type,
        )

    @property
    def has_filters(self) -> bool:
        return any(
            value is not None
            for value in (self.from_date, self.to_date, self.search, self.transaction_type)
        )

    def includes(self, source_type: StatementTransactionType) -> bool:
        return self.transaction_type is None or self.transaction_type == source_type


@dataclass(frozen=True)
class StatementStats:
    total_debit: Decimal = ZERO
    total_credit: Decimal = ZERO
    balance: Decimal = ZERO


@dataclass(frozen=True)
class Page:
    items: list[TransactionLine]
    total: int
    per_page: int
    current_page: int

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page)) if self.per_page else 1


@dataclass(frozen=True)
class Statement:
    """Fully materialised statement: lines in display order plus stats."""
    transactions: list[TransactionLine]
    stats: StatementStats
    sort_direction: str = "asc"

    def paginate(self, page: int, per_page: int) -> Page:
        page = max(page, 1)
        start = (page - 1) * per_page
        return Page(
            items=self.transactions[start:start + per_page],
            total=len(self.transactions),
            per_page=per_page,
            current_page=page,
        )


@dataclass
class PeriodTotals:
    """Per-type counters and USD sums for one month."""
    sale_count: int = 0
    sale_amount: Decimal = ZERO
    return_count: int = 0
    return_amount: Decimal = ZERO
    credit_count: int = 0
    credit_amount: Decimal = ZERO
    debit_count: int = 0
    debit_amount: Decimal = ZERO
    payment_count: int = 0
    payment_amount: Decimal = ZERO

    def add(self, transaction_type: TransactionType, amount: Decimal, count: int = 1) -> None:
        prefix = TransactionType(transaction_type).value
        setattr(self, f"{prefix}_count", getattr(self, f"{prefix}_count") + count)
        setattr(self, f"{prefix}_amount", getattr(self, f"{prefix}_amount") + amount)

    @property
    def transaction_total(self) -> Decimal:
        return sum(
            (balance_delta(t, getattr(self, f"{t.value}_amount")) for t in TransactionType),
            ZERO,
        )


@dataclass(frozen=True)
class LedgerPostingResult:
    customer_id: int
    period: Period
    transaction_type: TransactionType
    delta: Decimal
    current_balance: Decimal
    mode: str = "incremental"  # incremental, rebuild
    months_shifted: int = 0
    months_created: int = 0
    reverified_periods: list[Period] = field(default_factory=list)


@dataclass(frozen=True)
class RebuildResult:
    customer_id: int
    previous_balance: Decimal
    current_balance: Decimal
    breakdown: dict[str, int]
    months_rebuilt: int
    monthly_records: list[dict]
    verified_at: datetime | None = None

    @property
    def drift(self) -> Decimal:
        return self.current_balance - self.previous_balance


@dataclass(frozen=True)
class RecalculationResult:
    customer_id: int
    months_processed: int
    months_recalculated: list[dict]
    current_balance: Decimal


@dataclass(frozen=True)
class YearlyClosingResult:
    customer_id: int
    year: int
    months_included: int
    yearly_balance: Decimal


@dataclass(frozen=True)
class CreditCheck:
    customer_id: int
    current_balance: Decimal
    credit_limit: Decimal
    owed: Decimal
    projected_owed: Decimal

    @property
    def is_unlimited(self) -> bool:
        return self.credit_limit <= 0

    @property
    def within_limit(self) -> bool:
        return self.is_unlimited or self.projected_owed <= self.credit_limit
