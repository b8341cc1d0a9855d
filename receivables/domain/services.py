"""
Domain Services - Statement reconstruction and period aggregation.
Pure Python: no database access, repositories are injected.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from decimal import Decimal

from .entities import (
    CreditCheck,
    PeriodTotals,
    Statement,
    StatementFilters,
    StatementStats,
    TransactionLine,
)
from .value_objects import ZERO, SOURCE_PRIORITY, Period


class ITransactionSourceRepository(ABC):

    @abstractmethod
    def fetch_lines(self, customer_id: int, filters: StatementFilters) -> list[TransactionLine]:
        """Counted transactions of a customer, in fetch order."""
        ...


def chronological_key(line: TransactionLine) -> tuple[int, int, int]:
    return (line.timestamp, SOURCE_PRIORITY[line.source_table], line.id)


class StatementBuilder:
    """
    Service - Builds an ordered statement with a running balance.

    Lines are walked oldest first with ``balance += credit - debit``; the
    display order is applied afterwards so every line keeps the balance it
    had in chronological order.
    """

    SORT_DIRECTIONS = ("asc", "desc")

    def build(self, lines: Iterable[TransactionLine], sort_direction: str = "asc") -> Statement:
        if sort_direction not in self.SORT_DIRECTIONS:
            raise ValueError(f"sort_direction must be one of {self.SORT_DIRECTIONS}")

        chronological = sorted(lines, key=chronological_key)

        balance = ZERO
        with_balance: list[TransactionLine] = []
        for line in chronological:
            balance += line.delta
            with_balance.append(line.with_balance(balance))

        stats = self.calculate_stats(with_balance)

        if sort_direction == "desc":
            with_balance.reverse()

        return Statement(transactions=with_balance, stats=stats, sort_direction=sort_direction)

    @staticmethod
    def calculate_stats(chronological: list[TransactionLine]) -> StatementStats:
        return StatementStats(
            total_debit=sum((line.debit for line in chronological), ZERO),
            total_credit=sum((line.credit for line in chronological), ZERO),
            balance=chronological[-1].balance if chronological else ZERO,
        )


def net_balance(lines: Iterable[TransactionLine]) -> Decimal:
    """Order-independent total credit minus total debit."""
    return sum((line.delta for line in lines), ZERO)


def group_by_period(lines: Iterable[TransactionLine]) -> dict[Period, PeriodTotals]:
    """Per-month counters and sums, keyed in ascending period order."""
    grouped: dict[Period, PeriodTotals] = {}
    for line in lines:
        totals = grouped.setdefault(line.period, PeriodTotals())
        totals.add(line.ledger_type, line.debit + line.credit)
    return dict(sorted(grouped.items()))


def check_credit_limit(
    customer_id: int,
    current_balance: Decimal,
    credit_limit: Decimal,
    additional_debit: Decimal = ZERO,
) -> CreditCheck:
    """
    Balances are credit minus debit, so the amount a customer owes is the
    negative part of the balance. A credit limit of 0 means no limit.
    """
    owed = max(-current_balance, ZERO)
    projected = max(-(current_balance - additional_debit), ZERO)
    return CreditCheck(
        customer_id=customer_id,
        current_balance=current_balance,
        credit_limit=credit_limit or ZERO,
        owed=owed,
        projected_owed=projected,
    )
