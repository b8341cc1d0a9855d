"""
Domain Layer - Value objects for the customer receivables ledger.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

ZERO = Decimal("0")
USD_PLACES = Decimal("0.0001")


class TransactionType(str, Enum):
    """Transaction kinds counted in the customer ledger."""
    SALE = "sale"
    RETURN = "return"
    CREDIT = "credit"      # Credit note
    DEBIT = "debit"        # Debit note
    PAYMENT = "payment"


class LedgerSide(str, Enum):
    DEBIT = "DEBIT"    # Customer owes more
    CREDIT = "CREDIT"  # Customer owes less


class StatementTransactionType(str, Enum):
    """Statement filter values, one per source table."""
    SALE = "sale"
    PAYMENT = "payment"
    RETURN = "return"
    CREDIT_DEBIT_NOTE = "credit_debit_note"


class SourceTable(str, Enum):
    SALES = "sales"
    CUSTOMER_PAYMENTS = "customer_payments"
    CUSTOMER_RETURNS = "customer_returns"
    CUSTOMER_CREDIT_DEBIT_NOTES = "customer_credit_debit_notes"


class BalanceStatus(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    BALANCED = "balanced"


LEDGER_SIDES: dict[TransactionType, LedgerSide] = {
    TransactionType.SALE: LedgerSide.DEBIT,
    TransactionType.DEBIT: LedgerSide.DEBIT,
    TransactionType.PAYMENT: LedgerSide.CREDIT,
    TransactionType.RETURN: LedgerSide.CREDIT,
    TransactionType.CREDIT: LedgerSide.CREDIT,
}

# Same-timestamp statement lines are ordered by source table, then by id.
SOURCE_PRIORITY: dict[SourceTable, int] = {
    SourceTable.CUSTOMER_CREDIT_DEBIT_NOTES: 0,
    SourceTable.SALES: 1,
    SourceTable.CUSTOMER_PAYMENTS: 2,
    SourceTable.CUSTOMER_RETURNS: 3,
}


def signed_effect(transaction_type: TransactionType) -> int:
    """
    +1 for debits (sale, debit note), -1 for credits (payment, return, credit note).

    This is the owed-style direction: a debit increases what the customer owes.
    """
    return 1 if LEDGER_SIDES[TransactionType(transaction_type)] is LedgerSide.DEBIT else -1


def balance_delta(transaction_type: TransactionType, amount: Decimal) -> Decimal:
    """
    Effect of a transaction on a stored ledger balance.

    Ledger and statement balances are kept as credit minus debit, the inverse of
    the owed-style direction: a sale of 100 moves the balance by -100 and a
    payment of 60 moves it by +60.
    """
    return -signed_effect(transaction_type) * Decimal(amount)


def balance_status(balance: Decimal) -> BalanceStatus:
    if balance > 0:
        return BalanceStatus.CREDIT
    if balance < 0:
        return BalanceStatus.DEBIT
    return BalanceStatus.BALANCED


@dataclass(frozen=True, slots=True, order=True)
class Period:
    """Value Object - A calendar month of the ledger."""
    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Invalid month: {self.month}")

    @classmethod
    def from_date(cls, value: date | datetime) -> "Period":
        return cls(value.year, value.month)

    def next(self) -> "Period":
        if self.month == 12:
            return Period(self.year + 1, 1)
        return Period(self.year, self.month + 1)

    def previous(self) -> "Period":
        if self.month == 1:
            return Period(self.year - 1, 12)
        return Period(self.year, self.month - 1)

    def through(self, last: "Period") -> Iterator["Period"]:
        """Iterate from this period up to and including ``last``."""
        current = self
        while current <= last:
            yield current
            current = current.next()

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True, slots=True)
class Money:
    """Value Object - An amount in a given currency."""
    amount: Decimal
    currency: str = "USD"


@dataclass(frozen=True, slots=True)
class ExchangeRate:
    """Value Object - Rate used to normalise a document amount to USD."""
    rate: Decimal
    currency: str = "USD"
    calculation_type: str = "divide"  # divide, multiply

    def to_usd(self, amount: Decimal) -> Money:
        amount = Decimal(amount)
        if self.currency == "USD" or self.rate == 0:
            return Money(amount=amount, currency="USD")
        if self.calculation_type == "multiply":
            return Money(amount=(amount * self.rate).quantize(USD_PLACES), currency="USD")
        return Money(amount=(amount / self.rate).quantize(USD_PLACES), currency="USD")
