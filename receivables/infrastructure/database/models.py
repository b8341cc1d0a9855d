"""
Infrastructure - SQLModel database models.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from receivables.domain.value_objects import Period, TransactionType


class Customer(SQLModel, table=True):
    """Customer with its cached running balance (credit minus debit)."""

    __tablename__ = "customers"

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True)
    name: str = Field(index=True)
    current_balance: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    credit_limit: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Sale(SQLModel, table=True):
    """Sale invoice. Counted once approved."""

    __tablename__ = "sales"

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True)
    prefix: str = "INV"  # INV, INX
    date: datetime = Field(index=True)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    total: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    currency_rate: Decimal = Field(default=Decimal("1"), max_digits=19, decimal_places=6)
    total_usd: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    note: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_approved(self) -> bool:
        return self.approved_at is not None


class CustomerPayment(SQLModel, table=True):
    """Payment receipt. Counted once approved."""

    __tablename__ = "customer_payments"

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True)
    prefix: str = "RCT"  # RCT, RCX
    date: datetime = Field(index=True)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    amount: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    currency_rate: Decimal = Field(default=Decimal("1"), max_digits=19, decimal_places=6)
    amount_usd: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    note: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_approved(self) -> bool:
        return self.approved_at is not None


class CustomerReturn(SQLModel, table=True):
    """Sales return. Counted once approved and received by the warehouse."""

    __tablename__ = "customer_returns"

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True)
    prefix: str = "RTN"  # RTN, RTX
    date: datetime = Field(index=True)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    total: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    currency_rate: Decimal = Field(default=Decimal("1"), max_digits=19, decimal_places=6)
    total_usd: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    note: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    return_received_by: str | None = None
    return_received_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_approved(self) -> bool:
        return self.approved_at is not None

    @property
    def is_received(self) -> bool:
        return self.return_received_at is not None


class CustomerCreditDebitNote(SQLModel, table=True):
    """Credit or debit note. Counted as soon as it exists."""

    __tablename__ = "customer_credit_debit_notes"

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True)
    prefix: str = "CRN"  # CRN, CRX, DBN, DBX
    type: str = "credit"  # credit, debit
    date: datetime = Field(index=True)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    amount: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    currency_rate: Decimal = Field(default=Decimal("1"), max_digits=19, decimal_places=6)
    amount_usd: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    note: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def ledger_type(self) -> TransactionType:
        return TransactionType.CREDIT if self.type == "credit" else TransactionType.DEBIT


class CustomerBalanceMonthly(SQLModel, table=True):
    """
    Monthly ledger checkpoint.

    closing_balance(M) = closing_balance(M-1) + transaction_total(M).
    last_updated_by / updated_by_entry_id point at the last transaction posted
    into this month; later months shifted by a backdated entry keep theirs.
    """

    __tablename__ = "customer_balance_monthlies"
    __table_args__ = (
        UniqueConstraint("customer_id", "year", "month", name="unique_customer_month_balance"),
    )

    id: int | None = Field(default=None, primary_key=True)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    year: int = Field(index=True)
    month: int  # 1=Jan, 12=Dec

    total_sale: int = 0
    total_sale_amount: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    total_return: int = 0
    total_return_amount: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    total_credit: int = 0
    total_credit_amount: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    total_debit: int = 0
    total_debit_amount: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    total_payment: int = 0
    total_payment_amount: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)

    transaction_total: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    closing_balance: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)

    last_verified_at: datetime | None = None
    last_updated_by: str | None = None  # sale, return, credit, debit, payment
    updated_by_entry_id: int | None = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def period(self) -> Period:
        return Period(self.year, self.month)


class CustomerBalanceYearly(SQLModel, table=True):
    """Rollup of a customer's monthly rows for one year."""

    __tablename__ = "customer_balance_yearlies"
    __table_args__ = (
        UniqueConstraint("customer_id", "year", name="unique_customer_year_balance"),
    )

    id: int | None = Field(default=None, primary_key=True)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    year: int = Field(index=True)

    total_sale: int = 0
    total_sale_amount: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    total_return: int = 0
    total_return_amount: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    total_credit: int = 0
    total_credit_amount: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    total_debit: int = 0
    total_debit_amount: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    total_payment: int = 0
    total_payment_amount: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)

    transaction_total: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    closing_balance: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class BalanceAuditLog(SQLModel, table=True):
    """Append-only trail of ledger writes."""

    __tablename__ = "balance_audit_logs"

    id: int | None = Field(default=None, primary_key=True)
    customer_id: int = Field(index=True)
    action: str = Field(index=True)  # APPLY, REVERT, REBUILD, RECALCULATE, RECONCILE, YEARLY_CLOSE

    entity_type: str | None = None  # sales, customer_payments, ...
    entity_id: int | None = None

    old_value: str | None = None  # JSON
    new_value: str | None = None  # JSON

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)


COUNTER_FIELDS: tuple[str, ...] = tuple(
    f"total_{t.value}{suffix}" for t in TransactionType for suffix in ("", "_amount")
)
