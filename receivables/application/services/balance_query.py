"""
Application Service - Read-only balance queries.
"""

from decimal import Decimal

from sqlalchemy.orm import Session

from receivables.domain.entities import CreditCheck
from receivables.domain.services import check_credit_limit
from receivables.domain.value_objects import ZERO, BalanceStatus, Period, balance_status
from receivables.infrastructure.database.models import CustomerBalanceMonthly, CustomerBalanceYearly
from receivables.infrastructure.repositories import SqlBalanceLedgerRepository


class CustomerBalanceQueryService:

    def __init__(self, db: Session):
        self.db = db
        self.ledger = SqlBalanceLedgerRepository(db)

    def get_current_balance(self, customer_id: int) -> Decimal:
        return self.ledger.get_customer(customer_id).current_balance

    def get_monthly_balance(self, customer_id: int, year: int, month: int) -> CustomerBalanceMonthly | None:
        self.ledger.get_customer(customer_id)
        return self.ledger.get_month(customer_id, Period(year, month))

    def get_yearly_balance(self, customer_id: int, year: int) -> CustomerBalanceYearly | None:
        self.ledger.get_customer(customer_id)
        return self.ledger.get_year(customer_id, year)

    def list_monthly_balances(self, customer_id: int, year: int | None = None) -> list[CustomerBalanceMonthly]:
        self.ledger.get_customer(customer_id)
        return self.ledger.months(customer_id, year)

    def get_opening_balance(self, customer_id: int, year: int, month: int) -> Decimal:
        """Closing balance of the latest tracked month before the period, else 0."""
        previous = self.ledger.month_before(customer_id, Period(year, month))
        return previous.closing_balance if previous else ZERO

    @staticmethod
    def balance_status(balance: Decimal) -> BalanceStatus:
        return balance_status(balance)

    def check_credit_limit(self, customer_id: int, additional_debit: Decimal = ZERO) -> CreditCheck:
        customer = self.ledger.get_customer(customer_id)
        return check_credit_limit(
            customer_id,
            customer.current_balance,
            customer.credit_limit,
            Decimal(additional_debit),
        )
