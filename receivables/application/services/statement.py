"""
Application Service - Customer statements built from the source tables.
"""

import logging
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session

from receivables.domain.entities import Statement, StatementFilters, StatementStats
from receivables.domain.services import StatementBuilder, net_balance
from receivables.domain.value_objects import ZERO
from receivables.infrastructure.database.models import Customer
from receivables.infrastructure.repositories import (
    SqlBalanceLedgerRepository,
    SqlTransactionSourceRepository,
)

logger = logging.getLogger(__name__)


class StatementService:
    """
    Reconstructs statements and keeps ``Customer.current_balance`` honest.

    An unfiltered statement sees every counted transaction, so its final
    balance is authoritative and overwrites a drifted cached balance.
    """

    def __init__(self, db: Session, builder: StatementBuilder | None = None):
        self.db = db
        self.sources = SqlTransactionSourceRepository(db)
        self.ledger = SqlBalanceLedgerRepository(db)
        self.builder = builder or StatementBuilder()

    def build_statement(
        self,
        customer_id: int,
        filters: StatementFilters | None = None,
        sort_direction: str = "desc",
    ) -> Statement:
        filters = filters or StatementFilters()
        customer = self.ledger.get_customer(customer_id)

        lines = self.sources.fetch_lines(customer_id, filters)
        statement = self.builder.build(lines, sort_direction)

        if not filters.has_filters:
            self._reconcile(customer, statement.stats.balance)
        return statement

    def _reconcile(self, customer: Customer, balance) -> bool:
        if customer.current_balance == balance:
            return False
        logger.warning(
            "Cached balance of customer %s drifted: %s -> %s",
            customer.id,
            customer.current_balance,
            balance,
            extra={
                "customer_id": customer.id,
                "old_balance": customer.current_balance,
                "new_balance": balance,
            },
        )
        self.ledger.audit(
            customer.id,
            "RECONCILE",
            old_value={"current_balance": customer.current_balance},
            new_value={"current_balance": balance},
        )
        customer.current_balance = balance
        customer.updated_at = datetime.utcnow()
        self.db.flush()
        return True

    def find_customer(self, query: str) -> Customer | None:
        """Exact code match first, then a name substring."""
        customer = self.db.query(Customer).filter(Customer.code == query).first()
        if customer is not None:
            return customer
        return (
            self.db.query(Customer)
            .filter(or_(Customer.name.ilike(f"%{query}%"), Customer.code.ilike(f"%{query}%")))
            .order_by(Customer.id)
            .first()
        )

    def search_statement(
        self,
        customer_query: str | None,
        filters: StatementFilters | None = None,
        sort_direction: str = "desc",
    ) -> tuple[Customer | None, Statement]:
        """Statement lookup by customer code or name. Never reconciles."""
        filters = filters or StatementFilters()
        customer = self.find_customer(customer_query) if customer_query else None
        if customer is None:
            return None, Statement(transactions=[], stats=StatementStats(), sort_direction=sort_direction)

        lines = self.sources.fetch_lines(customer.id, filters)
        return customer, self.builder.build(lines, sort_direction)

    def recalculate_balances(self, customer_ids: list[int] | None = None) -> dict:
        """Overwrite every cached balance that differs from its source-derived value."""
        ids = customer_ids if customer_ids is not None else self.ledger.customer_ids()

        updated: list[dict] = []
        for customer_id in ids:
            customer = self.ledger.get_customer(customer_id)
            balance = net_balance(self.sources.fetch_lines(customer_id, StatementFilters()))
            old_balance = customer.current_balance or ZERO
            if self._reconcile(customer, balance):
                updated.append({
                    "id": customer.id,
                    "code": customer.code,
                    "name": customer.name,
                    "old_balance": old_balance,
                    "new_balance": balance,
                })

        logger.info(
            "Recalculated balances for %d customers, %d updated",
            len(ids),
            len(updated),
            extra={"total_customers": len(ids), "updated_count": len(updated)},
        )
        return {
            "total_customers": len(ids),
            "updated_count": len(updated),
            "unchanged_count": len(ids) - len(updated),
            "updated_customers": updated,
        }
