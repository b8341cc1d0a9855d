"""
Application Service - Posts source document lifecycle events to the ledger.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from receivables.application.services.balance_aggregation import BalanceAggregationService
from receivables.domain.entities import LedgerPostingResult
from receivables.domain.exceptions import SourceStateError
from receivables.domain.value_objects import TransactionType
from receivables.infrastructure.database.models import (
    CustomerCreditDebitNote,
    CustomerPayment,
    CustomerReturn,
    Sale,
)

logger = logging.getLogger(__name__)

SourceRecord = Sale | CustomerPayment | CustomerReturn | CustomerCreditDebitNote


def _ledger_entry(record: SourceRecord):
    """(transaction type, USD amount) of a source record."""
    if isinstance(record, Sale):
        return TransactionType.SALE, record.total_usd
    if isinstance(record, CustomerPayment):
        return TransactionType.PAYMENT, record.amount_usd
    if isinstance(record, CustomerReturn):
        return TransactionType.RETURN, record.total_usd
    if isinstance(record, CustomerCreditDebitNote):
        return record.ledger_type, record.amount_usd
    raise TypeError(f"Unsupported source record: {type(record).__name__}")


def is_counted(record: SourceRecord) -> bool:
    if isinstance(record, CustomerReturn):
        return record.is_approved and record.is_received
    if isinstance(record, CustomerCreditDebitNote):
        return True
    return record.is_approved


class TransactionEventHandler:
    """Translates approvals, receipts and note creation into ledger postings."""

    def __init__(self, db: Session, aggregation: BalanceAggregationService | None = None):
        self.db = db
        self.aggregation = aggregation or BalanceAggregationService(db)

    def _apply(self, record: SourceRecord) -> LedgerPostingResult:
        transaction_type, amount = _ledger_entry(record)
        return self.aggregation.apply_transaction(
            record.customer_id,
            transaction_type,
            amount,
            record.date,
            record.id,
            recorded_at=record.updated_at,
        )

    def sale_approved(self, sale: Sale) -> LedgerPostingResult:
        if not sale.is_approved:
            raise SourceStateError(f"Sale {sale.id} is not approved")
        return self._apply(sale)

    def payment_approved(self, payment: CustomerPayment) -> LedgerPostingResult:
        if not payment.is_approved:
            raise SourceStateError(f"Payment {payment.id} is not approved")
        return self._apply(payment)

    def return_received(self, customer_return: CustomerReturn) -> LedgerPostingResult:
        if not customer_return.is_approved:
            raise SourceStateError(f"Return {customer_return.id} is not approved")
        if not customer_return.is_received:
            raise SourceStateError(f"Return {customer_return.id} has not been received")
        return self._apply(customer_return)

    def note_created(self, note: CustomerCreditDebitNote) -> LedgerPostingResult:
        return self._apply(note)

    def source_withdrawn(self, record: SourceRecord) -> LedgerPostingResult:
        """
        Void a counted record and take it back out of the ledger.

        Approvals (and the warehouse receipt of a return) are cleared; a
        credit/debit note counts from creation, so it is deleted.
        """
        if not is_counted(record):
            raise SourceStateError(f"{type(record).__name__} {record.id} is not counted")

        transaction_type, amount = _ledger_entry(record)
        customer_id, record_date, record_id = record.customer_id, record.date, record.id

        if isinstance(record, CustomerCreditDebitNote):
            self.db.delete(record)
        else:
            record.approved_at = None
            record.approved_by = None
            if isinstance(record, CustomerReturn):
                record.return_received_at = None
                record.return_received_by = None
            record.updated_at = datetime.utcnow()
        self.db.flush()

        logger.info(
            "Withdrawing %s %s from customer %s",
            transaction_type.value,
            record_id,
            customer_id,
            extra={"customer_id": customer_id, "source_id": record_id},
        )
        return self.aggregation.revert_transaction(
            customer_id,
            transaction_type,
            amount,
            record_date,
            record_id,
            recorded_at=datetime.utcnow(),
        )
