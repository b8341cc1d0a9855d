"""
Integration tests - Statements rebuilt from the source tables.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from receivables.application.services import StatementService
from receivables.domain.entities import StatementFilters
from receivables.domain.exceptions import CustomerNotFoundError
from receivables.domain.value_objects import SourceTable
from receivables.infrastructure.database.models import BalanceAuditLog


@pytest.fixture
def history(ledger, customer):
    ledger.sale(customer, datetime(2025, 1, 10), "100", note="January order")
    ledger.payment(customer, datetime(2025, 1, 20), "60", note="Bank transfer")
    ledger.customer_return(customer, datetime(2025, 2, 5), "20")
    ledger.note(customer, datetime(2025, 1, 31, 23, 30), "5", "credit", note="Discount")
    return customer


class TestBuildStatement:

    def test_lines_and_running_balance(self, db, history):
        statement = StatementService(db).build_statement(history.id, sort_direction="asc")

        assert [line.type_label for line in statement.transactions] == [
            "Sale Invoice", "Payment", "Credit Note", "Sales Return",
        ]
        assert [line.balance for line in statement.transactions] == [
            Decimal("-100"), Decimal("-40"), Decimal("-35"), Decimal("-15"),
        ]
        assert statement.stats.total_debit == Decimal("100")
        assert statement.stats.total_credit == Decimal("85")
        assert statement.stats.balance == Decimal("-15")

    def test_newest_first_by_default(self, db, history):
        statement = StatementService(db).build_statement(history.id)

        assert statement.sort_direction == "desc"
        assert [line.type_label for line in statement.transactions] == [
            "Sales Return", "Credit Note", "Payment", "Sale Invoice",
        ]
        assert statement.transactions[0].balance == Decimal("-15")
        assert statement.stats.balance == Decimal("-15")

    def test_codes_carry_prefix(self, db, history):
        statement = StatementService(db).build_statement(history.id)
        codes = {line.source_table: line.code for line in statement.transactions}
        assert codes[SourceTable.SALES].startswith("INV")
        assert codes[SourceTable.CUSTOMER_PAYMENTS].startswith("RCT")
        assert codes[SourceTable.CUSTOMER_RETURNS].startswith("RTN")
        assert codes[SourceTable.CUSTOMER_CREDIT_DEBIT_NOTES].startswith("CRN")

    def test_amount_sign_follows_owed_direction(self, db, history):
        statement = StatementService(db).build_statement(history.id)
        amounts = {line.source_table: line.amount for line in statement.transactions}
        assert amounts[SourceTable.SALES] == Decimal("100")
        assert amounts[SourceTable.CUSTOMER_PAYMENTS] == Decimal("-60")

    def test_idempotent(self, db, history):
        service = StatementService(db)
        first = service.build_statement(history.id, sort_direction="desc")
        second = service.build_statement(history.id, sort_direction="desc")
        assert first == second

    def test_uncounted_sources_are_excluded(self, db, ledger, history):
        ledger.sale(history, datetime(2025, 2, 1), "500", approve=False)
        ledger.customer_return(history, datetime(2025, 2, 2), "50", receive=False)

        statement = StatementService(db).build_statement(history.id)
        assert len(statement.transactions) == 4
        assert statement.stats.balance == Decimal("-15")

    def test_unknown_customer(self, db):
        with pytest.raises(CustomerNotFoundError):
            StatementService(db).build_statement(404)


class TestFilters:

    def test_to_date_includes_whole_day(self, db, history):
        filters = StatementFilters.create(from_date=date(2025, 1, 31), to_date=date(2025, 1, 31))
        statement = StatementService(db).build_statement(history.id, filters)
        assert [line.type_label for line in statement.transactions] == ["Credit Note"]

    def test_search_matches_note_code_and_prefix(self, db, history):
        service = StatementService(db)
        by_note = service.build_statement(history.id, StatementFilters.create(search="bank"))
        by_prefix = service.build_statement(history.id, StatementFilters.create(search="RTN"))

        assert [line.type_label for line in by_note.transactions] == ["Payment"]
        assert [line.type_label for line in by_prefix.transactions] == ["Sales Return"]

    def test_transaction_type_filter(self, db, history):
        filters = StatementFilters.create(transaction_type="credit_debit_note")
        statement = StatementService(db).build_statement(history.id, filters)
        assert [line.source_table for line in statement.transactions] == [
            SourceTable.CUSTOMER_CREDIT_DEBIT_NOTES
        ]
        assert statement.stats.balance == Decimal("5")


class TestReconciliation:

    def test_unfiltered_statement_heals_cached_balance(self, db, history):
        history.current_balance = Decimal("123")
        db.commit()

        StatementService(db).build_statement(history.id)
        db.commit()

        db.refresh(history)
        assert history.current_balance == Decimal("-15")
        audit = db.query(BalanceAuditLog).filter_by(customer_id=history.id, action="RECONCILE").one()
        assert "123" in audit.old_value

    def test_filtered_statement_leaves_balance(self, db, history):
        history.current_balance = Decimal("123")
        db.commit()

        StatementService(db).build_statement(history.id, StatementFilters.create(search="bank"))
        db.commit()

        db.refresh(history)
        assert history.current_balance == Decimal("123")

    def test_matching_balance_writes_nothing(self, db, history):
        StatementService(db).build_statement(history.id)
        db.commit()
        assert db.query(BalanceAuditLog).filter_by(action="RECONCILE").count() == 0


class TestSearchStatement:

    def test_lookup_by_code(self, db, history):
        customer, statement = StatementService(db).search_statement("C001")
        assert customer.id == history.id
        assert statement.stats.balance == Decimal("-15")

    def test_lookup_by_name_substring(self, db, history):
        customer, _ = StatementService(db).search_statement("acme")
        assert customer.id == history.id

    def test_no_match_gives_empty_statement(self, db, history):
        customer, statement = StatementService(db).search_statement("nobody")
        assert customer is None
        assert statement.transactions == []

    def test_never_reconciles(self, db, history):
        history.current_balance = Decimal("7")
        db.commit()

        StatementService(db).search_statement("C001")
        db.commit()

        db.refresh(history)
        assert history.current_balance == Decimal("7")


class TestRecalculateBalances:

    def test_reports_updated_customers(self, db, ledger, history):
        other = ledger.customer(code="C002", name="Blue Harbor")
        ledger.sale(other, datetime(2025, 3, 1), "40")
        history.current_balance = Decimal("0")
        db.commit()

        result = StatementService(db).recalculate_balances()
        db.commit()

        assert result["total_customers"] == 2
        assert result["updated_count"] == 1
        assert result["unchanged_count"] == 1
        assert result["updated_customers"][0]["code"] == "C001"
        assert result["updated_customers"][0]["new_balance"] == Decimal("-15")
