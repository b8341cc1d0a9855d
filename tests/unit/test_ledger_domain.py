"""
Unit tests - Domain layer: sign convention, periods, statement building.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from receivables.domain.entities import (
    Page,
    PeriodTotals,
    StatementFilters,
    TransactionLine,
    epoch_seconds,
)
from receivables.domain.exceptions import (
    InvalidDateRangeError,
    LedgerValidationError,
    UnknownTransactionTypeError,
)
from receivables.domain.services import (
    StatementBuilder,
    check_credit_limit,
    group_by_period,
    net_balance,
)
from receivables.domain.value_objects import (
    BalanceStatus,
    ExchangeRate,
    Period,
    SourceTable,
    StatementTransactionType,
    TransactionType,
    balance_delta,
    balance_status,
    signed_effect,
)


def make_line(
    line_id: int,
    when: datetime,
    amount: str,
    ledger_type: TransactionType = TransactionType.SALE,
    source_table: SourceTable = SourceTable.SALES,
) -> TransactionLine:
    value = Decimal(amount)
    is_debit = signed_effect(ledger_type) > 0
    return TransactionLine(
        id=line_id,
        code=f"X{line_id}",
        type_label="test",
        date=when,
        amount=value if is_debit else -value,
        debit=value if is_debit else Decimal("0"),
        credit=Decimal("0") if is_debit else value,
        transaction_type=StatementTransactionType.SALE,
        ledger_type=ledger_type,
        source_table=source_table,
        timestamp=epoch_seconds(when),
    )


class TestSignConvention:
    """Debits raise what the customer owes; stored balances are credit minus debit."""

    @pytest.mark.parametrize("ttype", [TransactionType.SALE, TransactionType.DEBIT])
    def test_debit_types(self, ttype):
        assert signed_effect(ttype) == 1
        assert balance_delta(ttype, Decimal("100")) == Decimal("-100")

    @pytest.mark.parametrize(
        "ttype", [TransactionType.PAYMENT, TransactionType.RETURN, TransactionType.CREDIT]
    )
    def test_credit_types(self, ttype):
        assert signed_effect(ttype) == -1
        assert balance_delta(ttype, Decimal("60")) == Decimal("60")

    def test_accepts_string_values(self):
        assert signed_effect("sale") == 1

    def test_balance_status(self):
        assert balance_status(Decimal("5")) is BalanceStatus.CREDIT
        assert balance_status(Decimal("-5")) is BalanceStatus.DEBIT
        assert balance_status(Decimal("0")) is BalanceStatus.BALANCED


class TestPeriod:

    def test_next_and_previous_cross_year(self):
        assert Period(2024, 12).next() == Period(2025, 1)
        assert Period(2025, 1).previous() == Period(2024, 12)

    def test_through_is_inclusive(self):
        periods = list(Period(2024, 11).through(Period(2025, 2)))
        assert [str(p) for p in periods] == ["2024-11", "2024-12", "2025-01", "2025-02"]

    def test_through_empty_when_reversed(self):
        assert list(Period(2025, 2).through(Period(2025, 1))) == []

    def test_invalid_month(self):
        with pytest.raises(ValueError):
            Period(2025, 13)

    def test_ordering(self):
        assert Period(2024, 12) < Period(2025, 1) < Period(2025, 2)


class TestMoneyAndRates:

    def test_usd_passes_through(self):
        assert ExchangeRate(Decimal("1500")).to_usd(Decimal("10")).amount == Decimal("10")

    def test_divide_rate(self):
        rate = ExchangeRate(Decimal("1500"), currency="IQD")
        assert rate.to_usd(Decimal("150000")).amount == Decimal("100.0000")

    def test_multiply_rate(self):
        rate = ExchangeRate(Decimal("1.1"), currency="EUR", calculation_type="multiply")
        assert rate.to_usd(Decimal("100")).amount == Decimal("110.0000")

    def test_zero_rate_leaves_amount(self):
        assert ExchangeRate(Decimal("0"), currency="IQD").to_usd(Decimal("7")).amount == Decimal("7")


class TestStatementFilters:

    def test_empty_filters(self):
        assert StatementFilters.create().has_filters is False

    def test_blank_search_is_not_a_filter(self):
        assert StatementFilters.create(search="").has_filters is False

    def test_invalid_date_range(self):
        with pytest.raises(InvalidDateRangeError):
            StatementFilters.create(from_date=date(2025, 2, 1), to_date=date(2025, 1, 1))

    def test_unknown_transaction_type(self):
        with pytest.raises(UnknownTransactionTypeError) as exc_info:
            StatementFilters.create(transaction_type="refund")
        assert isinstance(exc_info.value, LedgerValidationError)
        assert exc_info.value.code == "UNKNOWN_TRANSACTION_TYPE"

    def test_type_filter_includes(self):
        filters = StatementFilters.create(transaction_type="payment")
        assert filters.has_filters is True
        assert filters.includes(StatementTransactionType.PAYMENT)
        assert not filters.includes(StatementTransactionType.SALE)


class TestStatementBuilder:

    def test_running_balance_in_chronological_order(self):
        lines = [
            make_line(2, datetime(2025, 1, 20), "60", TransactionType.PAYMENT, SourceTable.CUSTOMER_PAYMENTS),
            make_line(1, datetime(2025, 1, 10), "100"),
        ]
        statement = StatementBuilder().build(lines)

        assert [line.id for line in statement.transactions] == [1, 2]
        assert [line.balance for line in statement.transactions] == [Decimal("-100"), Decimal("-40")]
        assert statement.stats.total_debit == Decimal("100")
        assert statement.stats.total_credit == Decimal("60")
        assert statement.stats.balance == Decimal("-40")

    def test_desc_keeps_chronological_balances(self):
        lines = [
            make_line(1, datetime(2025, 1, 10), "100"),
            make_line(2, datetime(2025, 1, 20), "60", TransactionType.PAYMENT, SourceTable.CUSTOMER_PAYMENTS),
        ]
        statement = StatementBuilder().build(lines, sort_direction="desc")

        assert [line.id for line in statement.transactions] == [2, 1]
        assert statement.transactions[0].balance == Decimal("-40")
        assert statement.stats.balance == Decimal("-40")

    def test_same_timestamp_tie_break(self):
        when = datetime(2025, 3, 1, 9, 0)
        lines = [
            make_line(7, when, "5", TransactionType.RETURN, SourceTable.CUSTOMER_RETURNS),
            make_line(9, when, "10", TransactionType.PAYMENT, SourceTable.CUSTOMER_PAYMENTS),
            make_line(4, when, "50"),
            make_line(3, when, "50"),
            make_line(8, when, "2", TransactionType.CREDIT, SourceTable.CUSTOMER_CREDIT_DEBIT_NOTES),
        ]
        statement = StatementBuilder().build(lines)

        assert [(line.source_table, line.id) for line in statement.transactions] == [
            (SourceTable.CUSTOMER_CREDIT_DEBIT_NOTES, 8),
            (SourceTable.SALES, 3),
            (SourceTable.SALES, 4),
            (SourceTable.CUSTOMER_PAYMENTS, 9),
            (SourceTable.CUSTOMER_RETURNS, 7),
        ]

    def test_build_is_deterministic(self):
        when = datetime(2025, 3, 1)
        lines = [make_line(i, when, str(i)) for i in (3, 1, 2)]
        first = StatementBuilder().build(lines)
        second = StatementBuilder().build(list(reversed(lines)))
        assert first == second

    def test_empty_statement(self):
        statement = StatementBuilder().build([])
        assert statement.transactions == []
        assert statement.stats.balance == Decimal("0")

    def test_invalid_sort_direction(self):
        with pytest.raises(ValueError):
            StatementBuilder().build([], sort_direction="sideways")

    def test_paginate(self):
        lines = [make_line(i, datetime(2025, 1, i), "1") for i in range(1, 21)]
        statement = StatementBuilder().build(lines)

        page = statement.paginate(2, 15)
        assert isinstance(page, Page)
        assert page.total == 20
        assert page.last_page == 2
        assert [line.id for line in page.items] == [16, 17, 18, 19, 20]


class TestAggregationHelpers:

    def test_net_balance_is_order_independent(self):
        lines = [
            make_line(1, datetime(2025, 1, 10), "100"),
            make_line(2, datetime(2025, 1, 20), "60", TransactionType.PAYMENT, SourceTable.CUSTOMER_PAYMENTS),
        ]
        assert net_balance(lines) == net_balance(reversed(lines)) == Decimal("-40")

    def test_group_by_period(self):
        lines = [
            make_line(1, datetime(2025, 2, 5), "20", TransactionType.RETURN, SourceTable.CUSTOMER_RETURNS),
            make_line(2, datetime(2025, 1, 10), "100"),
            make_line(3, datetime(2025, 1, 15), "5", TransactionType.CREDIT, SourceTable.CUSTOMER_CREDIT_DEBIT_NOTES),
        ]
        grouped = group_by_period(lines)

        assert list(grouped) == [Period(2025, 1), Period(2025, 2)]
        january = grouped[Period(2025, 1)]
        assert january.sale_count == 1
        assert january.sale_amount == Decimal("100")
        assert january.credit_amount == Decimal("5")
        assert january.transaction_total == Decimal("-95")
        assert grouped[Period(2025, 2)].transaction_total == Decimal("20")

    def test_period_totals_add_with_quantity(self):
        totals = PeriodTotals()
        totals.add(TransactionType.PAYMENT, Decimal("30"), count=2)
        assert totals.payment_count == 2
        assert totals.transaction_total == Decimal("30")


class TestCreditLimit:

    def test_zero_limit_is_unlimited(self):
        check = check_credit_limit(1, Decimal("-1000"), Decimal("0"), Decimal("500"))
        assert check.is_unlimited
        assert check.within_limit

    def test_owed_is_negative_part_of_balance(self):
        check = check_credit_limit(1, Decimal("-40"), Decimal("100"), Decimal("50"))
        assert check.owed == Decimal("40")
        assert check.projected_owed == Decimal("90")
        assert check.within_limit

    def test_exceeded(self):
        check = check_credit_limit(1, Decimal("-80"), Decimal("100"), Decimal("50"))
        assert not check.within_limit

    def test_customer_in_credit_owes_nothing(self):
        check = check_credit_limit(1, Decimal("25"), Decimal("10"), Decimal("30"))
        assert check.owed == Decimal("0")
        assert check.projected_owed == Decimal("5")
        assert check.within_limit
