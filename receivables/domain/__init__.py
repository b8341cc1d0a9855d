"""Domain layer - Pure Python ledger logic."""

from receivables.domain.entities import (
    CreditCheck,
    LedgerPostingResult,
    Page,
    PeriodTotals,
    RebuildResult,
    RecalculationResult,
    Statement,
    StatementFilters,
    StatementStats,
    TransactionLine,
    YearlyClosingResult,
)
from receivables.domain.exceptions import (
    CreditLimitExceededError,
    CustomerNotFoundError,
    InvalidDateRangeError,
    LedgerConflictError,
    LedgerError,
    LedgerValidationError,
    SourceRecordNotFoundError,
    SourceStateError,
    UnknownTransactionTypeError,
)
from receivables.domain.services import (
    ITransactionSourceRepository,
    StatementBuilder,
    check_credit_limit,
    group_by_period,
    net_balance,
)
from receivables.domain.value_objects import (
    BalanceStatus,
    ExchangeRate,
    LedgerSide,
    Money,
    Period,
    SourceTable,
    StatementTransactionType,
    TransactionType,
    balance_delta,
    balance_status,
    signed_effect,
)
