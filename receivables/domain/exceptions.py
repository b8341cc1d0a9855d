"""
Domain exceptions for the customer receivables ledger.

Every error carries a machine-readable ``code`` so API handlers and batch
jobs can react by type instead of by message text.
"""


class LedgerError(Exception):
    """Base class for ledger errors."""

    code: str = "LEDGER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class LedgerValidationError(LedgerError, ValueError):
    """Input rejected before the ledger is touched."""

    code: str = "VALIDATION_ERROR"


class InvalidDateRangeError(LedgerValidationError):
    code: str = "INVALID_DATE_RANGE"

    def __init__(self, from_date, to_date):
        self.from_date = from_date
        self.to_date = to_date
        super().__init__(f"from_date {from_date} is after to_date {to_date}")


class UnknownTransactionTypeError(LedgerValidationError):
    code: str = "UNKNOWN_TRANSACTION_TYPE"

    def __init__(self, value: str, allowed: list[str]):
        self.value = value
        self.allowed = allowed
        super().__init__(
            f"Unknown transaction type '{value}'. Must be one of: {', '.join(allowed)}"
        )


class SourceStateError(LedgerValidationError):
    """A source document is not in a state that counts toward the ledger."""

    code: str = "INVALID_SOURCE_STATE"


class CustomerNotFoundError(LedgerError):
    code: str = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_id: int):
        self.customer_id = customer_id
        super().__init__(f"Customer {customer_id} not found")


class SourceRecordNotFoundError(LedgerError):
    code: str = "SOURCE_NOT_FOUND"

    def __init__(self, source_table: str, source_id: int):
        self.source_table = source_table
        self.source_id = source_id
        super().__init__(f"{source_table} record {source_id} not found")


class CreditLimitExceededError(LedgerError):
    code: str = "CREDIT_LIMIT_EXCEEDED"

    def __init__(self, customer_id: int, credit_limit, projected_owed):
        self.customer_id = customer_id
        self.credit_limit = credit_limit
        self.projected_owed = projected_owed
        super().__init__(
            f"Customer {customer_id} would owe {projected_owed}, "
            f"above the credit limit of {credit_limit}"
        )


class LedgerConflictError(LedgerError):
    """Concurrent updates kept colliding after every retry."""

    code: str = "LEDGER_CONFLICT"

    def __init__(self, attempts: int, reason: str):
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"Ledger update failed after {attempts} attempts: {reason}")
