"""
API DTOs - Data Transfer Objects for API requests/responses.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from receivables.domain.entities import (
    LedgerPostingResult,
    Page,
    RebuildResult,
    Statement,
    TransactionLine,
)


class CustomerCreateDTO(BaseModel):
    """DTO - Create a customer."""
    code: str = Field(..., max_length=50, description="Customer code")
    name: str = Field(..., max_length=255, description="Customer name")
    credit_limit: Decimal = Field(Decimal("0"), ge=0, description="0 means unlimited")


class CustomerResponseDTO(BaseModel):
    """DTO - Customer."""
    id: int
    code: str
    name: str
    current_balance: Decimal
    credit_limit: Decimal
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class SourceCreateDTO(BaseModel):
    """DTO - Fields shared by every source document."""
    customer_id: int
    code: str = Field(..., max_length=50, description="Document number without prefix")
    date: datetime = Field(..., description="Transaction date")
    amount: Decimal = Field(..., ge=0, description="Amount in document currency")
    currency: str = Field("USD", max_length=3)
    currency_rate: Decimal = Field(Decimal("1"), ge=0, description="Rate to USD")
    calculation_type: str = Field("divide", pattern="^(divide|multiply)$")
    note: str | None = None


class SaleCreateDTO(SourceCreateDTO):
    prefix: str = Field("INV", pattern="^(INV|INX)$")


class PaymentCreateDTO(SourceCreateDTO):
    prefix: str = Field("RCT", pattern="^(RCT|RCX)$")


class ReturnCreateDTO(SourceCreateDTO):
    prefix: str = Field("RTN", pattern="^(RTN|RTX)$")


class NoteCreateDTO(SourceCreateDTO):
    type: str = Field(..., pattern="^(credit|debit)$")
    prefix: str | None = Field(None, pattern="^(CRN|CRX|DBN|DBX)$")


class ApprovalDTO(BaseModel):
    """DTO - Approve or receive a document."""
    user: str = Field("admin", description="Approving user")


class SourceResponseDTO(BaseModel):
    """DTO - A source document after a write."""
    id: int
    code: str
    prefix: str
    date: datetime
    customer_id: int
    amount_usd: Decimal
    note: str | None = None
    approved_at: datetime | None = None


class LedgerPostingDTO(BaseModel):
    customer_id: int
    period: str
    transaction_type: str
    delta: Decimal
    current_balance: Decimal
    mode: str
    months_shifted: int
    months_created: int

    @classmethod
    def from_result(cls, result: LedgerPostingResult) -> "LedgerPostingDTO":
        return cls(
            customer_id=result.customer_id,
            period=str(result.period),
            transaction_type=result.transaction_type.value,
            delta=result.delta,
            current_balance=result.current_balance,
            mode=result.mode,
            months_shifted=result.months_shifted,
            months_created=result.months_created,
        )


class SourceWriteResponseDTO(BaseModel):
    """DTO - Source document plus the ledger posting it caused, if any."""
    record: SourceResponseDTO
    posting: LedgerPostingDTO | None = None


class TransactionLineDTO(BaseModel):
    id: int
    code: str
    type: str
    date: datetime
    amount: Decimal
    debit: Decimal
    credit: Decimal
    balance: Decimal | None
    note: str | None
    transaction_type: str
    source_table: str
    timestamp: int

    @classmethod
    def from_line(cls, line: TransactionLine) -> "TransactionLineDTO":
        return cls(
            id=line.id,
            code=line.code,
            type=line.type_label,
            date=line.date,
            amount=line.amount,
            debit=line.debit,
            credit=line.credit,
            balance=line.balance,
            note=line.note,
            transaction_type=line.transaction_type.value,
            source_table=line.source_table.value,
            timestamp=line.timestamp,
        )


class StatementStatsDTO(BaseModel):
    total_debit: Decimal
    total_credit: Decimal
    balance: Decimal


class PaginationDTO(BaseModel):
    total: int
    per_page: int
    current_page: int
    last_page: int


class StatementResponseDTO(BaseModel):
    """DTO - Customer statement, optionally paginated."""
    customer: CustomerResponseDTO | None = None
    transactions: list[TransactionLineDTO]
    stats: StatementStatsDTO
    sort_direction: str
    pagination: PaginationDTO | None = None

    @classmethod
    def build(cls, customer, statement: Statement, page: Page | None = None) -> "StatementResponseDTO":
        lines = page.items if page is not None else statement.transactions
        return cls(
            customer=CustomerResponseDTO.model_validate(customer) if customer is not None else None,
            transactions=[TransactionLineDTO.from_line(line) for line in lines],
            stats=StatementStatsDTO(
                total_debit=statement.stats.total_debit,
                total_credit=statement.stats.total_credit,
                balance=statement.stats.balance,
            ),
            sort_direction=statement.sort_direction,
            pagination=PaginationDTO(
                total=page.total,
                per_page=page.per_page,
                current_page=page.current_page,
                last_page=page.last_page,
            ) if page is not None else None,
        )


class BalanceTotalsDTO(BaseModel):
    total_sale: int
    total_sale_amount: Decimal
    total_return: int
    total_return_amount: Decimal
    total_credit: int
    total_credit_amount: Decimal
    total_debit: int
    total_debit_amount: Decimal
    total_payment: int
    total_payment_amount: Decimal
    transaction_total: Decimal
    closing_balance: Decimal


class MonthlyBalanceDTO(BalanceTotalsDTO):
    """DTO - Monthly ledger row."""
    customer_id: int
    year: int
    month: int
    last_verified_at: datetime | None
    last_updated_by: str | None
    updated_by_entry_id: int | None

    model_config = ConfigDict(from_attributes=True)


class YearlyBalanceDTO(BalanceTotalsDTO):
    """DTO - Yearly ledger row."""
    customer_id: int
    year: int

    model_config = ConfigDict(from_attributes=True)


class CurrentBalanceDTO(BaseModel):
    customer_id: int
    current_balance: Decimal
    status: str
    credit_limit: Decimal
    owed: Decimal


class RebuildResponseDTO(BaseModel):
    customer_id: int
    previous_balance: Decimal
    current_balance: Decimal
    drift: Decimal
    breakdown: dict[str, int]
    months_rebuilt: int
    monthly_records: list[dict]

    @classmethod
    def from_result(cls, result: RebuildResult) -> "RebuildResponseDTO":
        return cls(
            customer_id=result.customer_id,
            previous_balance=result.previous_balance,
            current_balance=result.current_balance,
            drift=result.drift,
            breakdown=result.breakdown,
            months_rebuilt=result.months_rebuilt,
            monthly_records=result.monthly_records,
        )


class RecalculateRequestDTO(BaseModel):
    customer_ids: list[int] | None = None


class RecalculateResponseDTO(BaseModel):
    total_customers: int
    updated_count: int
    unchanged_count: int
    updated_customers: list[dict]


class BatchStatsDTO(BaseModel):
    total: int
    processed: int
    skipped: int
    errors: int
    error_details: list[dict] = []
