"""Application layer - Use cases and DTOs."""

from receivables.application.dto.ledger_dto import (
    CustomerResponseDTO,
    MonthlyBalanceDTO,
    StatementResponseDTO,
    YearlyBalanceDTO,
)
