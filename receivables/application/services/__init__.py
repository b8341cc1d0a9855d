"""Application services - Ledger maintenance, statements and queries."""

from receivables.application.services.balance_aggregation import BalanceAggregationService
from receivables.application.services.balance_query import CustomerBalanceQueryService
from receivables.application.services.statement import StatementService
from receivables.application.services.transaction_events import TransactionEventHandler
