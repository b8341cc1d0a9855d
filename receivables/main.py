"""
Main FastAPI application - Customer receivables ledger.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from receivables import __version__
from receivables.api.routers import customers, transactions
from receivables.core.config import settings
from receivables.core.logging import configure_logging
from receivables.domain.exceptions import (
    CreditLimitExceededError,
    CustomerNotFoundError,
    LedgerConflictError,
    LedgerError,
    LedgerValidationError,
    SourceRecordNotFoundError,
)
from receivables.infrastructure.database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan - startup and shutdown events."""
    configure_logging(settings.log_level, settings.log_format)
    init_db()
    yield


app = FastAPI(
    title="Receivables Ledger API",
    description="""
## Customer receivables ledger

- **Monthly/yearly balances**: per-customer checkpoints kept in step with every approval
- **Statements**: rebuilt from sales, payments, returns and credit/debit notes with a running balance
- **Reconciliation**: unfiltered statements and rebuilds heal drifted cached balances

Balances are credit minus debit: a negative balance is what the customer owes.
    """,
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(customers.router)
app.include_router(transactions.router)


@app.get("/")
def root():
    return {
        "name": "Receivables Ledger API",
        "version": __version__,
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "receivables-ledger", "version": __version__}


_STATUS_BY_ERROR: list[tuple[type[LedgerError], int]] = [
    (LedgerValidationError, 400),
    (CustomerNotFoundError, 404),
    (SourceRecordNotFoundError, 404),
    (CreditLimitExceededError, 409),
    (LedgerConflictError, 409),
]


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    """Map ledger errors to HTTP status codes by type."""
    status_code = next((code for kind, code in _STATUS_BY_ERROR if isinstance(exc, kind)), 500)
    if status_code >= 500:
        logger.error("Unhandled ledger error on %s: %s", request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code}
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Plain ValueErrors share the ledger validation error body."""
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "code": LedgerValidationError.code}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
