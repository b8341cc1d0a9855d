"""Customer receivables ledger: monthly/yearly balances and statements."""

__version__ = "0.1.0"
