"""
Database initialization, session management and the ledger unit of work.
"""

import logging
import time
from collections.abc import Callable, Generator
from pathlib import Path
from typing import TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from receivables.core.config import settings
from receivables.domain.exceptions import LedgerConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(database_url, echo=False, connect_args={"check_same_thread": False})
    return create_engine(database_url, echo=False)


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency - Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Initialize database - create all tables."""
    from sqlmodel import SQLModel

    from receivables.infrastructure.database import models  # noqa: F401

    SQLModel.metadata.create_all(bind=bind or engine)


_LEDGER_CONSTRAINTS = (
    "unique_customer_month_balance",
    "unique_customer_year_balance",
    "customer_balance_monthlies",
    "customer_balance_yearlies",
)


# serialization_failure, deadlock_detected, lock_not_available
_RETRYABLE_PGCODES = ("40001", "40P01", "55P03")

_LOCK_MESSAGES = (
    "database is locked",
    "database table is locked",
    "deadlock detected",
    "could not serialize access",
    "lock timeout",
    "could not obtain lock",
)


def _is_ledger_conflict(exc: Exception) -> bool:
    orig = getattr(exc, "orig", exc)
    message = str(orig)
    if isinstance(exc, OperationalError):
        if getattr(orig, "pgcode", None) in _RETRYABLE_PGCODES:
            return True
        lowered = message.lower()
        return any(marker in lowered for marker in _LOCK_MESSAGES)
    return any(name in message for name in _LEDGER_CONSTRAINTS)


def commit_with_retry(
    db: Session,
    work: Callable[[Session], T],
    max_attempts: int | None = None,
    backoff_seconds: float | None = None,
) -> T:
    """
    Run ``work`` and commit it as one transaction.

    Lock timeouts and races on the ledger unique keys roll the whole unit back
    and run it again; ``work`` must therefore re-read what it needs. Any other
    error rolls back and propagates.
    """
    attempts = max_attempts or settings.max_conflict_retries
    backoff = settings.retry_backoff_seconds if backoff_seconds is None else backoff_seconds

    for attempt in range(1, attempts + 1):
        try:
            result = work(db)
            db.commit()
            return result
        except (OperationalError, IntegrityError) as exc:
            db.rollback()
            if not _is_ledger_conflict(exc):
                raise
            if attempt == attempts:
                raise LedgerConflictError(attempts, str(getattr(exc, "orig", exc))) from exc
            logger.warning(
                "Ledger conflict, retrying",
                extra={"attempt": attempt, "max_attempts": attempts, "error": str(exc)},
            )
            time.sleep(backoff * attempt)
        except Exception:
            db.rollback()
            raise

    raise LedgerConflictError(attempts, "no attempt completed")


if __name__ == "__main__":
    init_db()
    print("Database initialized successfully!")
