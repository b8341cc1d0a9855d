"""
Application settings read from the environment.
"""

import os
from dataclasses import dataclass


def get_engine_url(database_type: str | None = None) -> str:
    """Build the database URL from environment variables."""
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit

    db_type = database_type or os.getenv("DATABASE_TYPE", "sqlite")

    if db_type == "sqlite":
        db_path = os.getenv("DATABASE_PATH", "./data/receivables.db")
        return f"sqlite:///{db_path}"
    elif db_type == "postgresql":
        host = os.getenv("DB_HOST", "localhost")
        port = os.getenv("DB_PORT", "5432")
        dbname = os.getenv("DB_NAME", "receivables")
        user = os.getenv("DB_USER", "postgres")
        password = os.getenv("DB_PASSWORD", "postgres")
        return f"postgresql://{user}:{password}@{host}:{port}/{dbname}"
    else:
        raise ValueError(f"Unsupported database type: {db_type}")


@dataclass(frozen=True)
class Settings:
    database_url: str
    max_conflict_retries: int = 3
    retry_backoff_seconds: float = 0.05
    statement_per_page: int = 15
    log_level: str = "INFO"
    log_format: str = "text"  # text, json


def get_settings() -> Settings:
    return Settings(
        database_url=get_engine_url(),
        max_conflict_retries=max(1, int(os.getenv("LEDGER_MAX_CONFLICT_RETRIES", "3"))),
        retry_backoff_seconds=float(os.getenv("LEDGER_RETRY_BACKOFF_SECONDS", "0.05")),
        statement_per_page=int(os.getenv("LEDGER_STATEMENT_PER_PAGE", "15")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_format=os.getenv("LOG_FORMAT", "text").lower(),
    )


settings = get_settings()
