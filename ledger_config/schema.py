"""
LedgerSettings schema.

Typed, frozen view of the ledger's runtime settings.  YAML documents are
parsed into these types by the loader; nothing else constructs them
outside tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection and locking parameters for the relational store."""

    url: str = "sqlite:///ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    lock_timeout_ms: int = 5000  # how long a row lock may be waited for


@dataclass(frozen=True)
class ConcurrencySettings:
    """Retry policy for ConcurrencyConflictError."""

    max_retries: int = 3
    retry_backoff_seconds: float = 0.05


@dataclass(frozen=True)
class PaymentSettings:
    """Behaviour switches for the payment engine."""

    enforce_sufficient_funds: bool = False
    restore_balance_on_delete: bool = False


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class LedgerSettings:
    """Root settings object returned by ``get_active_config()``."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    concurrency: ConcurrencySettings = field(default_factory=ConcurrencySettings)
    payments: PaymentSettings = field(default_factory=PaymentSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
