"""
ledger_config -- single public entrypoint for ledger settings.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration.  Sits beside ``ledger_kernel`` and below
    ``ledger_services``.  The kernel never imports from ``ledger_config``;
    the facade passes plain values (flags, timeouts) into kernel services.

Sources, lowest precedence first:
    1. Packaged ``defaults.yaml``.
    2. The file given as ``path``, else the one named by
       ``LEDGER_CONFIG_FILE``.
    3. ``LEDGER_DATABASE_URL`` and ``LEDGER_LOG_LEVEL``.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.loader import load_yaml_file, merge, parse_settings
from ledger_config.schema import (
    ConcurrencySettings,
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    PaymentSettings,
)

_logger = logging.getLogger("ledger_kernel.config")

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

CONFIG_FILE_ENV = "LEDGER_CONFIG_FILE"
DATABASE_URL_ENV = "LEDGER_DATABASE_URL"
LOG_LEVEL_ENV = "LEDGER_LOG_LEVEL"


def get_active_config(path: str | Path | None = None) -> LedgerSettings:
    """The ONLY public configuration entrypoint.

    Args:
        path: Optional YAML file layered over the packaged defaults.
            Defaults to ``$LEDGER_CONFIG_FILE`` when set.

    Returns:
        LedgerSettings -- frozen, fully validated.

    Raises:
        FileNotFoundError: If the override file does not exist.
        ValueError: If any value fails validation.
    """
    data = load_yaml_file(DEFAULTS_FILE)

    override = path or os.environ.get(CONFIG_FILE_ENV)
    if override:
        data = merge(data, load_yaml_file(Path(override)))

    env_overrides: dict[str, dict[str, str]] = {}
    if os.environ.get(DATABASE_URL_ENV):
        env_overrides["database"] = {"url": os.environ[DATABASE_URL_ENV]}
    if os.environ.get(LOG_LEVEL_ENV):
        env_overrides["logging"] = {"level": os.environ[LOG_LEVEL_ENV]}
    data = merge(data, env_overrides)

    settings = parse_settings(data)

    _logger.info(
        "ledger_config_loaded",
        extra={
            "config_file": str(override) if override else None,
            "database_backend": settings.database.url.split(":", 1)[0],
            "enforce_sufficient_funds": settings.payments.enforce_sufficient_funds,
            "restore_balance_on_delete": settings.payments.restore_balance_on_delete,
        },
    )
    return settings


__all__ = [
    "CONFIG_FILE_ENV",
    "ConcurrencySettings",
    "DATABASE_URL_ENV",
    "DatabaseSettings",
    "LOG_LEVEL_ENV",
    "LedgerSettings",
    "LoggingSettings",
    "PaymentSettings",
    "get_active_config",
]
