"""
Settings loader (``ledger_config.loader``).

Responsibility
--------------
Loads YAML documents, deep-merges them in precedence order and parses
the result into ``ledger_config.schema`` dataclasses.  Runtime callers
use ``ledger_config.get_active_config()`` instead of this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or a value of the wrong type  -> ``ValueError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    ConcurrencySettings,
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    PaymentSettings,
)

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; values in ``override`` win."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge(result[key], value)
        else:
            result[key] = value
    return result


def _section(data: dict[str, Any], name: str, allowed: set[str]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"[{name}] must be a mapping")
    unknown = set(section) - allowed
    if unknown:
        raise ValueError(f"[{name}] unknown keys: {sorted(unknown)}")
    return section


def _int(section: str, key: str, value: Any, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"[{section}] {key} must be an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"[{section}] {key} must be >= {minimum}, got {value}")
    return value


def _number(section: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"[{section}] {key} must be a number, got {value!r}")
    if value < 0:
        raise ValueError(f"[{section}] {key} must be >= 0, got {value}")
    return float(value)


def _bool(section: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"[{section}] {key} must be true or false, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    d = _section(
        data, "database",
        {"url", "echo", "pool_size", "max_overflow", "pool_timeout", "lock_timeout_ms"},
    )
    defaults = DatabaseSettings()
    url = d.get("url", defaults.url)
    if not isinstance(url, str) or not url.strip():
        raise ValueError("[database] url must be a non-empty string")
    return DatabaseSettings(
        url=url.strip(),
        echo=_bool("database", "echo", d.get("echo", defaults.echo)),
        pool_size=_int("database", "pool_size", d.get("pool_size", defaults.pool_size), 1),
        max_overflow=_int("database", "max_overflow", d.get("max_overflow", defaults.max_overflow)),
        pool_timeout=_int("database", "pool_timeout", d.get("pool_timeout", defaults.pool_timeout)),
        lock_timeout_ms=_int(
            "database", "lock_timeout_ms", d.get("lock_timeout_ms", defaults.lock_timeout_ms), 1,
        ),
    )


def parse_concurrency(data: dict[str, Any]) -> ConcurrencySettings:
    d = _section(data, "concurrency", {"max_retries", "retry_backoff_seconds"})
    defaults = ConcurrencySettings()
    return ConcurrencySettings(
        max_retries=_int("concurrency", "max_retries", d.get("max_retries", defaults.max_retries)),
        retry_backoff_seconds=_number(
            "concurrency", "retry_backoff_seconds",
            d.get("retry_backoff_seconds", defaults.retry_backoff_seconds),
        ),
    )


def parse_payments(data: dict[str, Any]) -> PaymentSettings:
    d = _section(data, "payments", {"enforce_sufficient_funds", "restore_balance_on_delete"})
    defaults = PaymentSettings()
    return PaymentSettings(
        enforce_sufficient_funds=_bool(
            "payments", "enforce_sufficient_funds",
            d.get("enforce_sufficient_funds", defaults.enforce_sufficient_funds),
        ),
        restore_balance_on_delete=_bool(
            "payments", "restore_balance_on_delete",
            d.get("restore_balance_on_delete", defaults.restore_balance_on_delete),
        ),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    d = _section(data, "logging", {"level"})
    level = str(d.get("level", LoggingSettings().level)).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"[logging] level must be one of {sorted(_LOG_LEVELS)}, got {level!r}")
    return LoggingSettings(level=level)


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """
    Parse a merged settings document.

    Raises:
        ValueError: unknown sections or keys, or invalid values.
    """
    unknown = set(data) - {"database", "concurrency", "payments", "logging"}
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    return LedgerSettings(
        database=parse_database(data),
        concurrency=parse_concurrency(data),
        payments=parse_payments(data),
        logging=parse_logging(data),
    )
