"""Tests for ledger_config.get_active_config()."""

import pytest
import yaml

from ledger_config import (
    CONFIG_FILE_ENV,
    DATABASE_URL_ENV,
    LOG_LEVEL_ENV,
    LedgerSettings,
    get_active_config,
)
from ledger_config.loader import merge


@pytest.fixture(autouse=True)
def _no_env(monkeypatch):
    for name in (CONFIG_FILE_ENV, DATABASE_URL_ENV, LOG_LEVEL_ENV):
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path, data) -> str:
    path = tmp_path / "ledger.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestDefaults:
    def test_packaged_defaults_match_dataclass_defaults(self):
        assert get_active_config() == LedgerSettings()

    def test_payment_flags_off(self):
        payments = get_active_config().payments
        assert payments.enforce_sufficient_funds is False
        assert payments.restore_balance_on_delete is False


class TestOverrides:
    def test_file_overrides_defaults(self, tmp_path):
        path = _write(tmp_path, {
            "payments": {"restore_balance_on_delete": True},
            "concurrency": {"max_retries": 5},
        })
        settings = get_active_config(path)

        assert settings.payments.restore_balance_on_delete is True
        assert settings.payments.enforce_sufficient_funds is False
        assert settings.concurrency.max_retries == 5
        assert settings.database.lock_timeout_ms == 5000

    def test_file_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_FILE_ENV, _write(tmp_path, {"logging": {"level": "debug"}}))
        assert get_active_config().logging.level == "DEBUG"

    def test_env_vars_win_over_file(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"database": {"url": "sqlite:///file.db"}})
        monkeypatch.setenv(DATABASE_URL_ENV, "postgresql://u:p@db/ledger")
        monkeypatch.setenv(LOG_LEVEL_ENV, "warning")

        settings = get_active_config(path)
        assert settings.database.url == "postgresql://u:p@db/ledger"
        assert settings.logging.level == "WARNING"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestValidation:
    @pytest.mark.parametrize(
        "data",
        [
            {"database": {"pool_size": 0}},
            {"database": {"lock_timeout_ms": "fast"}},
            {"database": {"url": ""}},
            {"concurrency": {"max_retries": -1}},
            {"concurrency": {"retry_backoff_seconds": True}},
            {"payments": {"enforce_sufficient_funds": "yes"}},
            {"logging": {"level": "LOUD"}},
            {"database": {"colour": "blue"}},
            {"unknown_section": {}},
            {"payments": ["not", "a", "mapping"]},
        ],
    )
    def test_invalid_values_raise(self, tmp_path, data):
        with pytest.raises(ValueError):
            get_active_config(_write(tmp_path, data))

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            get_active_config(path)


class TestMerge:
    def test_nested_merge(self):
        base = {"a": {"x": 1, "y": 2}, "b": 1}
        assert merge(base, {"a": {"y": 3}}) == {"a": {"x": 1, "y": 3}, "b": 1}
        assert base == {"a": {"x": 1, "y": 2}, "b": 1}
