"""Tests for configuration management."""

from pathlib import Path

from batch_tracker.utils import config as config_module
from batch_tracker.utils.config import Config, get_config, reset_config, set_config


def test_test_environment_uses_memory():
    config = Config("test")

    assert config.database_url == "sqlite:///:memory:"
    assert config.database_path is None


def test_explicit_url_wins(monkeypatch):
    monkeypatch.setenv(config_module.ENV_VAR_DATABASE_URL, "sqlite:////tmp/other.db")

    assert Config("production").database_url == "sqlite:////tmp/other.db"
    assert Config("production", database_url="sqlite:///x.db").database_url == "sqlite:///x.db"


def test_data_dir_override(monkeypatch, tmp_path):
    monkeypatch.delenv(config_module.ENV_VAR_DATABASE_URL, raising=False)
    monkeypatch.setenv(config_module.ENV_VAR_DATA_DIR, str(tmp_path))

    config = Config("production")

    assert config.database_path == Path(tmp_path) / "batch_tracker.db"
    assert config.database_url.startswith("sqlite:///")


def test_singleton(monkeypatch):
    reset_config()
    monkeypatch.setenv(config_module.ENV_VAR_ENVIRONMENT, "test")
    try:
        first = get_config()
        assert first.is_test
        assert get_config("production") is first

        replacement = Config("test", database_url="sqlite:///y.db")
        set_config(replacement)
        assert get_config() is replacement
    finally:
        reset_config()
