"""Unit tests for core/config.py -- Settings validation."""

import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("DEBUG", "SECRET_KEY", "TOKEN_EXPIRE_SECONDS", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)


def test_production_requires_secret_key() -> None:
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(_env_file=None, debug=False)


def test_debug_generates_secret_key() -> None:
    settings = Settings(_env_file=None, debug=True)
    assert len(settings.secret_key) >= 32


def test_short_secret_key_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(_env_file=None, debug=True, secret_key="short")


def test_env_vars_are_read(monkeypatch) -> None:
    monkeypatch.setenv("SECRET_KEY", "k" * 40)
    monkeypatch.setenv("TOKEN_EXPIRE_SECONDS", "600")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    settings = Settings(_env_file=None)
    assert settings.secret_key == "k" * 40
    assert settings.token_expire_seconds == 600
    assert settings.database_url == "sqlite:///:memory:"


def test_defaults() -> None:
    settings = Settings(_env_file=None, debug=True)
    assert settings.token_expire_seconds == 86400
    assert settings.login_rate_limit == "10/minute"
    assert settings.auto_init_schema is False


def test_token_window_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, debug=True, token_expire_seconds=0)


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()
