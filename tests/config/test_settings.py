import pytest
from psycopg.conninfo import make_conninfo

import drive_tokens.config.config as config_module
from drive_tokens.config.config import Settings, get_env


@pytest.fixture()
def postgres_parts() -> dict:
    return {
        "POSTGRES_USER": "postgres-user",
        "POSTGRES_PASSWORD": "postgres-password",
        "POSTGRES_HOST": "postgres-host",
        "POSTGRES_PORT": 5432,
        "POSTGRES_DB": "postgres-db",
    }


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("DATABASE_URL", "DB_HOST_OVERRIDE", "ENVIRONMENT", "DB_SSL_MODE", "KV_PREFIX"):
        monkeypatch.delenv(name, raising=False)


def test_settings_load_without_any_database_configuration() -> None:
    settings = Settings(_env_file=None)

    assert settings.DATABASE_URL is None
    assert settings.KV_PREFIX == ""
    assert settings.TOKEN_TABLE == "auth_tokens"
    assert settings.TOKEN_PURGE_EXPIRED_ON_READ is True


def test_database_url_uses_postgres_host(postgres_parts: dict) -> None:
    settings = Settings(_env_file=None, **postgres_parts)

    expected = make_conninfo(
        user=postgres_parts["POSTGRES_USER"],
        password=postgres_parts["POSTGRES_PASSWORD"],
        host=postgres_parts["POSTGRES_HOST"],
        port=postgres_parts["POSTGRES_PORT"],
        dbname=postgres_parts["POSTGRES_DB"],
    )

    assert settings.DATABASE_URL == expected


def test_database_url_uses_override(monkeypatch: pytest.MonkeyPatch, postgres_parts: dict) -> None:
    monkeypatch.setenv("DB_HOST_OVERRIDE", "override-host")
    settings = Settings(_env_file=None, **postgres_parts)

    expected = make_conninfo(
        user=postgres_parts["POSTGRES_USER"],
        password=postgres_parts["POSTGRES_PASSWORD"],
        host="override-host",
        port=postgres_parts["POSTGRES_PORT"],
        dbname=postgres_parts["POSTGRES_DB"],
    )

    assert settings.DATABASE_URL == expected


def test_explicit_database_url_wins(postgres_parts: dict) -> None:
    settings = Settings(_env_file=None, DATABASE_URL="postgresql://explicit/db", **postgres_parts)

    assert settings.DATABASE_URL == "postgresql://explicit/db"


def test_partial_postgres_parts_leave_url_unset() -> None:
    settings = Settings(_env_file=None, POSTGRES_HOST="db-host")

    assert settings.DATABASE_URL is None


def test_production_requires_ssl() -> None:
    assert Settings(_env_file=None, ENVIRONMENT="production").ssl_mode == "require"
    assert Settings(_env_file=None, ENVIRONMENT="development").ssl_mode is None
    assert Settings(_env_file=None, ENVIRONMENT="production", DB_SSL_MODE="verify-full").ssl_mode == "verify-full"


def test_get_env_prefers_runtime_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_POOL_MAX_SIZE", "9")

    assert get_env("DB_POOL_MAX_SIZE") == 9


def test_get_env_falls_back_to_settings_then_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TOKEN_TABLE", raising=False)
    monkeypatch.setattr(config_module.settings, "TOKEN_TABLE", "auth_tokens")

    assert get_env("TOKEN_TABLE") == "auth_tokens"
    assert get_env("NOT_A_SETTING", default="fallback") == "fallback"
