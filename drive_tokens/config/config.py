"""
Centralised config for the token store.

This module consolidates all configuration settings, loading sensitive values
from environment variables and providing typed, validated access to them
through a singleton `settings` object.
"""

import os
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar
from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from psycopg.conninfo import make_conninfo

CONFIG_FILE = Path(__file__).resolve()


def _discover_project_root(config_file: Path) -> tuple[Path, Path]:
    """Return a project root and env file path without assuming ``.env`` exists.

    Deployments keep a ``.env`` file next to the checkout, but it is absent in
    development and CI. Walk the parents looking for one and fall back to the
    repository root (detected via common project markers) when it is missing.
    """

    parents = list(config_file.parents)

    for parent in parents:
        env_file = parent / ".env"
        if env_file.exists():
            return parent, env_file

    for marker in ("pyproject.toml", ".git"):
        for parent in parents:
            if (parent / marker).exists():
                return parent, parent / ".env"

    fallback_root = parents[1] if len(parents) > 1 else parents[0]
    return fallback_root, fallback_root / ".env"


PROJECT_ROOT, ENV_FILE_PATH = _discover_project_root(CONFIG_FILE)


T = TypeVar("T")


class Settings(BaseSettings):
    """
    Centralised and validated token store settings.

    Nothing here is mandatory at import time: a missing connection string is
    reported when the first connection is requested, so code paths that never
    touch the store keep working.
    """
    model_config = SettingsConfigDict(
        env_file=ENV_FILE_PATH, env_file_encoding="utf-8", extra="ignore", case_sensitive=False
    )

    # --- CORE APP SETTINGS ---
    ENVIRONMENT: str = "development"
    DATABASE_URL: Optional[str] = Field(None, validate_default=True)

    # --- DATABASE CONNECTION (from environment) ---
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[SecretStr] = None
    POSTGRES_HOST: Optional[str] = None
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: Optional[str] = None
    DB_SSL_MODE: Optional[str] = None

    # --- CONNECTION POOL ---
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 5
    DB_POOL_TIMEOUT_SECS: float = 10.0
    DB_POOL_MAX_IDLE_SECS: float = 300.0
    DB_CONNECT_TIMEOUT_SECS: int = 5
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    # --- TOKEN STORE ---
    KV_PREFIX: str = ""
    TOKEN_TABLE: str = "auth_tokens"
    TOKEN_PURGE_EXPIRED_ON_READ: bool = True

    # --- LOGGING ---
    TOKEN_STORE_LOG_LEVEL: str = "INFO"
    TOKEN_STORE_LOG_TO_CONSOLE: bool = True

    @model_validator(mode="after")
    def build_database_url(self) -> "Settings":
        """Construct ``DATABASE_URL`` from the ``POSTGRES_*`` parts when it is not given."""
        if self.DATABASE_URL:
            return self

        db_host = os.getenv("DB_HOST_OVERRIDE", self.POSTGRES_HOST)
        if not (self.POSTGRES_USER and self.POSTGRES_PASSWORD and db_host and self.POSTGRES_DB):
            return self

        self.DATABASE_URL = make_conninfo(
            user=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD.get_secret_value(),
            host=db_host,
            port=self.POSTGRES_PORT,
            dbname=self.POSTGRES_DB,
        )
        return self

    @property
    def ssl_mode(self) -> Optional[str]:
        """libpq ``sslmode`` to request; production requires TLS unless overridden."""
        if self.DB_SSL_MODE:
            return self.DB_SSL_MODE
        if self.ENVIRONMENT.strip().lower() == "production":
            return "require"
        return None

    # --- DYNAMIC FILE PATHS ---
    @property
    def log_path(self) -> Path:
        """
        Path for the main log file.

        Uses /var/log/drive_tokens when writable, otherwise falls back to a
        directory in the user's home and never raises.
        """
        try:
            prod_log_dir = Path("/var/log/drive_tokens")
            if prod_log_dir.exists() and os.access(prod_log_dir, os.W_OK):
                return prod_log_dir / "token_store.log"
            else:
                raise PermissionError("No access to /var/log/drive_tokens")
        except Exception:
            fallback_dir = Path.home() / "drive_tokens_logs"
            fallback_dir.mkdir(parents=True, exist_ok=True)
            return fallback_dir / "token_store.log"


# Create a single, importable instance of the settings for the entire application.
settings = Settings()


def _coerce_secret(value: Any) -> Any:
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return value


def _to_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _coerce_type(raw: str, template: Any) -> Any:
    if isinstance(template, bool):
        return _to_bool(raw)
    if isinstance(template, int) and not isinstance(template, bool):
        return int(raw)
    if isinstance(template, float):
        return float(raw)
    if isinstance(template, Path):
        return Path(raw)
    return raw


def get_env(
    name: str,
    default: T | None = None,
    *,
    parser: Callable[[str], T] | None = None,
) -> T | Any | None:
    """Return a configuration value resolving environment overrides consistently.

    The resolution order is:

    1. Explicit environment variable overrides at runtime.
    2. Typed values provided by the Pydantic ``settings`` object.
    3. The supplied ``default`` value.

    When an override is read directly from :mod:`os.environ`, ``parser`` (or the
    inferred type from ``settings``) is used to coerce the string into the
    expected type.
    """

    if name in os.environ:
        raw_value = os.environ[name]
        if parser is not None:
            return parser(raw_value)
        if hasattr(settings, name):
            template = _coerce_secret(getattr(settings, name))
            try:
                return _coerce_type(raw_value, template)
            except (TypeError, ValueError):
                return template
        return raw_value

    if hasattr(settings, name):
        value = _coerce_secret(getattr(settings, name))
        return default if value is None else value

    return default
