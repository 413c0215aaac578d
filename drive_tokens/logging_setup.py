"""Central logging configuration for the token store.

Everything goes to one named logger with a size-rotated file handler and an
optional console handler. Records carry a short ``tag`` naming the subsystem
that wrote them (``DB``, ``SCHEMA``, ``TOKENS``, ``CLI``).
"""

from __future__ import annotations

import inspect
import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from drive_tokens.config import get_env, settings

LOGGER_NAME = "drive_tokens.history"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5 MB per log file
DEFAULT_BACKUP_COUNT = 7
LOG_LEVEL_ENV_VAR = "TOKEN_STORE_LOG_LEVEL"
CONSOLE_ENV_VAR = "TOKEN_STORE_LOG_TO_CONSOLE"

_TRUTHY = ("true", "1", "yes", "on")

_logger: Optional[logging.Logger] = None


class TaggedLogger(logging.LoggerAdapter):
    """Logger adapter that stamps its tag on every record unless one is given."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("tag", self.extra.get("tag", "GEN"))
        kwargs["extra"] = extra
        return msg, kwargs


def _resolve_level(level: Optional[str]) -> int:
    candidate = str(level or get_env(LOG_LEVEL_ENV_VAR, default=settings.TOKEN_STORE_LOG_LEVEL)).upper()
    numeric_level = logging.getLevelName(candidate)
    if isinstance(numeric_level, int):
        return numeric_level

    print(
        f"drive_tokens logger: unknown log level '{candidate}', defaulting to INFO.",
        file=sys.stderr,
    )
    return logging.INFO


def _build_formatter() -> logging.Formatter:
    formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] [%(tag)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    formatter.converter = time.gmtime
    return formatter


def _detach_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def _attach_file_handler(
    logger: logging.Logger,
    path: Path,
    formatter: logging.Formatter,
    max_bytes: int,
    backup_count: int,
) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    except OSError as exc:
        # Logging must never stop the store from working.
        print(f"drive_tokens logger: unable to access log file {path}: {exc}", file=sys.stderr)
        return
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _console_enabled() -> bool:
    return str(get_env(CONSOLE_ENV_VAR, default="true")).lower() in _TRUTHY


def configure_logging(
    *,
    log_path: Optional[Path] = None,
    level: Optional[str] = None,
    max_bytes: Optional[int] = None,
    backup_count: Optional[int] = None,
    force: bool = False,
) -> logging.Logger:
    """Attach handlers to the shared logger once; ``force`` rebuilds them.

    Passing ``log_path`` also rebuilds, so tests can point output at a
    temporary file. Calling again with only ``level`` just adjusts the level.
    """
    global _logger
    logger = logging.getLogger(LOGGER_NAME)

    if _logger is not None and not force and log_path is None:
        if level is not None:
            logger.setLevel(_resolve_level(level))
        return logger

    _detach_handlers(logger)
    logger.setLevel(_resolve_level(level))

    formatter = _build_formatter()
    _attach_file_handler(
        logger,
        Path(log_path) if log_path is not None else settings.log_path,
        formatter,
        max_bytes or DEFAULT_MAX_BYTES,
        backup_count or DEFAULT_BACKUP_COUNT,
    )
    if _console_enabled():
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        logger.addHandler(console)

    logger.propagate = False
    _logger = logger
    return logger


def get_base_logger() -> logging.Logger:
    """Return the shared logger, configuring it on first access."""
    return _logger if _logger is not None else configure_logging()


def get_logger(tag: str | None = None) -> TaggedLogger:
    """Return a tagged logger; without ``tag`` the caller's module decides it."""
    if tag is None:
        caller = inspect.currentframe().f_back
        tag = get_tag_for_module(caller.f_globals.get("__name__", "unknown"))
    return TaggedLogger(get_base_logger(), {"tag": tag})


# Default tag per module keyword; first match wins.
TAG_MAP = {
    "connection_manager": "DB",
    "db_conn": "DB",
    "schema": "SCHEMA",
    "token_storage": "TOKENS",
    "token_service": "TOKENS",
    "cli": "CLI",
}


def get_tag_for_module(module_name: str) -> str:
    module_name = module_name.lower()
    for key, tag in TAG_MAP.items():
        if key in module_name:
            return tag
    return "GEN"


def reset_logging() -> None:
    """Tear down handlers so tests can reconfigure the logger cleanly."""
    global _logger
    _detach_handlers(logging.getLogger(LOGGER_NAME))
    _logger = None
