"""Helpers for writing token store logs with rotation and tagging support."""

from __future__ import annotations

import inspect
import logging
from typing import Dict

from drive_tokens.logging_setup import TaggedLogger, get_base_logger, get_tag_for_module

_LEVEL_MAP: Dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _caller_module() -> str:
    """Name of the first module on the stack outside this one."""
    frame = inspect.currentframe()
    while frame is not None and frame.f_globals.get("__name__") == __name__:
        frame = frame.f_back
    if frame is None:
        return "unknown"
    return frame.f_globals.get("__name__", "unknown")


def log_message(msg: str, level: str = "INFO", tag: str | None = None, **kwargs) -> None:
    """
    Log a message to the rotating history log with optional tagging.

    Messages below the configured level return before the caller is looked
    up. Accepts **kwargs for standard logging arguments like exc_info=True.
    """
    base_logger = get_base_logger()
    numeric_level = _LEVEL_MAP.get(str(level).upper())
    if numeric_level is not None and not base_logger.isEnabledFor(numeric_level):
        return

    if tag is None:
        tag = get_tag_for_module(_caller_module())
    logger = TaggedLogger(base_logger, {"tag": tag})

    if numeric_level is None:
        logger.warning(
            "Received unknown log level '%s'; defaulting to INFO. Message: %s",
            level,
            msg,
        )
        numeric_level = logging.INFO

    logger.log(numeric_level, msg, **kwargs)


# ----------------------------------------------------------------------
# Convenience wrappers, all forward **kwargs
# ----------------------------------------------------------------------

def debug(msg: str, tag: str | None = None, **kwargs):
    log_message(msg, level="DEBUG", tag=tag, **kwargs)


def info(msg: str, tag: str | None = None, **kwargs):
    log_message(msg, level="INFO", tag=tag, **kwargs)


def warn(msg: str, tag: str | None = None, **kwargs):
    log_message(msg, level="WARNING", tag=tag, **kwargs)


def error(msg: str, tag: str | None = None, **kwargs):
    log_message(msg, level="ERROR", tag=tag, **kwargs)
