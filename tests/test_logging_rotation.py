import logging
from logging.handlers import RotatingFileHandler

import pytest

from drive_tokens import logging_setup
from drive_tokens.infrastructure import log_utils

LOGGER_TAG = "TEST"


@pytest.fixture
def temp_logger(tmp_path):
    log_path = tmp_path / "token_store.log"
    logging_setup.configure_logging(log_path=log_path, force=True)
    adapter = logging_setup.get_logger(LOGGER_TAG)
    base_logger = logging.getLogger(logging_setup.LOGGER_NAME)
    try:
        yield adapter, base_logger, log_path
    finally:
        logging_setup.reset_logging()


def test_rotating_handler_defaults(temp_logger):
    adapter, base_logger, log_path = temp_logger
    rotating_handlers = [h for h in base_logger.handlers if isinstance(h, RotatingFileHandler)]
    assert rotating_handlers, "Expected at least one rotating handler"
    handler = rotating_handlers[0]
    assert handler.maxBytes == logging_setup.DEFAULT_MAX_BYTES
    assert handler.backupCount == logging_setup.DEFAULT_BACKUP_COUNT
    assert handler.baseFilename == str(log_path)


def test_rotating_handler_rollover(tmp_path):
    log_path = tmp_path / "token_store.log"
    base_logger = logging.getLogger(logging_setup.LOGGER_NAME)
    logging_setup.configure_logging(
        log_path=log_path,
        force=True,
        max_bytes=512,
        backup_count=2,
    )
    adapter = logging_setup.get_logger(LOGGER_TAG)
    try:
        payload = "x" * 256
        for _ in range(10):
            adapter.info(payload)
        for handler in base_logger.handlers:
            if hasattr(handler, "flush"):
                handler.flush()
        rolled = log_path.with_name("token_store.log.1")
        assert log_path.exists()
        assert rolled.exists(), "Expected first rotated log file to exist"
    finally:
        logging_setup.reset_logging()


def test_log_utils_writes_tagged_lines(temp_logger):
    _, base_logger, log_path = temp_logger

    log_utils.warn("pool exhausted", tag="DB")
    for handler in base_logger.handlers:
        handler.flush()

    content = log_path.read_text(encoding="utf-8")
    assert "[WARNING] [DB] pool exhausted" in content


@pytest.mark.parametrize(
    "module_name,expected",
    [
        ("drive_tokens.infrastructure.connection_manager", "DB"),
        ("drive_tokens.infrastructure.schema", "SCHEMA"),
        ("drive_tokens.infrastructure.token_storage", "TOKENS"),
        ("drive_tokens.cli.main", "CLI"),
        ("something.else", "GEN"),
    ],
)
def test_tag_inferred_from_module(module_name, expected):
    assert logging_setup.get_tag_for_module(module_name) == expected


def test_suppressed_messages_skip_caller_lookup(temp_logger, monkeypatch):
    _, base_logger, log_path = temp_logger
    base_logger.setLevel(logging.INFO)

    def fail():
        raise AssertionError("caller lookup ran for a suppressed message")

    monkeypatch.setattr(log_utils, "_caller_module", fail)

    log_utils.debug("Read tokens for prefix 'od_'")

    for handler in base_logger.handlers:
        handler.flush()
    assert "Read tokens" not in log_path.read_text(encoding="utf-8")


def test_untagged_message_is_tagged_by_calling_module(temp_logger, monkeypatch):
    _, base_logger, log_path = temp_logger
    monkeypatch.setitem(logging_setup.TAG_MAP, "logging_rotation", "ROT")

    log_utils.warn("tagged from the caller")
    logging_setup.get_logger().warning("adapter tagged from the caller")
    for handler in base_logger.handlers:
        handler.flush()

    content = log_path.read_text(encoding="utf-8")
    assert "[WARNING] [ROT] tagged from the caller" in content
    assert "[WARNING] [ROT] adapter tagged from the caller" in content


def test_unknown_level_falls_back_to_info(temp_logger):
    _, base_logger, log_path = temp_logger

    log_utils.log_message("still written", level="LOUD", tag="DB")
    for handler in base_logger.handlers:
        handler.flush()

    content = log_path.read_text(encoding="utf-8")
    assert "unknown log level 'LOUD'" in content
    assert "[INFO] [DB] still written" in content
