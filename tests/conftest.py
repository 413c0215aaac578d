import os
import sys
from pathlib import Path

import pytest

os.environ.setdefault("TOKEN_STORE_LOG_TO_CONSOLE", "false")


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from drive_tokens import logging_setup  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_log_file(tmp_path):
    """Send log output to a per-test file instead of the user's log directory."""
    logging_setup.configure_logging(log_path=tmp_path / "token_store.log", force=True)
    try:
        yield tmp_path / "token_store.log"
    finally:
        logging_setup.reset_logging()
