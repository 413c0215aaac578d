"""Idempotent creation of the token table."""

from __future__ import annotations

import threading
from typing import Optional

import psycopg
from psycopg import errors, sql

from drive_tokens.application.exceptions import SchemaError, StoreConnectionError
from drive_tokens.infrastructure import log_utils
from drive_tokens.infrastructure.connection_manager import ConnectionManager

DEFAULT_TABLE = "auth_tokens"

_CREATE_TABLE = """
    CREATE TABLE IF NOT EXISTS {table} (
        key VARCHAR(255) PRIMARY KEY,
        value TEXT NOT NULL,
        expires_at TIMESTAMPTZ
    )
"""


class SchemaInitializer:
    """Creates the token table at most once per instance.

    Share one instance per process. The ready flag is only set after a
    successful run; a failed attempt leaves it clear so the next caller
    retries. Two first callers may both issue the statement, and
    ``CREATE TABLE IF NOT EXISTS`` absorbs that race.
    """

    def __init__(self, manager: ConnectionManager, table: str = DEFAULT_TABLE) -> None:
        self._manager = manager
        self.table = table
        self._ready = threading.Event()

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    def reset(self) -> None:
        self._ready.clear()

    def ensure_schema(self, timeout: Optional[float] = None) -> None:
        if self._ready.is_set():
            return

        statement = sql.SQL(_CREATE_TABLE).format(table=sql.Identifier(self.table))
        try:
            with self._manager.connection(timeout=timeout) as conn:
                with conn.cursor() as cur:
                    cur.execute(statement)
        except (errors.DuplicateTable, errors.UniqueViolation):
            # Lost a concurrent CREATE race; the table is there.
            log_utils.debug(f"Table '{self.table}' created concurrently by another session.")
        except psycopg.OperationalError as exc:
            raise StoreConnectionError(f"Could not reach database to create '{self.table}': {exc}") from exc
        except psycopg.Error as exc:
            log_utils.error(f"Failed to create token table '{self.table}': {exc}")
            raise SchemaError(f"Failed to create token table '{self.table}': {exc}") from exc

        self._ready.set()
        log_utils.info(f"Token table '{self.table}' is ready.")


__all__ = ["DEFAULT_TABLE", "SchemaInitializer"]
