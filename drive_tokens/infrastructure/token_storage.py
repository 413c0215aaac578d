"""PostgreSQL implementation of token persistence."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterator, Optional, Tuple

import psycopg
from psycopg import errors, sql
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

from drive_tokens.application.exceptions import (
    DataAccessError,
    InvalidArgumentError,
    StoreConnectionError,
    TokenStoreError,
)
from drive_tokens.domain.entities import TokenPair, TokenRecord, token_keys
from drive_tokens.domain.token_storage import TokenRepository
from drive_tokens.infrastructure import log_utils
from drive_tokens.infrastructure.connection_manager import ConnectionManager
from drive_tokens.infrastructure.schema import DEFAULT_TABLE, SchemaInitializer

DEFAULT_MAX_ATTEMPTS = 2
TRANSIENT_ERRORS = (errors.SerializationFailure, errors.DeadlockDetected)

_SELECT_TOKENS = """
    SELECT key, value
    FROM {table}
    WHERE (key = %(access_key)s AND (expires_at IS NULL OR expires_at > now()))
       OR key = %(refresh_key)s
"""

_UPSERT_TOKEN = """
    INSERT INTO {table} (key, value, expires_at)
    VALUES (%s, %s, %s)
    ON CONFLICT (key)
    DO UPDATE SET value = EXCLUDED.value, expires_at = EXCLUDED.expires_at
"""

_PURGE_EXPIRED = """
    DELETE FROM {table}
    WHERE key = ANY(%s) AND expires_at IS NOT NULL AND expires_at < now()
"""

_SET_STATEMENT_TIMEOUT = "SELECT set_config('statement_timeout', %s, true)"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate_store_args(access_token: object, access_token_expiry: object, refresh_token: object) -> None:
    if not isinstance(access_token, str) or not access_token:
        raise InvalidArgumentError("access_token must be a non-empty string")
    if not isinstance(refresh_token, str) or not refresh_token:
        raise InvalidArgumentError("refresh_token must be a non-empty string")
    if isinstance(access_token_expiry, bool) or not isinstance(access_token_expiry, int):
        raise InvalidArgumentError("access_token_expiry must be an integer number of seconds")
    if access_token_expiry < 0:
        raise InvalidArgumentError("access_token_expiry must not be negative")


class PostgresTokenStore(TokenRepository):
    """Stores the access/refresh token pair in a single PostgreSQL table.

    Every call goes to the database; nothing is cached in memory, so several
    processes can share one table. The access token row carries an expiry and
    is treated as absent once it passes. The refresh token row never expires.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        schema: Optional[SchemaInitializer] = None,
        *,
        prefix: str = "",
        table: str = DEFAULT_TABLE,
        purge_expired_on_read: bool = True,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._manager = manager
        self._schema = schema or SchemaInitializer(manager, table)
        self.table = table
        self.prefix = prefix
        self.purge_expired_on_read = purge_expired_on_read
        self.max_attempts = max_attempts
        self._clock = clock
        self._access_key, self._refresh_key = token_keys(prefix)

    @property
    def keys(self) -> Tuple[str, str]:
        return self._access_key, self._refresh_key

    def close(self) -> None:
        self._manager.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _query(self, template: str) -> sql.Composed:
        return sql.SQL(template).format(table=sql.Identifier(self.table))

    @staticmethod
    def _apply_timeout(cur: psycopg.Cursor, timeout: Optional[float]) -> None:
        """Bound statements in the current transaction to ``timeout`` seconds."""
        if timeout is None:
            return
        cur.execute(_SET_STATEMENT_TIMEOUT, (str(max(1, int(timeout * 1000))),))

    @contextmanager
    def _translate_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except TokenStoreError:
            raise
        except errors.QueryCanceled as exc:
            raise StoreConnectionError(f"Token {action} timed out: {exc}") from exc
        except TRANSIENT_ERRORS as exc:
            raise DataAccessError(
                f"Token {action} failed after {self.max_attempts} attempts: {exc}"
            ) from exc
        except psycopg.OperationalError as exc:
            raise StoreConnectionError(f"Token {action} lost its database connection: {exc}") from exc
        except psycopg.Error as exc:
            raise DataAccessError(f"Token {action} failed: {exc}") from exc

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        log_utils.warn(
            f"Transient error while storing tokens (attempt {retry_state.attempt_number}/"
            f"{self.max_attempts}): {exc!r}; retrying."
        )

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_random(0, 0.05),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=self._log_retry,
            reraise=True,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, *, timeout: Optional[float] = None) -> TokenPair:
        with self._translate_errors("read"):
            self._schema.ensure_schema(timeout=timeout)
            with self._manager.connection(timeout=timeout) as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        self._apply_timeout(cur, timeout)
                        cur.execute(
                            self._query(_SELECT_TOKENS),
                            {"access_key": self._access_key, "refresh_key": self._refresh_key},
                        )
                        rows = cur.fetchall()

                if self.purge_expired_on_read:
                    self._purge_expired(conn)

        values: Dict[str, str] = {key: value for key, value in rows}
        pair = TokenPair(
            access_token=values.get(self._access_key) or None,
            refresh_token=values.get(self._refresh_key) or None,
        )
        log_utils.debug(
            f"Read tokens for prefix '{self.prefix}': "
            f"access={'present' if pair.access_token else 'absent'}, "
            f"refresh={'present' if pair.refresh_token else 'absent'}."
        )
        return pair

    def _purge_expired(self, conn: psycopg.Connection) -> None:
        """Delete this namespace's expired rows. Advisory; failures are only logged."""
        try:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(self._query(_PURGE_EXPIRED), (list(self.keys),))
                    removed = cur.rowcount
        except psycopg.Error as exc:
            log_utils.warn(f"Skipping cleanup of expired tokens: {exc}")
            return
        if removed and removed > 0:
            log_utils.debug(f"Removed {removed} expired token row(s).")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def store(
        self,
        access_token: str,
        access_token_expiry: int,
        refresh_token: str,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        _validate_store_args(access_token, access_token_expiry, refresh_token)

        try:
            expires_at = self._clock() + timedelta(seconds=access_token_expiry)
        except OverflowError as exc:
            raise InvalidArgumentError("access_token_expiry is too large") from exc
        records = (
            TokenRecord(self._access_key, access_token, expires_at),
            TokenRecord(self._refresh_key, refresh_token, None),
        )

        with self._translate_errors("write"):
            self._schema.ensure_schema(timeout=timeout)
            for attempt in self._retrying():
                with attempt:
                    self._upsert(records, timeout)

        log_utils.info(
            f"Stored tokens for prefix '{self.prefix}'; access token expires at "
            f"{expires_at.isoformat()}."
        )

    def _upsert(self, records: Tuple[TokenRecord, ...], timeout: Optional[float]) -> None:
        statement = self._query(_UPSERT_TOKEN)
        with self._manager.connection(timeout=timeout) as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    self._apply_timeout(cur, timeout)
                    for record in records:
                        cur.execute(statement, (record.key, record.value, record.expires_at))


__all__ = ["PostgresTokenStore", "DEFAULT_MAX_ATTEMPTS"]
