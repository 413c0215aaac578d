"""Bounded PostgreSQL connection pool with explicit acquire/release."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import psycopg
from psycopg_pool import ConnectionPool, PoolTimeout

from drive_tokens.application.exceptions import ConfigurationError, StoreConnectionError
from drive_tokens.infrastructure import log_utils
from drive_tokens.infrastructure.db_conn import get_database_url

POOL_SIZE_CEILING = 10


class ConnectionManager:
    """Owns the connection pool used by the token store.

    The pool is created on the first acquisition rather than at construction,
    so a missing connection string only fails callers that actually need the
    database. All pooled connections run in autocommit mode; callers open
    explicit transactions with ``conn.transaction()``.
    """

    def __init__(
        self,
        conninfo: Optional[str] = None,
        *,
        min_size: int = 1,
        max_size: int = 5,
        timeout: float = 10.0,
        max_idle: float = 300.0,
        connect_timeout: int = 5,
        statement_timeout_ms: int = 5000,
        sslmode: Optional[str] = None,
        name: str = "drive-tokens",
    ) -> None:
        self._conninfo = conninfo
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self.max_idle = max_idle
        self.connect_timeout = connect_timeout
        self.statement_timeout_ms = statement_timeout_ms
        self.sslmode = sslmode
        self.name = name
        self._pool: ConnectionPool | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Any) -> "ConnectionManager":
        """Build a manager from pool settings.

        The connection string is left unset so :func:`get_database_url` picks it
        when the pool opens, honouring a ``DATABASE_URL`` exported after import.
        """
        return cls(
            None,
            min_size=settings.DB_POOL_MIN_SIZE,
            max_size=settings.DB_POOL_MAX_SIZE,
            timeout=settings.DB_POOL_TIMEOUT_SECS,
            max_idle=settings.DB_POOL_MAX_IDLE_SECS,
            connect_timeout=settings.DB_CONNECT_TIMEOUT_SECS,
            statement_timeout_ms=settings.DB_STATEMENT_TIMEOUT_MS,
            sslmode=settings.ssl_mode,
        )

    # ------------------------------------------------------------------
    # Pool lifecycle
    # ------------------------------------------------------------------
    def _connect_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "autocommit": True,
            "connect_timeout": self.connect_timeout,
        }
        if self.statement_timeout_ms:
            kwargs["options"] = f"-c statement_timeout={int(self.statement_timeout_ms)}"
        if self.sslmode:
            kwargs["sslmode"] = self.sslmode
        return kwargs

    def _validate_bounds(self) -> None:
        if not 1 <= self.max_size <= POOL_SIZE_CEILING:
            raise ConfigurationError(
                f"Pool max_size must be between 1 and {POOL_SIZE_CEILING}, got {self.max_size}."
            )
        if not 0 <= self.min_size <= self.max_size:
            raise ConfigurationError(
                f"Pool min_size must be between 0 and max_size ({self.max_size}), got {self.min_size}."
            )

    def _create_pool(self) -> ConnectionPool:
        conninfo = self._conninfo or get_database_url()
        self._validate_bounds()
        pool = ConnectionPool(
            conninfo=conninfo,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.timeout,
            max_idle=self.max_idle,
            kwargs=self._connect_kwargs(),
            name=self.name,
            open=False,
        )
        pool.open()
        log_utils.info(
            f"Opened connection pool '{self.name}' (min={self.min_size}, max={self.max_size})."
        )
        return pool

    def get_pool(self) -> ConnectionPool:
        """Return the pool, creating it on first use."""
        if self._pool is None:
            with self._lock:
                if self._pool is None:
                    self._pool = self._create_pool()
        return self._pool

    @property
    def closed(self) -> bool:
        return self._pool is None or self._pool.closed

    def close(self) -> None:
        with self._lock:
            if self._pool is not None and not self._pool.closed:
                self._pool.close()
                log_utils.info("Database connection pool closed.")
            self._pool = None

    # ------------------------------------------------------------------
    # Acquire / release
    # ------------------------------------------------------------------
    def acquire(self, timeout: Optional[float] = None) -> psycopg.Connection:
        """Borrow a connection, waiting at most ``timeout`` (or the pool default) seconds."""
        pool = self.get_pool()
        wait = self.timeout if timeout is None else timeout
        try:
            return pool.getconn(timeout=wait)
        except PoolTimeout as exc:
            raise StoreConnectionError(
                f"No database connection available within {wait:.1f}s."
            ) from exc
        except psycopg.OperationalError as exc:
            raise StoreConnectionError(f"Database unreachable: {exc}") from exc

    def release(self, conn: psycopg.Connection) -> None:
        """Return a connection to the pool; broken connections are discarded by the pool."""
        if self._pool is None:
            conn.close()
            return
        self._pool.putconn(conn)

    @contextmanager
    def connection(self, timeout: Optional[float] = None) -> Iterator[psycopg.Connection]:
        """Provide a pooled connection that is always released, even on error."""
        conn = self.acquire(timeout=timeout)
        try:
            yield conn
        finally:
            self.release(conn)


__all__ = ["ConnectionManager", "POOL_SIZE_CEILING"]
