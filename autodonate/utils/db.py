"""
PostgreSQL access.

``Database`` owns a psycopg2 ThreadedConnectionPool. One instance is built in
``create_app`` (or passed in) and handed to the repositories; nothing here is
a module-level singleton. Every psycopg2 failure leaves this module as a
``StorageError``.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Iterator

import psycopg2
from psycopg2 import pool
from psycopg2.extras import RealDictCursor

from autodonate.utils.logger import get_logger

logger = get_logger(__name__)


class StorageError(Exception):
    """Store unreachable, lock timeout, deadlock or a failed statement."""


class InvalidDataError(StorageError):
    """The database rejected a value (malformed id, numeric overflow)."""


class Database:
    def __init__(
        self,
        dsn: str | None = None,
        *,
        minconn: int = 0,
        maxconn: int = 10,
        **connect_kwargs: Any,
    ):
        self._dsn = dsn
        self._connect_kwargs = connect_kwargs
        self._minconn = minconn
        self._maxconn = maxconn
        self._pool: pool.ThreadedConnectionPool | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: dict) -> "Database":
        """
        Uses DATABASE_URL if set (e.g. for AWS RDS); otherwise falls back to
        the DB_SETTINGS mapping (host, database, user, password, port).
        """
        kwargs = dict(minconn=config.get("DB_POOL_MIN", 0), maxconn=config.get("DB_POOL_MAX", 10))
        url = config.get("DATABASE_URL")
        if url:
            return cls(url, **kwargs)
        return cls(None, **kwargs, **(config.get("DB_SETTINGS") or {}))

    def _get_pool(self) -> pool.ThreadedConnectionPool:
        with self._lock:
            if self._pool is None:
                try:
                    if self._dsn:
                        self._pool = pool.ThreadedConnectionPool(
                            self._minconn, self._maxconn, self._dsn
                        )
                    else:
                        self._pool = pool.ThreadedConnectionPool(
                            self._minconn, self._maxconn, **self._connect_kwargs
                        )
                except psycopg2.Error as e:
                    logger.error(f"Failed to initialize database pool: {e}")
                    raise StorageError(str(e)) from e
                logger.info("Database connection pool initialized.")
            return self._pool

    @contextmanager
    def connection(self) -> Iterator[Any]:
        p = self._get_pool()
        try:
            conn = p.getconn()
        except psycopg2.Error as e:
            raise StorageError(f"cannot get connection: {e}") from e
        try:
            yield conn
        finally:
            p.putconn(conn, close=bool(conn.closed))

    @contextmanager
    def transaction(
        self, *, lock_timeout_ms: int | None = None, dict_rows: bool = True
    ) -> Iterator[Any]:
        """
        Yield a cursor inside one transaction. Commit on normal exit, roll
        back on any exception. psycopg2 errors are re-raised as StorageError
        (InvalidDataError for rejected values); everything else is re-raised
        unchanged after the rollback.
        """
        factory = RealDictCursor if dict_rows else None
        with self.connection() as conn:
            try:
                with conn.cursor(cursor_factory=factory) as cur:
                    if lock_timeout_ms:
                        cur.execute(
                            "SELECT set_config('lock_timeout', %s, true)",
                            (f"{int(lock_timeout_ms)}ms",),
                        )
                    yield cur
                conn.commit()
            except psycopg2.DataError as e:
                _rollback(conn)
                raise InvalidDataError(str(e)) from e
            except psycopg2.Error as e:
                _rollback(conn)
                raise StorageError(str(e)) from e
            except BaseException:
                _rollback(conn)
                raise

    def close(self) -> None:
        with self._lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None
                logger.info("Database connection pool closed.")


def _rollback(conn) -> None:
    if conn.closed:
        return
    try:
        conn.rollback()
    except psycopg2.Error as e:
        # the original error is what the caller needs to see
        logger.warning(f"rollback failed: {e}")
