"""SQLite store for Starlit

One database file (STARLIT_DB_PATH, default starlit/data/starlit.db) holds
users, journals, mails and mail recipients. Nested fields (ledgers, story
progress, tags, likes, metadata) are JSON columns, so repositories read and
write each record as a document addressed by id.

Provides:
- A bounded connection pool per database path
- db_transaction(): BEGIN IMMEDIATE ... COMMIT, rolled back on any error
- retry_on_db_lock: backoff on "database is locked" / "busy"
- Schema initialization, validation and pool stats for /health/db
"""

from __future__ import annotations

import atexit
import os
import random
import sqlite3
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from functools import wraps
from pathlib import Path
from queue import Empty, Queue
from threading import Lock
from typing import Any, TypeVar

from starlit.config import (
    DB_CONNECT_TIMEOUT,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
    DB_RETRY_BASE_DELAY,
    DB_RETRY_JITTER,
    DB_RETRY_MAX,
    DB_RETRY_MAX_DELAY,
)
from starlit.observability.logging import get_logger
from starlit.observability.telemetry import counter

F = TypeVar("F", bound=Callable[..., Any])

DB_PATH = Path(__file__).parent.parent / "data" / "starlit.db"

logger = get_logger(__name__)


class PoolExhaustedError(RuntimeError):
    """Every pooled connection stayed checked out for DB_POOL_TIMEOUT seconds."""


def _is_lock_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


def retry_on_db_lock(
    max_retries: int = DB_RETRY_MAX,
    base_delay: float = DB_RETRY_BASE_DELAY,
    max_delay: float = DB_RETRY_MAX_DELAY,
) -> Callable[[F], F]:
    """
    Retry a repository write when SQLite reports lock contention.

    Delays double from base_delay up to max_delay, plus up to DB_RETRY_JITTER
    of the delay at random. Any other OperationalError propagates at once,
    and the lock error itself is re-raised after max_retries retries.

    Usage:
        @staticmethod
        @retry_on_db_lock()
        def toggle_like(journal_id, user_id):
            with db_transaction() as conn:
                ...
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except sqlite3.OperationalError as e:
                    if not _is_lock_error(e):
                        raise
                    if attempt >= max_retries:
                        logger.error(
                            "%s still locked after %d retries: %s", func.__qualname__, attempt, e
                        )
                        counter("database.lock_gave_up")
                        raise

                    delay = min(base_delay * (2**attempt), max_delay)
                    delay += random.uniform(0, delay * DB_RETRY_JITTER)
                    attempt += 1
                    counter("database.lock_retry")
                    logger.warning(
                        "%s hit a locked database (retry %d/%d in %.2fs)",
                        func.__qualname__,
                        attempt,
                        max_retries,
                        delay,
                    )
                    time.sleep(delay)

        return wrapper  # type: ignore[return-value]

    return decorator


def _connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path), timeout=DB_CONNECT_TIMEOUT, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


class DatabaseConnectionPool:
    """
    Fixed-size pool of connections to one database file.

    Connections are opened lazily up to pool_size; callers beyond that wait
    up to DB_POOL_TIMEOUT for one to come back, then get PoolExhaustedError.
    """

    def __init__(self, db_path: Path, pool_size: int = DB_POOL_SIZE) -> None:
        self.db_path = db_path
        self.pool_size = pool_size
        self._idle: Queue[sqlite3.Connection] = Queue(maxsize=pool_size)
        self._lock = Lock()
        self._opened = 0
        self._in_use = 0
        self.closed = False

    def get_connection(self, timeout: float = DB_POOL_TIMEOUT) -> sqlite3.Connection:
        if self.closed:
            raise RuntimeError(f"Connection pool for {self.db_path} has been closed")

        with self._lock:
            open_new = self._idle.empty() and self._opened < self.pool_size
            if open_new:
                self._opened += 1
            self._in_use += 1

        try:
            if open_new:
                return _connect(self.db_path)
            return self._idle.get(timeout=timeout)
        except Empty:
            with self._lock:
                self._in_use -= 1
            counter("database.pool_exhausted")
            logger.error("No free connection to %s after %.1fs", self.db_path, timeout)
            raise PoolExhaustedError(
                f"All {self.pool_size} connections to {self.db_path} are in use"
            ) from None
        except sqlite3.Error:
            with self._lock:
                self._opened -= 1
                self._in_use -= 1
            raise

    def return_connection(self, conn: sqlite3.Connection) -> None:
        with self._lock:
            self._in_use -= 1
            if self.closed:
                self._opened -= 1
        if self.closed:
            conn.close()
            return
        if conn.in_transaction:
            conn.rollback()
        self._idle.put_nowait(conn)

    def close_all(self) -> None:
        self.closed = True
        while True:
            try:
                conn = self._idle.get_nowait()
            except Empty:
                break
            conn.close()
            with self._lock:
                self._opened -= 1

    def stats(self) -> dict[str, Any]:
        with self._lock:
            in_use = self._in_use
            opened = self._opened
        return {
            "db_path": str(self.db_path),
            "pool_size": self.pool_size,
            "open": opened,
            "in_use": in_use,
            "available": self.pool_size - in_use,
            "usage_percent": round(in_use * 100 / self.pool_size, 1) if self.pool_size else 0,
            "closed": self.closed,
        }


_pools: dict[Path, DatabaseConnectionPool] = {}
_pools_lock = Lock()


def get_db_path() -> Path:
    """STARLIT_DB_PATH if set, else the packaged default."""
    if env_path := os.getenv("STARLIT_DB_PATH"):
        return Path(env_path)
    return DB_PATH


def get_pool() -> DatabaseConnectionPool:
    """Pool for the current database path (one per path, created on first use)."""
    db_path = get_db_path()
    with _pools_lock:
        pool = _pools.get(db_path)
        if pool is None or pool.closed:
            pool = DatabaseConnectionPool(db_path, pool_size=DB_POOL_SIZE)
            _pools[db_path] = pool
        return pool


def reset_pool() -> None:
    """Close every pool and forget them; the next call re-reads STARLIT_DB_PATH."""
    with _pools_lock:
        pools = list(_pools.values())
        _pools.clear()
    for pool in pools:
        pool.close_all()


atexit.register(reset_pool)


@contextmanager
def get_db_connection() -> Generator[sqlite3.Connection, None, None]:
    """
    Borrow a pooled connection for reads.

    Raises:
        FileNotFoundError: If the database file does not exist (run init_database())
    """
    db_path = get_db_path()
    if not db_path.exists():
        raise FileNotFoundError(f"Database not found: {db_path}. Run init_database() first")

    pool = get_pool()
    conn = pool.get_connection()
    try:
        yield conn
    finally:
        pool.return_connection(conn)


@contextmanager
def db_transaction() -> Generator[sqlite3.Connection, None, None]:
    """
    Write transaction holding the write lock from BEGIN IMMEDIATE.

    Commits on success; rolls back and re-raises on any exception.
    """
    with get_db_connection() as conn:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        conn.commit()


def validate_schema() -> bool:
    """
    Raises:
        ValueError: If a table or column the repositories use is missing
    """
    from starlit.infrastructure.database_schema import validate_schema as _validate_schema

    with get_db_connection() as conn:
        return _validate_schema(conn)


def get_pool_stats() -> dict[str, Any]:
    return get_pool().stats()


def init_database() -> None:
    """Create tables and indexes if missing (idempotent), including the data directory."""
    from starlit.infrastructure.database_schema import init_database as _init_database

    _init_database(get_db_path())
