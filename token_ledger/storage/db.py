"""
Database connection management.

Provides the SQLite store handle shared by the ledger and the token registry.
"""

import logging
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from token_ledger.core.errors import StorageConflictError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "token_ledger.db"


def get_connection(db_path: str = DEFAULT_DB_PATH, timeout: float = 5.0) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    Transactions are managed explicitly by the caller (autocommit mode).

    Args:
        db_path: Path to SQLite database file
        timeout: Seconds SQLite waits on a locked database before failing

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        str(path),
        timeout=timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _is_locked_error(e: Exception) -> bool:
    msg = str(e).lower()
    return "database is locked" in msg or "database is busy" in msg


class Database:
    """Store handle with scoped connection acquisition.

    Every connection is opened for one unit of work and closed on every exit
    path. Writes run inside BEGIN IMMEDIATE so a read-modify-write sequence
    holds the single SQLite writer lock from its first read to its commit.
    """

    def __init__(
        self,
        path: str = DEFAULT_DB_PATH,
        busy_timeout_ms: int = 5000,
        write_deadline_ms: int = 10000,
    ):
        """Initialize the handle.

        Args:
            path: Path to SQLite database file
            busy_timeout_ms: Per-statement wait on a locked database
            write_deadline_ms: Total time spent retrying a contended write
        """
        self.path = str(path)
        self.busy_timeout_ms = busy_timeout_ms
        self.write_deadline_ms = write_deadline_ms

    def _connect(self) -> sqlite3.Connection:
        try:
            return get_connection(self.path, timeout=self.busy_timeout_ms / 1000.0)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.path}: {e}") from e

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a read connection that is always closed afterwards."""
        conn = self._connect()
        try:
            yield conn
        except sqlite3.Error as e:
            raise StorageError(f"Database error: {e}") from e
        finally:
            conn.close()

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Commits when the block exits normally and rolls back on any exception.

        Raises:
            StorageConflictError: If the write lock cannot be acquired or the
                commit cannot complete before the write deadline
            StorageError: For any other SQLite failure inside the block
        """
        deadline = time.monotonic() + self.write_deadline_ms / 1000.0
        conn = self._connect()
        try:
            self._retry_locked(conn, "BEGIN IMMEDIATE", deadline)
            try:
                yield conn
                self._retry_locked(conn, "COMMIT", deadline)
            except BaseException:
                conn.rollback()
                raise
        except sqlite3.Error as e:
            raise StorageError(f"Database error: {e}") from e
        finally:
            conn.close()

    def _retry_locked(self, conn: sqlite3.Connection, statement: str, deadline: float) -> None:
        attempt = 0
        while True:
            try:
                conn.execute(statement)
                return
            except sqlite3.OperationalError as e:
                if not _is_locked_error(e):
                    raise
                if time.monotonic() >= deadline:
                    raise StorageConflictError(
                        f"Write lock not acquired for {statement} before deadline"
                    ) from e
                # exponential backoff with jitter
                sleep_s = min(0.25, 0.005 * (2.0 ** min(attempt, 8)))
                sleep_s *= 0.5 + random.random()
                logger.warning("Database locked on %s, retrying in %.3fs", statement, sleep_s)
                time.sleep(sleep_s)
                attempt += 1
