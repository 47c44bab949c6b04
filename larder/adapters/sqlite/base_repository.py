"""Base class for SQLite adapters.

Provides consistent connection management, thread safety, transactions and
the context manager protocol for all SQLite-based adapters in larder.
"""

import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Self


class SQLiteBaseRepository:
    """Base class providing SQLite connection management.

    All SQLite adapters should inherit from this class to get:
    - Thread-safe connection initialization (double-checked locking)
    - Cross-thread connection access (check_same_thread=False)
    - Serialized statement execution through a single operation lock
    - Atomic multi-statement writes via transaction()
    - Context manager protocol (__enter__/__exit__)

    Thread Safety:
        Connections are initialized lazily with double-checked locking.
        Fetch workers write from executor threads while consumers read from
        their own threads, so one connection is shared with
        check_same_thread=False and every operation runs under _op_lock.
        Holding the lock for a whole transaction keeps statements of
        different threads from being committed together.

    Example:
        class MyRepository(SQLiteBaseRepository):
            def my_query(self) -> list:
                with self._op_lock:
                    cursor = self._get_connection().execute("SELECT * FROM t")
                    return cursor.fetchall()
    """

    def __init__(
        self,
        db_path: Path,
        *,
        foreign_keys: bool = False,
        connection_setup: Callable[[sqlite3.Connection], None] | None = None,
    ) -> None:
        """Initialize the repository.

        Args:
            db_path: Path to SQLite database file.
            foreign_keys: Whether to enable foreign key constraints.
            connection_setup: Optional callback for custom connection setup.
                Called after connection is created but before first use.
        """
        self.db_path = db_path
        self._foreign_keys = foreign_keys
        self._connection_setup = connection_setup
        self._conn: sqlite3.Connection | None = None
        self._conn_lock = threading.Lock()
        self._op_lock = threading.RLock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection, creating one if needed.

        Returns:
            SQLite connection object.
        """
        if self._conn is None:
            with self._conn_lock:
                # Double-check pattern: re-check after acquiring lock
                if self._conn is None:
                    conn = sqlite3.connect(self.db_path, check_same_thread=False)
                    if self._foreign_keys:
                        conn.execute("PRAGMA foreign_keys = ON")
                    if self._connection_setup is not None:
                        self._connection_setup(conn)
                    self._conn = conn
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run statements as one atomic unit.

        Commits when the block exits normally, rolls back and re-raises
        if it raises.

        Yields:
            The shared connection.
        """
        with self._op_lock:
            conn = self._get_connection()
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            else:
                conn.commit()

    def close(self) -> None:
        """Close the database connection if open.

        Safe to call multiple times. After calling close(), the next call
        to _get_connection() will create a new connection.
        """
        with self._op_lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> Self:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> bool:
        """Exit context manager, closing the database connection."""
        self.close()
        return False
