"""SQLite adapter implementing the LocalStore protocol for records."""

import logging
import sqlite3
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from larder.adapters.listeners import KeyListeners
from larder.adapters.sqlite.base_repository import SQLiteBaseRepository
from larder.adapters.sqlite.schema import ensure_schema
from larder.domain.entities import Record
from larder.domain.exceptions import StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordSummary:
    """Listing row for a stored record.

    Attributes:
        key: Record key.
        content_hash: blake3 hash of the stored payload.
        updated_at: Unix time of the last write.
    """

    key: str
    content_hash: str
    updated_at: float


class SQLiteRecordStore(SQLiteBaseRepository):
    """SQLite implementation of LocalStore for Record values.

    Every write is an upsert; write_many() writes its whole batch in one
    transaction. Subscribers are notified in-process after the commit.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize record store.

        Args:
            db_path: Path to SQLite database file. Missing tables are
                created on first use.
        """
        super().__init__(db_path, connection_setup=self._setup_connection)
        self._listeners = KeyListeners()

    @staticmethod
    def _setup_connection(conn: sqlite3.Connection) -> None:
        ensure_schema(conn)
        conn.commit()

    def read(self, key: str) -> Record | None:
        """Read the stored record for a key.

        Args:
            key: The record key.

        Returns:
            The record if found, None otherwise.

        Raises:
            StoreError: If the database cannot be read or the payload is corrupt.
        """
        try:
            with self._op_lock:
                cursor = self._get_connection().execute(
                    "SELECT payload FROM records WHERE key = ?",
                    (key,),
                )
                row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read {key!r}: {e}") from e

        if row is None:
            return None
        try:
            return Record.from_json(key, row[0])
        except ValueError as e:
            raise StoreError(f"Corrupt payload stored for {key!r}: {e}") from e

    def write(self, key: str, record: Record) -> None:
        """Insert or replace the record stored under key.

        Raises:
            StoreError: If the write cannot be committed.
        """
        self.write_many({key: record})

    def write_many(self, records: Mapping[str, Record]) -> None:
        """Insert or replace several records in one transaction.

        Either the whole batch is committed or nothing is.

        Raises:
            StoreError: If the batch cannot be committed.
        """
        batch = dict(records)
        if not batch:
            return

        now = time.time()
        rows = [
            (key, record.to_json(), record.content_hash, now)
            for key, record in batch.items()
        ]
        try:
            with self.transaction() as conn:
                # UPSERT: insert or update if key already exists
                conn.executemany(
                    """
                    INSERT INTO records (key, payload, content_hash, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        payload = excluded.payload,
                        content_hash = excluded.content_hash,
                        updated_at = excluded.updated_at
                    """,
                    rows,
                )
        except sqlite3.Error as e:
            raise StoreError(
                f"Failed to write {len(batch)} record(s): {e}",
                hint="Check that the cache database is writable and not locked",
            ) from e

        logger.debug("Wrote %d record(s) to %s", len(batch), self.db_path)
        for key in batch:
            self._listeners.notify(key, self._stored(key, batch[key]))

    def subscribe(
        self, key: str, callback: Callable[[Record | None], None]
    ) -> Callable[[], None]:
        """Follow the stored value of a key.

        Raises:
            StoreError: If the current value cannot be read.
        """
        # Register first so a concurrent write is never missed
        cancel = self._listeners.add(key, callback)
        try:
            current = self.read(key)
        except StoreError:
            cancel()
            raise
        callback(current)
        return cancel

    def delete(self, key: str) -> None:
        """Remove the record stored under key, notifying subscribers.

        Raises:
            StoreError: If the delete cannot be committed.
        """
        try:
            with self.transaction() as conn:
                conn.execute("DELETE FROM records WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete {key!r}: {e}") from e
        self._listeners.notify(key, None)

    def list_records(self, prefix: str | None = None) -> list[RecordSummary]:
        """List stored records, most recently written first.

        Args:
            prefix: Optional key prefix filter (e.g., "post:").

        Raises:
            StoreError: If the database cannot be read.
        """
        query = "SELECT key, content_hash, updated_at FROM records"
        params: tuple[int | str, ...] = ()
        if prefix:
            # substr instead of LIKE: exact, case-sensitive, no wildcards
            query += " WHERE substr(key, 1, ?) = ?"
            params = (len(prefix), prefix)
        query += " ORDER BY updated_at DESC, key"

        try:
            with self._op_lock:
                rows = self._get_connection().execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to list records: {e}") from e
        return [RecordSummary(key=row[0], content_hash=row[1], updated_at=row[2]) for row in rows]

    @staticmethod
    def _stored(key: str, record: Record) -> Record:
        # What read() would return: the payload under the store key
        return record if record.key == key else Record(key=key, data=record.data)
