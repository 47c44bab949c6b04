"""SQLite database schema for the larder record cache.

This module defines the database schema and initialization logic for the
local store database:
- records: One row per key with the JSON payload of its record
- meta: System metadata (schema version, creation time)

Only the durable record copy lives here. Freshness bookkeeping (CacheMeta)
is owned by the coordinator and is never persisted.
"""

import sqlite3
from pathlib import Path

# Schema version for migrations
SCHEMA_VERSION = 1


def init_database(db_path: Path) -> None:
    """Initialize a larder cache database with the complete schema.

    Safe to call on an existing database: every statement is idempotent.

    Args:
        db_path: Path to the SQLite database file (typically .larder/cache.db)

    Raises:
        sqlite3.Error: If database creation fails
    """
    # Ensure parent directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        ensure_schema(conn)
        conn.commit()
    finally:
        conn.close()


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create missing tables, indexes and default metadata on conn.

    Args:
        conn: Open SQLite connection
    """
    _create_tables(conn)
    _create_indexes(conn)
    _insert_default_meta(conn)


def _create_tables(conn: sqlite3.Connection) -> None:
    cursor = conn.cursor()

    # records: Durable copy of every cached record
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS records (
            key TEXT PRIMARY KEY,
            payload TEXT NOT NULL,
            content_hash TEXT NOT NULL,
            updated_at REAL NOT NULL
        )
    """)

    # meta: System metadata
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
    """)


def _create_indexes(conn: sqlite3.Connection) -> None:
    cursor = conn.cursor()

    # Listing by recency
    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_records_updated_at
        ON records(updated_at)
    """)


def _insert_default_meta(conn: sqlite3.Connection) -> None:
    cursor = conn.cursor()

    cursor.execute(
        """
        INSERT OR IGNORE INTO meta (key, value) VALUES
        ('schema_version', ?),
        ('created_at', datetime('now'))
    """,
        (str(SCHEMA_VERSION),),
    )


def check_schema_version(db_path: Path) -> int:
    """Check the schema version of an existing database.

    Args:
        db_path: Path to the SQLite database

    Returns:
        Schema version number (0 if database doesn't exist or has no version)
    """
    if not db_path.exists():
        return 0

    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT value FROM meta WHERE key = 'schema_version'")
        row = cursor.fetchone()
        return int(row[0]) if row else 0
    except sqlite3.Error:
        return 0
    finally:
        conn.close()
