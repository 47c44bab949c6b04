"""SQLite adapters for larder storage."""

from .base_repository import SQLiteBaseRepository
from .record_store import RecordSummary, SQLiteRecordStore
from .schema import check_schema_version, init_database

__all__ = [
    "RecordSummary",
    "SQLiteBaseRepository",
    "SQLiteRecordStore",
    "init_database",
    "check_schema_version",
]
