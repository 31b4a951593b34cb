"""SQLite database layer: connection management and the row store implementation."""

from shared.db.connection import Database
from shared.db.row_store import SqliteRowStore

__all__ = [
    "Database",
    "SqliteRowStore",
]
