"""Data access layer: the abstract row store and its error kinds."""

from shared.dal.errors import DuplicateKeyError, SchemaMismatchError, StoreError, StoreUnavailableError
from shared.dal.store import Filters, Row, RowStore, Table

__all__ = [
    "DuplicateKeyError",
    "Filters",
    "Row",
    "RowStore",
    "SchemaMismatchError",
    "StoreError",
    "StoreUnavailableError",
    "Table",
]
