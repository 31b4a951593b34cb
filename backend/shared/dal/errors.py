"""Error kinds raised by row store implementations.

Implementations translate their driver exceptions into these so callers never
depend on a particular backend.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shared.dal.store import Table


class StoreError(Exception):
    """Base class for backing store failures."""

    def __init__(self, message: str, *, table: Table | None = None, operation: str | None = None) -> None:
        self.table = table
        self.operation = operation
        super().__init__(message)


class StoreUnavailableError(StoreError):
    """The store could not be reached or failed to execute the call (connection, I/O, locking, config)."""


class DuplicateKeyError(StoreError):
    """An insert collided with an existing unique key (primary key or unique canonical)."""


class SchemaMismatchError(StoreError):
    """The store is missing an expected table or column."""
