"""Abstract interface for the row store backing players, games, and lineups."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

Row = dict[str, Any]

# Column -> value (equality) or column -> list/tuple of values (membership).
# An empty membership list matches nothing; a None value matches missing columns.
Filters = dict[str, Any]


class Table(StrEnum):
    PLAYERS = "players"
    GAMES = "games"
    LINEUPS = "lineups"


class RowStore(ABC):
    """Abstract interface for a keyed row store.

    Every call either completes or raises a ``StoreError`` subclass. No call
    retries on its own; retrying is the caller's decision.
    """

    @abstractmethod
    async def select(
        self,
        table: Table,
        filters: Filters | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]: ...

    @abstractmethod
    async def upsert(self, table: Table, rows: Sequence[Mapping[str, Any]], *, conflict_key: str = "id") -> None:
        """Insert rows, replacing any existing row with the same ``conflict_key``."""

    @abstractmethod
    async def insert(self, table: Table, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        """Insert rows all-or-nothing. Raises DuplicateKeyError on any key conflict."""

    @abstractmethod
    async def update(self, table: Table, patch: Mapping[str, Any], filters: Filters) -> int:
        """Merge ``patch`` into every matching row. Returns the number of rows updated."""

    @abstractmethod
    async def delete(self, table: Table, filters: Filters | None = None) -> int:
        """Delete matching rows (all rows when ``filters`` is None). Returns the number deleted."""
