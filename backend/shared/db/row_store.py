"""SQLite-backed row store."""

from __future__ import annotations

import asyncio
import contextlib
import json
import re
import sqlite3
from typing import TYPE_CHECKING, Any

import structlog

from shared.dal.errors import DuplicateKeyError, SchemaMismatchError, StoreUnavailableError
from shared.dal.store import Filters, Row, RowStore, Table
from shared.db.connection import INDEXED_COLUMNS

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    from shared.db.connection import Database

logger = structlog.get_logger()

_COLUMN_NAME = re.compile(r"^[a-z_][a-z0-9_]*$")
_SCHEMA_ERRORS = ("no such table", "no such column")


class SqliteRowStore(RowStore):
    """SQLite implementation of RowStore.

    Rows are stored as JSON documents. Filters and ordering on ``id`` or an
    indexed column hit the real column; anything else goes through
    ``json_extract`` so rows written before a field existed simply read as
    missing. Writes are serialized with an asyncio lock; each write call is a
    single transaction.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def select(
        self,
        table: Table,
        filters: Filters | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        where, params = _where_clause(table, filters)
        sql = f"SELECT data FROM {table.value}{where}"  # noqa: S608
        if order_by is not None:
            sql += f" ORDER BY {_column_expr(table, order_by)} {'DESC' if descending else 'ASC'}"
        with self._translate_errors(table, "select"):
            rows = self._db.connection.execute(sql, params).fetchall()
        return [json.loads(row[0]) for row in rows]

    async def upsert(self, table: Table, rows: Sequence[Mapping[str, Any]], *, conflict_key: str = "id") -> None:
        if conflict_key != "id":
            raise ValueError(f"SQLite row store only supports upserts keyed by 'id', got {conflict_key!r}")
        if not rows:
            return
        columns = ("id", *INDEXED_COLUMNS[table.value])
        updates = ", ".join(f"{c} = excluded.{c}" for c in (*columns[1:], "data"))
        sql = (
            f"INSERT INTO {table.value} ({', '.join(columns)}, data) "  # noqa: S608
            f"VALUES ({', '.join('?' for _ in columns)}, ?) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}"
        )
        async with self._lock:
            with self._transaction(table, "upsert") as conn:
                conn.executemany(sql, [_row_params(table, row) for row in rows])
        logger.debug("upserted rows", table=table, count=len(rows))

    async def insert(self, table: Table, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        if not rows:
            return []
        columns = ("id", *INDEXED_COLUMNS[table.value])
        sql = (
            f"INSERT INTO {table.value} ({', '.join(columns)}, data) "  # noqa: S608
            f"VALUES ({', '.join('?' for _ in columns)}, ?)"
        )
        async with self._lock:
            with self._transaction(table, "insert") as conn:
                conn.executemany(sql, [_row_params(table, row) for row in rows])
        logger.debug("inserted rows", table=table, count=len(rows))
        return [dict(row) for row in rows]

    async def update(self, table: Table, patch: Mapping[str, Any], filters: Filters) -> int:
        if "id" in patch:
            raise ValueError("Row id cannot be changed by update")
        where, params = _where_clause(table, filters)
        async with self._lock:
            with self._transaction(table, "update") as conn:
                matched = conn.execute(f"SELECT data FROM {table.value}{where}", params).fetchall()  # noqa: S608
                updated_rows = [{**json.loads(row[0]), **patch} for row in matched]
                columns = INDEXED_COLUMNS[table.value]
                assignments = ", ".join(f"{c} = ?" for c in (*columns, "data"))
                conn.executemany(
                    f"UPDATE {table.value} SET {assignments} WHERE id = ?",  # noqa: S608
                    [(*_row_params(table, row)[1:], row["id"]) for row in updated_rows],
                )
        return len(updated_rows)

    async def delete(self, table: Table, filters: Filters | None = None) -> int:
        where, params = _where_clause(table, filters)
        async with self._lock:
            with self._transaction(table, "delete") as conn:
                cursor = conn.execute(f"DELETE FROM {table.value}{where}", params)  # noqa: S608
        logger.info("deleted rows", table=table, count=cursor.rowcount)
        return cursor.rowcount

    @contextlib.contextmanager
    def _transaction(self, table: Table, operation: str) -> Iterator[sqlite3.Connection]:
        """Run the block in one transaction, rolling back and translating errors on failure."""
        with self._translate_errors(table, operation):
            conn = self._db.connection
            try:
                conn.execute("BEGIN")
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    @contextlib.contextmanager
    def _translate_errors(self, table: Table, operation: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.IntegrityError as exc:
            raise DuplicateKeyError(str(exc), table=table, operation=operation) from exc
        except sqlite3.OperationalError as exc:
            message = str(exc).lower()
            if any(marker in message for marker in _SCHEMA_ERRORS):
                raise SchemaMismatchError(str(exc), table=table, operation=operation) from exc
            raise StoreUnavailableError(str(exc), table=table, operation=operation) from exc
        except (sqlite3.Error, RuntimeError) as exc:
            # RuntimeError: the Database is not connected
            raise StoreUnavailableError(str(exc), table=table, operation=operation) from exc


def _column_expr(table: Table, column: str) -> str:
    if not _COLUMN_NAME.match(column):
        raise ValueError(f"Invalid column name: {column!r}")
    if column == "id" or column in INDEXED_COLUMNS[table.value]:
        return column
    return f"json_extract(data, '$.{column}')"


def _where_clause(table: Table, filters: Filters | None) -> tuple[str, list[Any]]:
    if not filters:
        return "", []
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in filters.items():
        expr = _column_expr(table, column)
        if isinstance(value, (list, tuple, set, frozenset)):
            values = list(value)
            if not values:
                clauses.append("0")
                continue
            clauses.append(f"{expr} IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        elif value is None:
            clauses.append(f"{expr} IS NULL")
        else:
            clauses.append(f"{expr} = ?")
            params.append(value)
    return " WHERE " + " AND ".join(clauses), params


def _row_params(table: Table, row: Mapping[str, Any]) -> tuple[Any, ...]:
    row_id = row.get("id")
    if not row_id:
        raise ValueError(f"Row for table '{table.value}' is missing an id")
    indexed = tuple(row.get(column) for column in INDEXED_COLUMNS[table.value])
    return (row_id, *indexed, json.dumps(dict(row)))
