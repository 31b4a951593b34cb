"""SQLite database connection and schema management."""

import os
import sqlite3
from pathlib import Path

import structlog

logger = structlog.get_logger()

_DB_FILE_PERMISSIONS = 0o600

# Each table keeps the full row as JSON in ``data``; ``id`` and the columns
# used for lookups or ordering are mirrored into real, indexed columns.
_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS players (
    id TEXT PRIMARY KEY,
    canonical TEXT,
    data TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_players_canonical
    ON players (canonical);

CREATE TABLE IF NOT EXISTS games (
    id TEXT PRIMARY KEY,
    created_at TEXT,
    data TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_games_created_at
    ON games (created_at);

CREATE TABLE IF NOT EXISTS lineups (
    id TEXT PRIMARY KEY,
    data TEXT NOT NULL
);
"""

_UNIQUE_CANONICAL_SQL = """\
CREATE UNIQUE INDEX IF NOT EXISTS idx_players_canonical_unique
    ON players (canonical) WHERE canonical IS NOT NULL AND canonical != '';
"""

INDEXED_COLUMNS: dict[str, tuple[str, ...]] = {
    "players": ("canonical",),
    "games": ("created_at",),
    "lineups": (),
}


class Database:
    """SQLite database wrapper with schema management.

    With ``unique_canonical`` the players table rejects a second identity for
    an already-used canonical name, so concurrent identity creation surfaces
    as a key conflict instead of a silent duplicate. Leave it off when
    importing legacy data that already contains duplicates.
    """

    def __init__(self, path: str | Path, *, unique_canonical: bool = False) -> None:
        self._path = str(path)
        self._unique_canonical = unique_canonical
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the active connection or raise if disconnected."""
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    @property
    def unique_canonical(self) -> bool:
        return self._unique_canonical

    def connect(self) -> None:
        """Open the database, apply pragmas, create schema, and harden file permissions."""
        parent = Path(self._path).parent
        parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.executescript(_SCHEMA_SQL)
        if self._unique_canonical:
            self._conn.executescript(_UNIQUE_CANONICAL_SQL)

        self._harden_permissions()
        logger.info("database connected", path=self._path, unique_canonical=self._unique_canonical)

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _harden_permissions(self) -> None:
        """Set owner-only permissions on the DB file and its WAL/SHM siblings (POSIX, best effort)."""
        if os.name != "posix":  # pragma: no cover
            return
        for suffix in ("", "-wal", "-shm"):
            p = Path(self._path + suffix)
            if p.exists():
                try:
                    p.chmod(_DB_FILE_PERMISSIONS)
                except OSError:
                    logger.warning("could not set file permissions", permissions=oct(_DB_FILE_PERMISSIONS), path=str(p))
