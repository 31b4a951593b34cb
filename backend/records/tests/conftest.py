from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from records.tests.helpers import FlakyStore
from shared.db import Database, SqliteRowStore

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def db(tmp_path: Path):
    database = Database(tmp_path / "records.db")
    database.connect()
    yield database
    database.close()


@pytest.fixture
def unique_db(tmp_path: Path):
    database = Database(tmp_path / "records-unique.db", unique_canonical=True)
    database.connect()
    yield database
    database.close()


@pytest.fixture
def store(db: Database) -> SqliteRowStore:
    return SqliteRowStore(db)


@pytest.fixture
def flaky(store: SqliteRowStore) -> FlakyStore:
    return FlakyStore(store)
