"""Import a local-cache JSON export into the scorer database.

Usage: uv run python bin/import-cache.py <export.json>

The export holds ``players``, ``history`` and ``lineups`` arrays. Rows are
written by id and overwrite what is stored; nothing is merged.
"""

import asyncio
import json
import sys
from pathlib import Path

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from records.admin import AdminService, parse_cache_payload
from records.errors import ImportStepError, InvalidPayloadError
from server.settings import ScorerServerSettings
from shared.db import Database, SqliteRowStore
from shared.logging import setup_logging


async def main() -> None:
    if len(sys.argv) != 2:
        print(f"Usage: {sys.argv[0]} <export.json>")
        sys.exit(1)

    settings = ScorerServerSettings()
    setup_logging(level=settings.log_level, log_format=settings.log_format)

    try:
        payload = parse_cache_payload(json.loads(Path(sys.argv[1]).read_text(encoding="utf-8")))
    except (OSError, ValueError, InvalidPayloadError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    db = Database(settings.database_path, unique_canonical=settings.unique_canonical)
    db.connect()
    try:
        try:
            counts = await AdminService(SqliteRowStore(db)).import_cache(payload)
        except ImportStepError as e:
            print(f"Error: {e} (earlier steps were kept)")
            sys.exit(1)

        print(f"Imported {counts.players} players, {counts.games} games, {counts.lineups} lineups")
    finally:
        db.close()


if __name__ == "__main__":
    asyncio.run(main())
