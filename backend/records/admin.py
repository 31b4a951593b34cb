"""Administrative bulk operations: one-time import from a local cache, and reset.

Import is plain overwrite-by-id with no merging. Players are written first,
then games, then lineups; a failing step stops the import and leaves earlier
steps applied.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ValidationError

from records.errors import ImportStep, ImportStepError, InvalidPayloadError
from records.models import GameSnapshot, Lineup, PlayerIdentity
from scoring.types import WireModel
from shared.dal import StoreError, Table

if TYPE_CHECKING:
    from shared.dal import RowStore

logger = structlog.get_logger()


class CachePayload(WireModel):
    """Contents of a client-side cache export."""

    players: tuple[PlayerIdentity, ...] = ()
    history: tuple[GameSnapshot, ...] = ()
    lineups: tuple[Lineup, ...] = ()


class ImportCounts(BaseModel, frozen=True):
    players: int = 0
    games: int = 0
    lineups: int = 0


class ResetCounts(BaseModel, frozen=True):
    games: int = 0
    lineups: int = 0
    players: int = 0


def parse_cache_payload(payload: Any) -> CachePayload:  # noqa: ANN401
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Import payload must be an object")
    try:
        return CachePayload.model_validate(payload)
    except ValidationError as e:
        raise InvalidPayloadError(f"Invalid import payload: {e.error_count()} error(s): {e.errors()[0]['msg']}") from e


class AdminService:
    def __init__(self, store: RowStore) -> None:
        self._store = store

    async def import_cache(self, payload: CachePayload) -> ImportCounts:
        steps = (
            (ImportStep.PLAYERS, Table.PLAYERS, [p.to_row() for p in payload.players]),
            (ImportStep.GAMES, Table.GAMES, [g.to_row() for g in payload.history]),
            (ImportStep.LINEUPS, Table.LINEUPS, [lu.to_row() for lu in payload.lineups]),
        )
        for step, table, rows in steps:
            if not rows:
                continue
            try:
                await self._store.upsert(table, rows, conflict_key="id")
            except StoreError as e:
                logger.warning("cache import step failed", step=step, rows=len(rows), error=str(e))
                raise ImportStepError(step, str(e)) from e

        counts = ImportCounts(
            players=len(payload.players),
            games=len(payload.history),
            lineups=len(payload.lineups),
        )
        logger.info("imported local cache", **counts.model_dump())
        return counts

    async def reset(self, *, keep_players: bool = True) -> ResetCounts:
        """Delete all games and lineups, and players too unless ``keep_players``."""
        games = await self._store.delete(Table.GAMES)
        lineups = await self._store.delete(Table.LINEUPS)
        players = 0 if keep_players else await self._store.delete(Table.PLAYERS)
        logger.warning("store reset", games=games, lineups=lineups, players=players, keep_players=keep_players)
        return ResetCounts(games=games, lineups=lineups, players=players)
