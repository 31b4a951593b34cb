"""Test builders and a failure-injecting store double for record-keeping tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from records.models import GameSnapshot, PlayerRow
from scoring.calculator import score_players
from scoring.prestige import DEFAULT_PRESTIGE_ORDER
from scoring.types import Paintings, PlayerRoundInput, ScoredPlayer
from shared.dal import RowStore, StoreUnavailableError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shared.dal import Filters, Row, Table

BASE_TIME = datetime(2025, 3, 1, 18, 0, tzinfo=UTC)


def at(minutes: int) -> datetime:
    """A fixed timestamp ``minutes`` after BASE_TIME."""
    return BASE_TIME + timedelta(minutes=minutes)


def make_participant(
    name: str,
    final_score: int | None,
    *,
    player_id: str | None = None,
    decor_count: int = 0,
    tie_break_winner: bool = False,
) -> ScoredPlayer:
    """A scored participant with only the fields the record-keeping layer reads."""
    return ScoredPlayer(
        id=f"slot-{name}",
        name=name,
        decor_count=decor_count,
        player_id=player_id,
        final_score=final_score,
        tie_break_winner=tie_break_winner,
    )


def make_game(game_id: str, players: Sequence[ScoredPlayer], *, created_at: datetime = BASE_TIME) -> GameSnapshot:
    return GameSnapshot(id=game_id, created_at=created_at, players=tuple(players))


def make_scored_game(game_id: str, tallies: dict[str, int], *, created_at: datetime = BASE_TIME) -> GameSnapshot:
    """A game scored by the real calculator; ``tallies`` maps name to red tile count."""
    inputs = [
        PlayerRoundInput(id=f"slot-{i}", name=name, paintings=Paintings(red=red))
        for i, (name, red) in enumerate(tallies.items())
    ]
    return make_game(game_id, score_players(DEFAULT_PRESTIGE_ORDER, inputs), created_at=created_at)


def make_player_row(player_id: str, name: str, **fields: Any) -> PlayerRow:  # noqa: ANN401
    return PlayerRow(id=player_id, display_name=name, **fields)


class FlakyStore(RowStore):
    """Delegates to a real store, failing chosen ``(operation, table)`` calls.

    ``fail_on`` maps an operation name (``select``, ``upsert``, ``insert``,
    ``update``, ``delete``) plus table to the exception to raise instead of
    delegating. ``pause_after`` yields to the event loop after a matching
    call completes so concurrent callers interleave.
    """

    def __init__(self, inner: RowStore) -> None:
        self.inner = inner
        self.fail_on: dict[tuple[str, Table], Exception] = {}
        self.pause_after: set[tuple[str, Table]] = set()
        self.calls: list[tuple[str, Table]] = []

    def fail(self, operation: str, table: Table, error: Exception | None = None) -> None:
        self.fail_on[operation, table] = error or StoreUnavailableError(
            f"{operation} on {table} failed",
            table=table,
            operation=operation,
        )

    async def _call(self, operation: str, table: Table, *args: Any, **kwargs: Any) -> Any:  # noqa: ANN401
        self.calls.append((operation, table))
        error = self.fail_on.get((operation, table))
        if error is not None:
            raise error
        result = await getattr(self.inner, operation)(table, *args, **kwargs)
        if (operation, table) in self.pause_after:
            await asyncio.sleep(0)
        return result

    async def select(
        self,
        table: Table,
        filters: Filters | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        return await self._call("select", table, filters, order_by=order_by, descending=descending)

    async def upsert(self, table: Table, rows: Sequence[Row], *, conflict_key: str = "id") -> None:
        await self._call("upsert", table, rows, conflict_key=conflict_key)

    async def insert(self, table: Table, rows: Sequence[Row]) -> list[Row]:
        return await self._call("insert", table, rows)

    async def update(self, table: Table, patch: Row, filters: Filters) -> int:
        return await self._call("update", table, patch, filters)

    async def delete(self, table: Table, filters: Filters | None = None) -> int:
        return await self._call("delete", table, filters)
