"""
Game recording: the write path for one completed game.

Steps, in order:
1. resolve identities for participants that have none;
2. upsert the snapshot by game id (re-submitting the same id overwrites);
3. determine the winner;
4. bump each resolved identity's games/wins/last-played counters;
5. when every participant is resolved, record lineup usage.

The steps are not atomic as a group. A failure after step 2 leaves the
snapshot stored with stale counters; the leaderboard recomputes from history
where counters are missing, and retrying the same game id is safe apart from
counting that game again. Counter updates are read-modify-write without a
concurrency check, so two simultaneous saves touching the same identity can
lose one increment.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from records.errors import IdentityResolutionError, InvalidPayloadError, RecordStep, RecordStepError
from records.identity import IdentityResolver
from records.models import (
    MAX_PLAYERS,
    MIN_PLAYERS,
    GameSnapshot,
    Lineup,
    PlayerRow,
    lineup_id,
    parse_player_rows,
)
from scoring.canonical import canonicalize
from scoring.types import WireModel
from scoring.winner import find_winner, participant_ref
from shared.dal import DuplicateKeyError, StoreError, Table

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from scoring.types import ScoredPlayer
    from shared.dal import RowStore

logger = structlog.get_logger()

DEFAULT_DISPLAY_NAME = "Player"


class RecordReceipt(WireModel):
    game_id: str
    winner: str | None = None  # winner's identity id, or name when unresolved
    player_ids: tuple[str | None, ...] = ()
    lineup_id: str | None = None


def _utcnow() -> datetime:
    return datetime.now(UTC)


def parse_snapshot(payload: Any) -> GameSnapshot:  # noqa: ANN401
    """Validate a raw game payload, raising InvalidPayloadError before any store call."""
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Game payload must be an object")
    try:
        snapshot = GameSnapshot.model_validate(payload)
    except ValidationError as e:
        raise InvalidPayloadError(f"Invalid game payload: {e.error_count()} error(s): {e.errors()[0]['msg']}") from e
    if len(snapshot.players) < MIN_PLAYERS:
        raise InvalidPayloadError(f"A game needs {MIN_PLAYERS} to {MAX_PLAYERS} players, got {len(snapshot.players)}")
    return snapshot


def _unique(ids: Sequence[str | None]) -> list[str]:
    seen: dict[str, None] = {}
    for player_id in ids:
        if player_id:
            seen.setdefault(player_id, None)
    return list(seen)


class GameRecorder:
    """Orchestrates the multi-step write for a completed game."""

    def __init__(
        self,
        store: RowStore,
        resolver: IdentityResolver | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._resolver = resolver or IdentityResolver(store, clock=clock)
        self._clock = clock

    async def record_game(self, snapshot: GameSnapshot) -> RecordReceipt:
        """Record a game. Raises RecordStepError naming the failed step and what was already applied."""
        log = logger.bind(game_id=snapshot.id)
        applied: list[RecordStep] = []

        async def run_step(step: RecordStep, action: Callable[[], Any]) -> Any:  # noqa: ANN401
            try:
                result = await action()
            except (StoreError, IdentityResolutionError) as e:
                log.warning("record step failed", step=step, applied=[s.value for s in applied], error=str(e))
                raise RecordStepError(step, tuple(applied), str(e)) from e
            applied.append(step)
            return result

        players: list[ScoredPlayer] = await run_step(
            RecordStep.IDENTITIES,
            lambda: self._resolver.resolve(snapshot.players),
        )
        resolved = snapshot.model_copy(update={"players": tuple(players)})

        await run_step(RecordStep.SNAPSHOT, lambda: self._store.upsert(Table.GAMES, [resolved.to_row()]))

        winner = find_winner(resolved.players)
        winner_id = winner.player_id if winner is not None else None
        now = self._clock()

        player_ids = _unique(resolved.player_ids)
        if player_ids:
            await run_step(
                RecordStep.AGGREGATES,
                lambda: self._update_aggregates(resolved.players, player_ids, winner_id, now),
            )

        recorded_lineup: str | None = None
        ordered_ids = [p.player_id for p in resolved.players if p.player_id]
        if ordered_ids and len(ordered_ids) == len(resolved.players):
            recorded_lineup = await run_step(RecordStep.LINEUP, lambda: self._touch_lineup(ordered_ids, now))

        log.info(
            "game recorded",
            players=len(resolved.players),
            winner=winner_id,
            lineup_id=recorded_lineup,
        )
        return RecordReceipt(
            game_id=resolved.id,
            winner=participant_ref(winner) if winner is not None else None,
            player_ids=tuple(resolved.player_ids),
            lineup_id=recorded_lineup,
        )

    async def _update_aggregates(
        self,
        players: Sequence[ScoredPlayer],
        player_ids: list[str],
        winner_id: str | None,
        now: datetime,
    ) -> None:
        existing = {row.id: row for row in parse_player_rows(await self._store.select(Table.PLAYERS, {"id": player_ids}))}

        rows: list[PlayerRow] = []
        for player_id in player_ids:
            participant = next(p for p in players if p.player_id == player_id)
            previous = existing.get(player_id)
            display_name = " ".join(participant.name.split()) or (previous.display_name if previous else None)
            display_name = display_name or DEFAULT_DISPLAY_NAME
            rows.append(
                PlayerRow(
                    id=player_id,
                    canonical=canonicalize(display_name) or (previous.canonical_key if previous else ""),
                    display_name=display_name,
                    avatar_key=previous.avatar_key if previous else None,
                    color_hint=previous.color_hint if previous else None,
                    created_at=(previous.created_at if previous else None) or now,
                    last_played_at=now,
                    games_played=((previous.games_played if previous else None) or 0) + 1,
                    wins=((previous.wins if previous else None) or 0) + int(player_id == winner_id),
                ),
            )
        await self._store.upsert(Table.PLAYERS, [row.to_row() for row in rows])

    async def _touch_lineup(self, ordered_ids: list[str], now: datetime) -> str:
        """Increment usage of the exact ordered lineup, creating it on first use."""
        key = lineup_id(ordered_ids)
        if await self._bump_lineup(key, now):
            return key
        lineup = Lineup(id=key, size=len(ordered_ids), player_ids=tuple(ordered_ids), last_used_at=now, uses=1)
        try:
            await self._store.insert(Table.LINEUPS, [lineup.to_row()])
        except DuplicateKeyError:
            # Created concurrently by another save; count this use on top of it
            if not await self._bump_lineup(key, now):
                raise
        return key

    async def _bump_lineup(self, key: str, now: datetime) -> bool:
        found = await self._store.select(Table.LINEUPS, {"id": key})
        if not found:
            return False
        uses = found[0].get("uses") or 0
        await self._store.update(Table.LINEUPS, {"uses": uses + 1, "last_used_at": now.isoformat()}, {"id": key})
        return True
