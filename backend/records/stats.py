"""
Leaderboard aggregation.

Three sources can disagree: stored identity counters, the game history, and
duplicate identity rows that share one canonical name (legacy data or a lost
creation race). The rules:

- identity rows sharing a canonical collapse into one leaderboard row, their
  stored counters summed, represented by the most recently played row;
- stored counters win whenever a row carries them; history fills in what is
  absent (and always supplies average and high score, which are not stored);
- history appearances are matched by identity id when the snapshot has one,
  by canonical name otherwise, and names with no identity still get a row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

import structlog

from records.models import GameSnapshot, PlayerRow, most_recent_row, parse_game_rows, parse_player_rows
from scoring.canonical import canonicalize
from scoring.types import WireModel
from scoring.winner import find_winner
from shared.dal import SchemaMismatchError, Table

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from shared.dal import RowStore

logger = structlog.get_logger()

_AVERAGE_PRECISION = Decimal("0.1")


class LeaderboardRow(WireModel):
    id: str | None
    name: str
    wins: int
    games: int
    avg: float
    high: int
    last_played_at: datetime | None = None


class HistoryView(WireModel):
    history: tuple[GameSnapshot, ...]
    leaderboard: tuple[LeaderboardRow, ...]
    warnings: tuple[str, ...] = ()


def _timestamp(value: datetime | None) -> float:
    return value.timestamp() if value is not None else float("-inf")


def _latest(*values: datetime | None) -> datetime | None:
    present = [v for v in values if v is not None]
    return max(present, key=_timestamp) if present else None


@dataclass
class _Tally:
    """History-derived statistics for one player key."""

    name: str = ""
    player_id: str | None = None
    games: int = 0
    wins: int = 0
    total: int = 0
    scored: int = 0
    high: int | None = None
    last_played_at: datetime | None = None

    def add(self, name: str, final_score: int | None, played_at: datetime, *, won: bool) -> None:
        self.games += 1
        self.wins += int(won)
        if final_score is not None:
            self.total += final_score
            self.scored += 1
            self.high = final_score if self.high is None else max(self.high, final_score)
        if self.last_played_at is None or _timestamp(played_at) >= _timestamp(self.last_played_at):
            self.last_played_at = played_at
            self.name = name

    def merge(self, other: _Tally) -> None:
        if other.last_played_at is not None and _timestamp(other.last_played_at) >= _timestamp(self.last_played_at):
            self.name = other.name or self.name
            self.player_id = other.player_id or self.player_id
        elif not self.name:
            self.name = other.name
        self.player_id = self.player_id or other.player_id
        self.games += other.games
        self.wins += other.wins
        self.total += other.total
        self.scored += other.scored
        if other.high is not None:
            self.high = other.high if self.high is None else max(self.high, other.high)
        self.last_played_at = _latest(self.last_played_at, other.last_played_at)

    @property
    def average(self) -> float:
        if self.scored == 0:
            return 0.0
        return float((Decimal(self.total) / Decimal(self.scored)).quantize(_AVERAGE_PRECISION, ROUND_HALF_UP))


def tally_history(history: Iterable[GameSnapshot]) -> tuple[dict[str, _Tally], dict[str, _Tally]]:
    """Recompute per-player statistics from game snapshots.

    Returns ``(by_identity_id, by_canonical_name)``; a participant lands in
    the first map when the snapshot carries its identity id, otherwise in the
    second. Each key counts at most once per game.
    """
    by_id: dict[str, _Tally] = {}
    by_canonical: dict[str, _Tally] = {}

    for game in history:
        winner = find_winner(game.players)
        seen: set[tuple[str, str]] = set()
        for participant in game.players:
            if participant.player_id:
                key = ("id", participant.player_id)
                bucket = by_id
            else:
                canonical = canonicalize(participant.name)
                if not canonical:
                    continue
                key = ("canonical", canonical)
                bucket = by_canonical
            if key in seen:
                continue
            seen.add(key)
            tally = bucket.setdefault(key[1], _Tally(player_id=participant.player_id))
            tally.add(
                participant.name,
                participant.final_score,
                game.created_at,
                won=winner is participant,
            )
    return by_id, by_canonical


def _row_from_identities(rows: Sequence[PlayerRow], tally: _Tally) -> LeaderboardRow:
    representative = most_recent_row(rows)
    stored_games = [r.games_played for r in rows if r.games_played is not None]
    stored_wins = [r.wins for r in rows if r.wins is not None]
    stored_last = _latest(*(r.last_played_at for r in rows))

    return LeaderboardRow(
        id=representative.id,
        name=representative.display_name or tally.name or representative.canonical_key,
        wins=sum(stored_wins) if stored_wins else tally.wins,
        games=sum(stored_games) if stored_games else tally.games,
        avg=tally.average,
        high=tally.high or 0,
        last_played_at=stored_last or tally.last_played_at,
    )


def _row_from_history(tally: _Tally) -> LeaderboardRow:
    return LeaderboardRow(
        id=tally.player_id,
        name=tally.name,
        wins=tally.wins,
        games=tally.games,
        avg=tally.average,
        high=tally.high or 0,
        last_played_at=tally.last_played_at,
    )


def _is_noise(row: LeaderboardRow) -> bool:
    return row.games == 0 and row.wins == 0 and row.high == 0


def leaderboard_sort_key(row: LeaderboardRow) -> tuple[int, int, str]:
    return (-row.wins, -row.games, row.name)


def build_leaderboard(identities: Sequence[PlayerRow], history: Sequence[GameSnapshot]) -> list[LeaderboardRow]:
    """Merge stored identity counters with statistics recomputed from history."""
    by_id, by_canonical = tally_history(history)

    groups: dict[str, list[PlayerRow]] = {}
    group_of_id: dict[str, str] = {}
    for row in identities:
        # Rows without any usable name stay on their own
        key = row.canonical_key or f"id:{row.id}"
        groups.setdefault(key, []).append(row)
        group_of_id[row.id] = key

    group_tallies: dict[str, _Tally] = {key: _Tally() for key in groups}
    orphans: dict[str, _Tally] = {}

    def attach(tally: _Tally, group_key: str | None, orphan_key: str) -> None:
        if group_key is not None:
            group_tallies[group_key].merge(tally)
        else:
            orphans.setdefault(orphan_key, _Tally()).merge(tally)

    for player_id, tally in by_id.items():
        canonical = canonicalize(tally.name)
        group_key = group_of_id.get(player_id) or (canonical if canonical in groups else None)
        attach(tally, group_key, canonical or f"id:{player_id}")

    for canonical, tally in by_canonical.items():
        attach(tally, canonical if canonical in groups else None, canonical)

    rows = [_row_from_identities(members, group_tallies[key]) for key, members in groups.items()]
    rows.extend(_row_from_history(tally) for tally in orphans.values())

    leaderboard = sorted((row for row in rows if not _is_noise(row)), key=leaderboard_sort_key)
    logger.debug(
        "built leaderboard",
        identities=len(identities),
        games=len(history),
        rows=len(leaderboard),
        orphans=len(orphans),
    )
    return leaderboard


class HistoryService:
    """Read path: game history newest first plus the leaderboard."""

    def __init__(self, store: RowStore) -> None:
        self._store = store

    async def load(self) -> HistoryView:
        """Load history and leaderboard.

        A missing players table or column degrades to a history-only
        leaderboard; a missing games table degrades to empty history. Store
        unavailability propagates.
        """
        warnings: list[str] = []

        try:
            game_rows = await self._store.select(Table.GAMES, order_by="created_at", descending=True)
        except SchemaMismatchError as e:
            logger.warning("games table unreadable, returning empty history", error=str(e))
            warnings.append(f"Game history unavailable: {e}")
            game_rows = []

        try:
            player_rows = await self._store.select(Table.PLAYERS)
        except SchemaMismatchError as e:
            logger.warning("players table unreadable, leaderboard from history only", error=str(e))
            warnings.append(f"Player records unavailable, leaderboard computed from history: {e}")
            player_rows = []

        history = sorted(parse_game_rows(game_rows), key=lambda g: _timestamp(g.created_at), reverse=True)
        identities = parse_player_rows(player_rows)
        leaderboard = build_leaderboard(identities, history)
        return HistoryView(history=tuple(history), leaderboard=tuple(leaderboard), warnings=tuple(warnings))
