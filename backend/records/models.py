"""Persistence models for players, game snapshots, and lineups.

Storage rows use snake_case columns (``display_name``, ``games_played``);
the wire models use camelCase aliases for the client. Rows read back from the
store are "partial": any column other than ``id`` may be absent on rows
written by older versions, so every optional field really is optional and
absence is kept distinct from zero.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Self

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from scoring.canonical import canonicalize
from scoring.exceptions import InvalidPrestigeOrderError
from scoring.prestige import DEFAULT_PRESTIGE_ORDER, PrestigeOrder, validate_order
from scoring.types import PrestigeOrderItem, ScoredPlayer, WireModel

if TYPE_CHECKING:
    from collections.abc import Iterable

    from shared.dal import Row

logger = structlog.get_logger()

LINEUP_ID_PREFIX = "lu-"
LINEUP_ID_SEPARATOR = "|"
MIN_PLAYERS = 2
MAX_PLAYERS = 4
# Stored and imported snapshots may predate the two-player minimum
MIN_STORED_PLAYERS = 1


class PlayerRow(BaseModel, frozen=True):
    """A players-table row as read from the store, tolerant of missing columns."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    canonical: str | None = None
    display_name: str | None = None
    avatar_key: str | None = None
    color_hint: str | None = None
    created_at: datetime | None = None
    last_played_at: datetime | None = None
    games_played: int | None = None
    wins: int | None = None

    @field_validator("created_at", "last_played_at", mode="before")
    @classmethod
    def _blank_timestamp_is_missing(cls, value: Any) -> Any:  # noqa: ANN401
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def canonical_key(self) -> str:
        """Stored canonical, or one derived from the display name for rows that lack it."""
        return self.canonical or canonicalize(self.display_name)

    def to_row(self) -> Row:
        return self.model_dump(mode="json")


class PlayerIdentity(WireModel):
    """Player identity as exchanged with the client and the local cache."""

    id: str = Field(min_length=1)
    canonical: str = ""
    display_name: str = ""
    avatar_key: str | None = None
    color_hint: str | None = None
    created_at: datetime | None = None
    last_played_at: datetime | None = None
    games_played: int = 0
    wins: int = 0

    @classmethod
    def from_row(cls, row: PlayerRow) -> Self:
        return cls(
            id=row.id,
            canonical=row.canonical_key,
            display_name=row.display_name or "",
            avatar_key=row.avatar_key,
            color_hint=row.color_hint,
            created_at=row.created_at,
            last_played_at=row.last_played_at,
            games_played=row.games_played or 0,
            wins=row.wins or 0,
        )

    def to_row(self) -> Row:
        """Storage row; the canonical is always recomputed from the display name."""
        return PlayerRow(
            id=self.id,
            canonical=canonicalize(self.display_name or self.canonical),
            display_name=self.display_name,
            avatar_key=self.avatar_key,
            color_hint=self.color_hint,
            created_at=self.created_at,
            last_played_at=self.last_played_at,
            games_played=self.games_played,
            wins=self.wins,
        ).to_row()


class GameSnapshot(WireModel):
    """Immutable record of one completed game, stored as captured at save time."""

    id: str = Field(min_length=1)
    created_at: datetime
    prestige_order: tuple[PrestigeOrderItem, ...] = DEFAULT_PRESTIGE_ORDER
    players: tuple[ScoredPlayer, ...] = Field(min_length=MIN_STORED_PLAYERS, max_length=MAX_PLAYERS)
    version: int = 1

    @field_validator("prestige_order")
    @classmethod
    def _validate_prestige_order(cls, value: tuple[PrestigeOrderItem, ...]) -> PrestigeOrder:
        try:
            return validate_order(value)
        except InvalidPrestigeOrderError as e:
            raise ValueError(str(e)) from e

    @property
    def player_ids(self) -> list[str | None]:
        return [p.player_id for p in self.players]

    def to_row(self) -> Row:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "prestige_order": [item.model_dump(mode="json", by_alias=True) for item in self.prestige_order],
            "players": [p.model_dump(mode="json", by_alias=True) for p in self.players],
            "version": self.version,
        }

    @classmethod
    def from_row(cls, row: Row) -> Self:
        data: dict[str, Any] = {
            "id": row.get("id"),
            "created_at": row.get("created_at"),
            "players": row.get("players") or [],
            "version": row.get("version") or 1,
        }
        if row.get("prestige_order"):
            data["prestige_order"] = row["prestige_order"]
        return cls.model_validate(data)


class Lineup(WireModel):
    """An ordered set of identities that played together."""

    id: str = ""
    size: int = 0
    player_ids: tuple[str, ...]
    last_used_at: datetime | None = None
    uses: int = 1

    def to_row(self) -> Row:
        return {
            "id": self.id or lineup_id(self.player_ids),
            "size": self.size or len(self.player_ids),
            "player_ids": list(self.player_ids),
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
            "uses": self.uses,
        }

    @classmethod
    def from_row(cls, row: Row) -> Self:
        return cls(
            id=row["id"],
            size=row.get("size") or len(row.get("player_ids") or []),
            player_ids=tuple(row.get("player_ids") or []),
            last_used_at=row.get("last_used_at"),
            uses=row.get("uses") or 0,
        )


def lineup_id(player_ids: Iterable[str]) -> str:
    """Lineup key: order matters, so ``[A, B]`` and ``[B, A]`` are different lineups."""
    return LINEUP_ID_PREFIX + LINEUP_ID_SEPARATOR.join(player_ids)


def parse_player_rows(rows: Iterable[Row]) -> list[PlayerRow]:
    """Validate player rows, skipping (and logging) rows too malformed to use."""
    parsed: list[PlayerRow] = []
    for row in rows:
        try:
            parsed.append(PlayerRow.model_validate(row))
        except ValidationError as e:
            logger.warning("skipping malformed player row", player_id=row.get("id"), errors=e.error_count())
    return parsed


def parse_game_rows(rows: Iterable[Row]) -> list[GameSnapshot]:
    """Validate game rows, skipping (and logging) rows too malformed to use."""
    parsed: list[GameSnapshot] = []
    for row in rows:
        try:
            parsed.append(GameSnapshot.from_row(row))
        except ValidationError as e:
            logger.warning("skipping malformed game row", game_id=row.get("id"), errors=e.error_count())
    return parsed


def _recency_key(row: PlayerRow) -> tuple[float, int, float, str]:
    last_played = row.last_played_at.timestamp() if row.last_played_at else float("-inf")
    created = row.created_at.timestamp() if row.created_at else float("inf")
    return (last_played, row.games_played or 0, -created, row.id)


def most_recent_row(rows: Iterable[PlayerRow]) -> PlayerRow:
    """Representative of rows sharing a canonical: latest played, then most games, then oldest."""
    return max(rows, key=_recency_key)
