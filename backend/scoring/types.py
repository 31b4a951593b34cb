"""Scoring models for the prestige track, player tallies, and score breakdowns.

All models are frozen. Attributes are snake_case; payloads exchanged with the
client use camelCase aliases (``eyelineCountForX5``, ``finalScore``), so every
model accepts either form on input and dumps with ``by_alias=True`` on output.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

Multiplier = Literal[5, 4, 3, 2]

MAX_TILES_PER_COLOR = 20
MAX_DECOR_TILES = 20


class Color(StrEnum):
    RED = "red"
    BLUE = "blue"
    YELLOW = "yellow"
    GREEN = "green"


COLORS: tuple[Color, ...] = (Color.RED, Color.BLUE, Color.YELLOW, Color.GREEN)


class WireModel(BaseModel):
    """Base for models that travel over the wire with camelCase keys."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class PrestigeOrderItem(WireModel):
    color: Color
    multiplier: Multiplier


class Paintings(WireModel):
    """Painting tile counts per color."""

    red: int = Field(default=0, ge=0, le=MAX_TILES_PER_COLOR)
    blue: int = Field(default=0, ge=0, le=MAX_TILES_PER_COLOR)
    yellow: int = Field(default=0, ge=0, le=MAX_TILES_PER_COLOR)
    green: int = Field(default=0, ge=0, le=MAX_TILES_PER_COLOR)

    def count(self, color: Color) -> int:
        return getattr(self, color.value)

    def total(self) -> int:
        return sum(self.count(c) for c in COLORS)


class Penalties(WireModel):
    empty_corners: int = Field(default=0, ge=0)
    unplaced_paintings: int = Field(default=0, ge=0)


class PlayerRoundInput(WireModel):
    """Raw tallies entered for one player.

    ``eyeline_count_for_x5`` is stored as entered; it is clamped to the bonus
    color's tile count at scoring time, never rejected.
    """

    id: str = ""
    name: str = ""
    paintings: Paintings = Field(default_factory=Paintings)
    eyeline_count_for_x5: int = Field(default=0, ge=0)
    decor_count: int = Field(default=0, ge=0, le=MAX_DECOR_TILES)
    complete_board: bool = False
    penalties: Penalties = Field(default_factory=Penalties)
    tie_break_winner: bool = False  # manual tie-break override chosen at the table


class ColorPoints(WireModel):
    tiles: int
    multiplier: int
    points: int


class EyelinePoints(WireModel):
    tiles: int
    per_tile: int
    points: int


class BonusPoints(WireModel):
    complete_board: int = 0


class PenaltyPoints(WireModel):
    """Penalty points (count x 2), reported as positive numbers."""

    empty_corners: int = 0
    unplaced_paintings: int = 0

    def total(self) -> int:
        return self.empty_corners + self.unplaced_paintings


class ScoreBreakdown(WireModel):
    per_color: dict[Color, ColorPoints]
    eyeline: EyelinePoints
    decor: int
    bonuses: BonusPoints
    penalties: PenaltyPoints

    def painting_sum(self) -> int:
        return sum(item.points for item in self.per_color.values())


class ScoredPlayer(PlayerRoundInput):
    """A player's tallies together with the result captured at scoring time."""

    player_id: str | None = None  # resolved identity id, None until resolved
    final_score: int | None = None
    breakdown: ScoreBreakdown | None = None

    @model_validator(mode="after")
    def _score_and_breakdown_together(self) -> Self:
        if self.breakdown is not None and self.final_score is None:
            raise ValueError("breakdown requires a final score")
        return self
