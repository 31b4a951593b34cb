"""
Score calculation for a single player's tallies.

Final score = painting points (tiles x color multiplier)
            + eyeline points (bonus-color tiles flagged eyeline, x3)
            + decor points (x1)
            + complete board bonus (5)
            - penalties ((empty corners + unplaced paintings) x 2).

The result may be negative and is never clamped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

from scoring.prestige import bonus_color, multiplier_map
from scoring.types import (
    COLORS,
    BonusPoints,
    ColorPoints,
    EyelinePoints,
    PenaltyPoints,
    ScoreBreakdown,
    ScoredPlayer,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from scoring.prestige import PrestigeOrder
    from scoring.types import Color, Multiplier, PlayerRoundInput

EYELINE_POINTS_PER_TILE = 3
DECOR_POINTS_PER_TILE = 1
COMPLETE_BOARD_BONUS = 5
PENALTY_POINTS_PER_COUNT = 2


class ScoreResult(NamedTuple):
    final_score: int
    breakdown: ScoreBreakdown


def compute_score(
    player: PlayerRoundInput,
    multipliers: Mapping[Color, Multiplier],
    x5_color: Color,
) -> ScoreResult:
    """Return the final score and itemized breakdown for one player. Pure."""
    per_color = {
        color: ColorPoints(
            tiles=player.paintings.count(color),
            multiplier=multipliers[color],
            points=player.paintings.count(color) * multipliers[color],
        )
        for color in COLORS
    }

    eyeline_tiles = min(player.eyeline_count_for_x5, player.paintings.count(x5_color))
    eyeline = EyelinePoints(
        tiles=eyeline_tiles,
        per_tile=EYELINE_POINTS_PER_TILE,
        points=eyeline_tiles * EYELINE_POINTS_PER_TILE,
    )
    decor_points = player.decor_count * DECOR_POINTS_PER_TILE
    bonuses = BonusPoints(complete_board=COMPLETE_BOARD_BONUS if player.complete_board else 0)
    penalties = PenaltyPoints(
        empty_corners=player.penalties.empty_corners * PENALTY_POINTS_PER_COUNT,
        unplaced_paintings=player.penalties.unplaced_paintings * PENALTY_POINTS_PER_COUNT,
    )

    breakdown = ScoreBreakdown(
        per_color=per_color,
        eyeline=eyeline,
        decor=decor_points,
        bonuses=bonuses,
        penalties=penalties,
    )
    final_score = (
        breakdown.painting_sum() + eyeline.points + decor_points + bonuses.complete_board - penalties.total()
    )
    return ScoreResult(final_score, breakdown)


def standings_key(player: ScoredPlayer) -> tuple[int, int, str]:
    """Sort key for results: final score desc, decor count desc, name asc."""
    return (-(player.final_score or 0), -player.decor_count, player.name)


def score_round(order: PrestigeOrder, players: Sequence[PlayerRoundInput]) -> list[ScoredPlayer]:
    """Score every player against the prestige order, keeping input order."""
    multipliers = multiplier_map(order)
    x5_color = bonus_color(order)

    scored: list[ScoredPlayer] = []
    for player in players:
        final_score, breakdown = compute_score(player, multipliers, x5_color)
        data = player.model_dump()
        data.update(final_score=final_score, breakdown=breakdown)
        scored.append(ScoredPlayer.model_validate(data))
    return scored


def score_players(order: PrestigeOrder, players: Sequence[PlayerRoundInput]) -> list[ScoredPlayer]:
    """Score every player and rank them for the results view."""
    return sorted(score_round(order, players), key=standings_key)
