"""Prestige track: the ordered assignment of scoring multipliers to colors.

Position ``i`` (0-indexed) always carries multiplier ``5 - i``. The only
mutation is swapping two adjacent colors, after which multipliers are
reassigned by position. The track locks as soon as any player has entered
scoring input for the game in progress.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from scoring.exceptions import InvalidPrestigeOrderError, PrestigeLockedError
from scoring.types import COLORS, Color, Multiplier, PrestigeOrderItem

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from scoring.types import PlayerRoundInput

PrestigeOrder = tuple[PrestigeOrderItem, ...]

POSITION_MULTIPLIERS: tuple[Multiplier, ...] = (5, 4, 3, 2)

DEFAULT_PRESTIGE_ORDER: PrestigeOrder = (
    PrestigeOrderItem(color=Color.BLUE, multiplier=5),
    PrestigeOrderItem(color=Color.GREEN, multiplier=4),
    PrestigeOrderItem(color=Color.RED, multiplier=3),
    PrestigeOrderItem(color=Color.YELLOW, multiplier=2),
)


def order_from_colors(colors: Sequence[Color]) -> PrestigeOrder:
    """Build an order from colors listed highest multiplier first."""
    if len(colors) != len(COLORS) or set(colors) != set(COLORS):
        raise InvalidPrestigeOrderError(f"Prestige order must list each color exactly once, got {list(colors)}")
    return tuple(
        PrestigeOrderItem(color=color, multiplier=multiplier)
        for color, multiplier in zip(colors, POSITION_MULTIPLIERS, strict=True)
    )


def validate_order(items: Iterable[PrestigeOrderItem]) -> PrestigeOrder:
    """Check the position-to-multiplier invariant and return the order as a tuple."""
    order = tuple(items)
    normalized = order_from_colors([item.color for item in order])
    if normalized != order:
        raise InvalidPrestigeOrderError("Prestige multipliers must be 5, 4, 3, 2 by position")
    return order


def multiplier_map(order: PrestigeOrder) -> dict[Color, Multiplier]:
    return {item.color: item.multiplier for item in order}


def bonus_color(order: PrestigeOrder) -> Color:
    """Return the color holding the x5 multiplier (eligible for the eyeline bonus)."""
    for item in order:
        if item.multiplier == POSITION_MULTIPLIERS[0]:
            return item.color
    raise InvalidPrestigeOrderError("Prestige order has no x5 color")


def has_any_input(players: Iterable[PlayerRoundInput]) -> bool:
    """Return True once any player has entered a non-default tally."""
    for player in players:
        if player.eyeline_count_for_x5 > 0 or player.decor_count > 0 or player.complete_board:
            return True
        if player.penalties.empty_corners > 0 or player.penalties.unplaced_paintings > 0:
            return True
        if player.paintings.total() > 0:
            return True
    return False


def move_color(
    order: PrestigeOrder,
    index: int,
    direction: Literal[-1, 1],
    *,
    locked: bool = False,
) -> PrestigeOrder:
    """Swap the color at ``index`` with its neighbour in ``direction``.

    Moving past either end of the track is a no-op.
    """
    if locked:
        raise PrestigeLockedError("Prestige order is locked once scoring input has been entered")
    target = index + direction
    if not (0 <= index < len(order)) or not (0 <= target < len(order)):
        return order
    colors = [item.color for item in order]
    colors[index], colors[target] = colors[target], colors[index]
    return order_from_colors(colors)


def clamp_eyeline(player: PlayerRoundInput, color: Color) -> PlayerRoundInput:
    """Clamp the stored eyeline count to the tile count of the bonus color.

    Called whenever tallies change so a reduced tile count never leaves a
    stale eyeline count behind.
    """
    limit = player.paintings.count(color)
    if player.eyeline_count_for_x5 <= limit:
        return player
    return player.model_copy(update={"eyeline_count_for_x5": limit})
