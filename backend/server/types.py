"""Request bodies accepted by the scorer API."""

from pydantic import Field

from records.models import MAX_PLAYERS, MIN_PLAYERS
from scoring.prestige import DEFAULT_PRESTIGE_ORDER
from scoring.types import PlayerRoundInput, PrestigeOrderItem, WireModel


class ScoreRequest(WireModel):
    prestige_order: tuple[PrestigeOrderItem, ...] = DEFAULT_PRESTIGE_ORDER
    players: tuple[PlayerRoundInput, ...] = Field(min_length=MIN_PLAYERS, max_length=MAX_PLAYERS)


class ResetRequest(WireModel):
    keep_players: bool = True
