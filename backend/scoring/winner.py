"""Winner determination for a scored game.

Ranking among participants with a final score:
1. highest final score;
2. among players tied on top, the first one flagged as manual tie-break winner
   (in input order) wins outright;
3. otherwise highest decor count, then name ascending.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from scoring.types import ScoredPlayer


def find_winner(participants: Sequence[ScoredPlayer]) -> ScoredPlayer | None:
    """Return the winning participant, or None when nobody has a final score."""
    scored = [p for p in participants if p.final_score is not None]
    if not scored:
        return None

    top_score = max(p.final_score for p in scored if p.final_score is not None)
    tied = [p for p in scored if p.final_score == top_score]
    if len(tied) == 1:
        return tied[0]

    for participant in tied:
        if participant.tie_break_winner:
            return participant

    return min(tied, key=lambda p: (-p.decor_count, p.name))


def participant_ref(participant: ScoredPlayer) -> str:
    """Identity id when resolved, otherwise the display name."""
    return participant.player_id or participant.name


def resolve_winner(participants: Sequence[ScoredPlayer]) -> str | None:
    winner = find_winner(participants)
    if winner is None:
        return None
    return participant_ref(winner)
