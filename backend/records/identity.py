"""Resolve free-text player names to durable identities.

Names are matched on their canonical form. Unknown canonicals get a new
identity; a concurrent writer creating the same canonical first shows up as a
key conflict (when the store enforces unique canonicals) and is resolved by
re-fetching and adopting the winner's id. Without a uniqueness constraint a
race can still leave two rows for one canonical; the leaderboard merges them.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

from records.errors import IdentityResolutionError
from records.models import PlayerIdentity, PlayerRow, most_recent_row, parse_player_rows
from scoring.canonical import canonicalize, edit_distance, is_close_match
from scoring.types import WireModel
from shared.dal import DuplicateKeyError, Table

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from scoring.types import ScoredPlayer
    from shared.dal import RowStore

logger = structlog.get_logger()

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_SEARCH_LIMIT = 8


class IdentitySearchResult(WireModel):
    query: str
    canonical: str
    matches: tuple[PlayerIdentity, ...] = ()
    suggestions: tuple[PlayerIdentity, ...] = ()  # close but not identical names


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _display_name(raw: str) -> str:
    return " ".join(raw.split())


def group_by_canonical(rows: Iterable[PlayerRow]) -> dict[str, list[PlayerRow]]:
    groups: dict[str, list[PlayerRow]] = defaultdict(list)
    for row in rows:
        groups[row.canonical_key].append(row)
    return groups


class IdentityResolver:
    """Fill in identity ids for game participants, creating identities on first use."""

    def __init__(
        self,
        store: RowStore,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._max_attempts = max_attempts
        self._id_factory = id_factory
        self._clock = clock

    async def resolve(self, participants: Sequence[ScoredPlayer]) -> list[ScoredPlayer]:
        """Return the participants with ``player_id`` filled wherever the name is non-empty.

        Order and every other field are preserved. Participants that already
        carry an id are left untouched. Store failures propagate unchanged and
        leave nothing half-created.
        """
        display_names: dict[str, str] = {}
        for participant in participants:
            if participant.player_id:
                continue
            canonical = canonicalize(participant.name)
            if canonical:
                display_names.setdefault(canonical, _display_name(participant.name))

        if not display_names:
            return list(participants)

        resolved = await self._resolve_canonicals(display_names)
        result: list[ScoredPlayer] = []
        for participant in participants:
            canonical = canonicalize(participant.name)
            if participant.player_id or canonical not in resolved:
                result.append(participant)
            else:
                result.append(participant.model_copy(update={"player_id": resolved[canonical]}))
        return result

    async def search(self, query: str, *, limit: int = DEFAULT_SEARCH_LIMIT) -> IdentitySearchResult:
        """Find identities whose canonical equals the query, plus near-miss suggestions.

        Suggestions are one edit away or start with the query; they are only
        offered, never merged.
        """
        canonical = canonicalize(query)
        if not canonical:
            return IdentitySearchResult(query=query, canonical="")

        rows = parse_player_rows(await self._store.select(Table.PLAYERS))
        groups = group_by_canonical(rows)

        matches = sorted(groups.get(canonical, []), key=lambda r: r.id)
        if matches:
            representative = most_recent_row(matches)
            matches = [representative, *(r for r in matches if r.id != representative.id)]

        candidates = [
            (key, most_recent_row(group))
            for key, group in groups.items()
            if key and key != canonical and (is_close_match(canonical, key) or key.startswith(canonical))
        ]
        candidates.sort(key=lambda item: (edit_distance(canonical, item[0]), -(item[1].games_played or 0), item[0]))

        return IdentitySearchResult(
            query=query,
            canonical=canonical,
            matches=tuple(PlayerIdentity.from_row(r) for r in matches[:limit]),
            suggestions=tuple(PlayerIdentity.from_row(row) for _, row in candidates[:limit]),
        )

    async def _resolve_canonicals(self, display_names: dict[str, str]) -> dict[str, str]:
        """Map each canonical to an identity id, creating the missing ones.

        Each attempt fetches what exists and inserts the rest as one
        all-or-nothing batch. A key conflict means another writer got there
        first; the next attempt picks up its row.
        """
        resolved: dict[str, str] = {}
        pending = set(display_names)

        for attempt in range(1, self._max_attempts + 1):
            rows = parse_player_rows(await self._store.select(Table.PLAYERS, {"canonical": ["", *sorted(pending)]}))
            # rows written without a canonical are matched on their display name
            rows += parse_player_rows(await self._store.select(Table.PLAYERS, {"canonical": None}))
            for canonical, group in group_by_canonical(rows).items():
                if canonical in pending:
                    resolved[canonical] = most_recent_row(group).id
            pending -= resolved.keys()
            if not pending:
                return resolved

            now = self._clock()
            new_rows = [
                PlayerRow(
                    id=self._id_factory(),
                    canonical=canonical,
                    display_name=display_names[canonical],
                    created_at=now,
                    games_played=0,
                    wins=0,
                )
                for canonical in sorted(pending)
            ]
            try:
                await self._store.insert(Table.PLAYERS, [row.to_row() for row in new_rows])
            except DuplicateKeyError:
                logger.info("identity creation conflict, re-fetching", attempt=attempt, pending=sorted(pending))
                continue

            for row in new_rows:
                resolved[row.canonical_key] = row.id
            logger.info("created player identities", count=len(new_rows), canonicals=sorted(pending))
            return resolved

        raise IdentityResolutionError(
            f"Could not resolve identities for {sorted(pending)} after {self._max_attempts} attempts",
        )
