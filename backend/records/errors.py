"""Typed exceptions for the record-keeping services.

Store failures arrive as ``shared.dal`` errors; the services wrap them so the
HTTP boundary can tell which step of a multi-step write failed and what had
already been applied.
"""

from __future__ import annotations

from enum import StrEnum


class RecordsError(Exception):
    """Base exception for record-keeping failures."""


class InvalidPayloadError(RecordsError):
    """A write payload is malformed; rejected before any store call."""


class RecordStep(StrEnum):
    IDENTITIES = "identities"
    SNAPSHOT = "snapshot"
    AGGREGATES = "aggregates"
    LINEUP = "lineup"


class ImportStep(StrEnum):
    PLAYERS = "players"
    GAMES = "games"
    LINEUPS = "lineups"


class IdentityResolutionError(RecordsError):
    """Identities could not be resolved; nothing was committed for the unresolved names."""


class RecordStepError(RecordsError):
    """One step of recording a game failed after the listed steps succeeded.

    An empty ``applied_steps`` means nothing was written and the whole
    operation can be retried. Otherwise the snapshot may already be stored
    with stale aggregates; the leaderboard recomputes from history, so
    retrying with the same game id is safe.
    """

    def __init__(self, step: RecordStep, applied_steps: tuple[RecordStep, ...], reason: str) -> None:
        self.step = step
        self.applied_steps = applied_steps
        self.reason = reason
        super().__init__(f"{step.value} step failed: {reason}")

    @property
    def partially_applied(self) -> bool:
        return bool(self.applied_steps)


class ImportStepError(RecordsError):
    """A bulk import step failed; earlier steps stay applied."""

    def __init__(self, step: ImportStep, reason: str) -> None:
        self.step = step
        self.reason = reason
        super().__init__(f"import of {step.value} failed: {reason}")
