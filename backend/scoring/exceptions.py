"""Typed exceptions for scoring rule violations."""


class ScoringError(Exception):
    """Base exception for scoring and prestige track rule violations."""


class InvalidPrestigeOrderError(ScoringError):
    """Prestige order is not a bijection of the four colors onto multipliers 5, 4, 3, 2."""


class PrestigeLockedError(ScoringError):
    """Prestige order cannot change once scoring input has been entered."""
