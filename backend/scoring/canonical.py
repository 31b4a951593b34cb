"""Player name canonicalization and fuzzy matching.

The canonical form is the deduplication key for player identities: lowercase,
compatibility-decomposed with combining diacritics (U+0300..U+036F) removed,
whitespace runs collapsed, and leading/trailing characters that are not
letters or digits stripped. An empty canonical means "no identity".
"""

from __future__ import annotations

import re
import unicodedata

from rapidfuzz.distance import Levenshtein

_WHITESPACE_RUN = re.compile(r"\s+")
_COMBINING_DIACRITICS = re.compile("[\u0300-\u036f]")


def _is_letter_or_digit(ch: str) -> bool:
    return unicodedata.category(ch)[0] in {"L", "N"}


def canonicalize(raw: str | None) -> str:
    """Normalize a free-text player name into its lookup key. Idempotent."""
    if not raw or not raw.strip():
        return ""
    # Lowercasing can introduce combining marks (e.g. "İ"), so decompose after it.
    text = unicodedata.normalize("NFKD", unicodedata.normalize("NFKD", raw).lower())
    text = _COMBINING_DIACRITICS.sub("", text)
    text = _WHITESPACE_RUN.sub(" ", text).strip()

    start, end = 0, len(text)
    while start < end and not _is_letter_or_digit(text[start]):
        start += 1
    while end > start and not _is_letter_or_digit(text[end - 1]):
        end -= 1
    return text[start:end]


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance (insertions, deletions, substitutions)."""
    return Levenshtein.distance(a, b)


def is_close_match(a: str, b: str) -> bool:
    """True when two canonical names are at most one edit apart.

    Only used to suggest existing identities; never merges them.
    """
    return Levenshtein.distance(a, b, score_cutoff=1) <= 1
