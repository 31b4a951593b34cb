"""Verifies name canonicalization and the one-edit fuzzy match used for identity suggestions."""

from __future__ import annotations

import pytest

from scoring.canonical import canonicalize, edit_distance, is_close_match


class TestCanonicalize:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("  Ana   María ", "ana maria"),
            ("Żoë!!", "zoe"),
            ("", ""),
            ("   ", ""),
            ("--Sam--", "sam"),
            ("Jo\tBeth", "jo beth"),
            ("ÉMILE", "emile"),
            ("R2-D2", "r2-d2"),
            ("!!!", ""),
        ],
    )
    def test_examples(self, raw, expected):
        assert canonicalize(raw) == expected

    def test_none_is_empty(self):
        assert canonicalize(None) == ""

    @pytest.mark.parametrize(
        "raw",
        ["  Ana   María ", "Żoë!!", "İstanbul", "a ́ b", "㎒ Team", "  ..Ödön. ", "ﬁona", "x"],
    )
    def test_idempotent(self, raw):
        once = canonicalize(raw)
        assert canonicalize(once) == once


class TestEditDistance:
    @pytest.mark.parametrize(
        ("a", "b", "distance"),
        [
            ("sam", "sam", 0),
            ("sam", "pam", 1),
            ("sam", "sa", 1),
            ("sam", "same", 1),
            ("kitten", "sitting", 3),
            ("", "abc", 3),
        ],
    )
    def test_distance(self, a, b, distance):
        assert edit_distance(a, b) == distance
        assert edit_distance(b, a) == distance


class TestIsCloseMatch:
    def test_one_edit_is_close(self):
        assert is_close_match("maria", "marie")

    def test_identical_is_close(self):
        assert is_close_match("maria", "maria")

    def test_two_edits_is_not_close(self):
        assert not is_close_match("maria", "mario1")

    def test_length_gap_short_circuits(self):
        assert not is_close_match("al", "alice")
