"""Unit tests for review queue position helpers."""

from __future__ import annotations

import pytest

from lukaut.db.models import ViolationModel
from lukaut.violations.review_queue import first_pending, next_pending, parse_position


def violations(*statuses: str) -> list[ViolationModel]:
    return [ViolationModel(description=f"v{i}", status=s) for i, s in enumerate(statuses)]


class TestParsePosition:
    @pytest.mark.parametrize("raw,expected", [("0", 0), ("4", 4), ("-1", -1)])
    def test_integers(self, raw, expected):
        assert parse_position(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "next", "1.5"])
    def test_missing_or_garbage(self, raw):
        assert parse_position(raw) is None


class TestFirstPending:
    def test_finds_first(self):
        assert first_pending(violations("confirmed", "pending", "pending")) == 1

    def test_none_pending(self):
        assert first_pending(violations("confirmed", "rejected")) is None

    def test_empty(self):
        assert first_pending([]) is None


class TestNextPending:
    def test_moves_forward(self):
        items = violations("pending", "confirmed", "pending", "pending")
        assert next_pending(items, 0) == 2

    def test_wraps_around(self):
        items = violations("pending", "confirmed", "confirmed")
        assert next_pending(items, 1) == 0

    def test_returns_current_if_only_pending(self):
        items = violations("confirmed", "pending", "rejected")
        assert next_pending(items, 1) == 1

    def test_nothing_pending(self):
        assert next_pending(violations("confirmed", "rejected"), 0) is None

    def test_empty(self):
        assert next_pending([], 0) is None
