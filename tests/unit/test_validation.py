"""Unit tests for form input validation helpers."""

from __future__ import annotations

from datetime import date

import pytest

from lukaut.utils.validation import (
    clean,
    email_error,
    length_error,
    normalize_email,
    parse_date,
    password_error,
    required_error,
)


class TestClean:
    def test_strips_whitespace(self):
        assert clean("  Acme  ") == "Acme"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank_is_none(self, value):
        assert clean(value) is None


class TestEmail:
    def test_normalize(self):
        assert normalize_email("  Pat@Example.COM ") == "pat@example.com"

    def test_valid(self):
        assert email_error("pat@example.com") is None

    def test_required(self):
        assert email_error("") == "Email is required"

    def test_optional_blank(self):
        assert email_error(None, required=False) is None

    @pytest.mark.parametrize(
        "value",
        ["pat", "pat@", "@example.com", "pat@example", "pat@@example.com", "pat@exa mple.com", "pat@example..com"],
    )
    def test_invalid_format(self, value):
        assert email_error(value) == "Invalid email format"

    def test_too_long(self):
        assert email_error("a" * 250 + "@example.com") == "Email is too long"


class TestPassword:
    def test_valid(self):
        assert password_error("longenough") is None

    def test_required(self):
        assert password_error("") == "Password is required"

    def test_too_short(self):
        assert password_error("short") == "Password must be at least 8 characters"

    def test_too_long_in_bytes(self):
        # 40 two-byte characters exceed bcrypt's 72 byte limit
        assert password_error("é" * 40) == "Password must be at most 72 characters"


class TestRequiredAndLength:
    def test_required_missing(self):
        assert required_error("  ", "Title") == "Title is required"

    def test_required_too_long(self):
        assert required_error("x" * 201, "Title", max_length=200) == "Title must be 200 characters or less"

    def test_length_ok_when_empty(self):
        assert length_error(None, "Phone", 50) is None

    def test_length_too_long(self):
        assert length_error("1" * 51, "Phone", 50) == "Phone must be 50 characters or less"


class TestParseDate:
    def test_iso_date(self):
        assert parse_date("2025-03-14") == date(2025, 3, 14)

    def test_date_passthrough(self):
        today = date.today()
        assert parse_date(today) is today

    @pytest.mark.parametrize("value", [None, "", "14/03/2025", "2025-02-30"])
    def test_blank_or_malformed(self, value):
        assert parse_date(value) is None
