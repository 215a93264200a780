"""Tests for shared utility functions."""

import pytest

from altq.utils import (
    is_valid_email,
    mask_destination,
    normalize_phone,
    to_e164,
    to_local_digits,
)


class TestNormalizePhone:
    def test_strips_spaces(self):
        assert normalize_phone("98765 43210") == "9876543210"

    def test_strips_dashes(self):
        assert normalize_phone("98765-43210") == "9876543210"

    def test_strips_parentheses(self):
        assert normalize_phone("(98765) 43210") == "9876543210"

    def test_preserves_leading_plus(self):
        assert normalize_phone("+91 98765 43210") == "+919876543210"

    def test_strips_whitespace(self):
        assert normalize_phone("  9876543210  ") == "9876543210"


class TestLocalDigits:
    def test_strips_country_code(self):
        assert to_local_digits("+91 98765 43210") == "9876543210"

    def test_strips_bare_country_code(self):
        assert to_local_digits("919876543210") == "9876543210"

    def test_local_number_starting_with_91_kept(self):
        assert to_local_digits("9198765432") == "9198765432"


class TestToE164:
    @pytest.mark.parametrize("value", ["9876543210", "6123456789", "+919876543210", "98765 43210"])
    def test_valid(self, value):
        assert to_e164(value).startswith("+91")
        assert len(to_e164(value)) == 13

    @pytest.mark.parametrize("value", ["", "987654321", "98765432100", "5876543210", "+1 555 123 4567", "phone"])
    def test_invalid(self, value):
        assert to_e164(value) is None


class TestEmail:
    @pytest.mark.parametrize("value,expected", [
        ("owner@salon.com", True),
        (" owner@salon.com ", True),
        ("owner@salon", False),
        ("owner salon@x.com", False),
        ("", False),
    ])
    def test_is_valid_email(self, value, expected):
        assert is_valid_email(value) is expected


class TestMaskDestination:
    def test_phone(self):
        assert mask_destination("+919876543210") == "+91******3210"

    def test_email(self):
        assert mask_destination("priya@example.com") == "p****@example.com"

    def test_short_value_unchanged(self):
        assert mask_destination("123") == "123"
