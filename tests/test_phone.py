"""Tests for phone number normalization and matching."""

from __future__ import annotations

import pytest

from lead_crm.core.phone import PhoneNormalizer, normalize_phone, phones_match


class TestNormalize:
    """Tests for PhoneNormalizer.normalize."""

    def test_local_number_expands_to_all_forms(self):
        assert normalize_phone("91234567") == {"91234567", "6591234567", "+6591234567"}

    def test_prefixed_number_includes_local_form(self):
        forms = normalize_phone("+65 9123 4567")
        assert "91234567" in forms
        assert "+6591234567" in forms
        assert "6591234567" in forms

    def test_formatting_characters_are_stripped(self):
        assert normalize_phone("(65) 9123-4567") == normalize_phone("6591234567")

    def test_unrecognised_length_keeps_digits(self):
        assert normalize_phone("12345") == {"12345", "+12345"}

    @pytest.mark.parametrize("raw", [None, "", "n/a", "   "])
    def test_no_digits_gives_empty_set(self, raw):
        assert normalize_phone(raw) == set()

    def test_numeric_input(self):
        assert "91234567" in normalize_phone(91234567)


class TestMatching:
    """Tests for phone matching."""

    def test_feed_number_matches_stored_number(self):
        assert phones_match("91234567", "+6591234567")

    def test_both_prefixed_forms_match(self):
        assert phones_match("6591234567", "+65 9123 4567")

    def test_different_numbers_do_not_match(self):
        assert not phones_match("91234567", "+6591234568")

    def test_substring_is_not_a_match(self):
        # 8 trailing digits of a foreign number are not a local match
        assert not phones_match("91234567", "+4491234567")

    def test_empty_never_matches(self):
        assert not phones_match(None, None)
        assert not phones_match("", "+6591234567")


class TestCanonical:
    """Tests for storage and payload forms."""

    def test_canonical_adds_country_code(self):
        assert PhoneNormalizer().canonical("9123 4567") == "+6591234567"

    def test_canonical_keeps_prefixed_number(self):
        assert PhoneNormalizer().canonical("6591234567") == "+6591234567"

    def test_local_part_strips_country_code(self):
        assert PhoneNormalizer().local_part("+6591234567") == "91234567"

    def test_other_country_settings(self):
        normalizer = PhoneNormalizer(country_code="60", local_length=9)
        assert normalizer.matches("123456789", "+60123456789")
        assert not normalizer.matches("123456789", "+65123456789")
