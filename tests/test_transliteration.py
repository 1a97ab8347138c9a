"""Tests for Latin/Cyrillic name transliteration."""

import pytest

from bepaid_reconciler.matching.transliteration import (
    match_card_name_to_profile,
    names_match,
    transliterate_to_cyrillic,
    transliterate_to_latin,
)


class TestTransliterateToCyrillic:
    """Tests for card holder → Cyrillic."""

    def test_known_names_use_corrections(self):
        """Test that passport spellings map to the Russian form."""
        assert transliterate_to_cyrillic("SVIATLANA IVANOVA") == "Светлана Иванова"
        assert transliterate_to_cyrillic("ALIAKSANDR HANCHARUK") == "Александр Гончарук"

    def test_letter_by_letter(self):
        """Test the fallback for unknown words."""
        assert transliterate_to_cyrillic("ZHUK") == "Жук"

    def test_multi_letter_combinations_first(self):
        """Test that SHCH wins over SH + CH."""
        assert transliterate_to_cyrillic("SHCHUKA") == "Щука"

    def test_empty(self):
        """Test empty input."""
        assert transliterate_to_cyrillic("") == ""


class TestTransliterateToLatin:
    """Tests for Cyrillic → Latin."""

    def test_simple_name(self):
        """Test uppercase Cyrillic letters."""
        assert transliterate_to_latin("ЖУК") == "ZHUK"

    def test_non_cyrillic_passthrough(self):
        """Test that other characters are kept."""
        assert transliterate_to_latin("A-1") == "A-1"


class TestNamesMatch:
    """Tests for fuzzy name comparison."""

    def test_identical_after_normalization(self):
        """Test case and punctuation insensitivity."""
        assert names_match("Анна Иванова", "анна иванова!")

    def test_word_order_ignored(self):
        """Test reversed first and last name."""
        assert names_match("Гончарук Светлана", "Светлана Гончарук")

    def test_middle_name_allowed(self):
        """Test that a patronymic on one side does not block a match."""
        assert names_match("Светлана Гончарук", "Гончарук Светлана Петровна")

    def test_single_word_never_fuzzy(self):
        """Test that one shared word is not enough."""
        assert not names_match("Светлана", "Светлана Гончарук")
        assert not names_match("Светлана Иванова", "Светлана Гончарук")

    def test_empty(self):
        """Test empty names."""
        assert not names_match("", "Анна Иванова")


class TestMatchCardNameToProfile:
    """Tests for card holder vs. profile name."""

    def test_transliterated_match(self):
        """Test the Cyrillic route."""
        assert match_card_name_to_profile("SVIATLANA HANCHARUK", "Гончарук Светлана")

    def test_name_without_corrections(self):
        """Test a surname with no listed spelling."""
        assert match_card_name_to_profile("PAVEL ZHUK", "Павел Жук")

    def test_different_person(self):
        """Test that different surnames do not match."""
        assert not match_card_name_to_profile("SVIATLANA IVANOVA", "Светлана Гончарук")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
