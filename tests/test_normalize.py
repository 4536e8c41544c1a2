"""Tests for price and text normalization."""

import pytest

from normalize import clean_whitespace, parse_count, parse_price, slug


class TestParsePrice:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("342,39 TL", 342.39),
            ("399,99 TL", 399.99),
            ("1.299,99 TL", 1299.99),
            ("1.299 TL", 1299.0),
            ("12.345.678 TL", 12345678.0),
            ("₺ 89,90", 89.9),
            ("$1,299.99", 1299.99),
            ("19.99", 19.99),
            ("1\xa0250,00 TL", 1250.0),
        ],
    )
    def test_locale_formats(self, raw, expected):
        assert parse_price(raw) == expected

    @pytest.mark.parametrize("raw", ["", None, "TL", "Fiyat yok", "--"])
    def test_unparsable_returns_zero(self, raw):
        assert parse_price(raw) == 0.0


class TestSlug:
    def test_lowercases_and_hyphenates(self):
        assert slug("  XL Long  ") == "xl-long"

    def test_collapses_whitespace_runs(self):
        assert slug("38 \t 40") == "38-40"

    def test_empty(self):
        assert slug("") == ""
        assert slug(None) == ""


class TestCleanWhitespace:
    def test_collapses_newlines_and_tabs(self):
        assert clean_whitespace("  Suni \n\n Deri\tÇanta ") == "Suni Deri Çanta"

    def test_nbsp(self):
        assert clean_whitespace("24\xa0saatte kargoda") == "24 saatte kargoda"

    def test_none(self):
        assert clean_whitespace(None) == ""


class TestParseCount:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("103 favori", 103),
            ("2 Değerlendirme", 2),
            ("1,2B favori", 1200),
            ("2.345", 2345),
            ("12.345.678", 12345678),
            ("1,234,567 favori", 1234567),
            ("(15)", 15),
            ("", 0),
            ("yok", 0),
        ],
    )
    def test_counts(self, raw, expected):
        assert parse_count(raw) == expected
