"""Tests for number formatting and string guards"""
import pytest

from engine.formatting import fixed, format_compact, format_price, pct, signed_pct
from engine.sanitize import clean_text, escape_html, is_valid_solana_address, sanitize_url


class TestFixed:
    def test_half_up(self):
        assert fixed(12.5) == "13"
        assert fixed(0.125, 2) == "0.13"
        assert fixed(-2.5) == "-3"

    def test_no_negative_zero(self):
        assert fixed(-0.4) == "0"
        assert fixed(-0.001, 2) == "0.00"

    def test_non_finite(self):
        assert fixed(float("nan"), 1) == "0.0"
        assert fixed(None) == "0"


class TestFormatCompact:
    @pytest.mark.parametrize("value,expected", [
        (0, "0"),
        (999, "999"),
        (1_234, "1.23K"),
        (8_000, "8.00K"),
        (2_500_000, "2.50M"),
        (3_210_000_000, "3.2B"),
    ])
    def test_suffixes(self, value, expected):
        assert format_compact(value) == expected


class TestFormatPrice:
    def test_zero(self):
        assert format_price(0) == "0"

    def test_tiny_is_scientific(self):
        assert format_price(0.00000012) == "1.20e-7"

    def test_tiers(self):
        assert format_price(0.0012345) == "0.001235"
        assert format_price(0.5) == "0.5000"
        assert format_price(42.123) == "42.12"

    def test_grouped(self):
        assert format_price(12_345.678) == "12,345.68"


class TestPct:
    def test_signed(self):
        assert pct(29.6) == "30"
        assert signed_pct(30) == "+30"
        assert signed_pct(-12.4) == "-12"
        assert signed_pct(0) == "+0"


class TestEscapeHtml:
    def test_all_five(self):
        assert escape_html("<a href=\"x\">'&'</a>") == "&lt;a href=&quot;x&quot;&gt;&#39;&amp;&#39;&lt;/a&gt;"

    def test_script_neutralized(self):
        assert "<script>" not in escape_html("<script>alert(1)</script>")

    def test_none(self):
        assert escape_html(None) == ""


class TestSanitize:
    def test_urls(self):
        assert sanitize_url("https://pump.fun/x") == "https://pump.fun/x"
        assert sanitize_url("javascript:alert(1)") is None
        assert sanitize_url("") is None
        assert sanitize_url(42) is None

    def test_addresses(self):
        assert is_valid_solana_address("So11111111111111111111111111111111111111112")
        assert not is_valid_solana_address("0x" + "a" * 40)
        assert not is_valid_solana_address("O" * 44)
        assert not is_valid_solana_address("A" * 31)
        assert not is_valid_solana_address(None)

    def test_clean_text(self):
        assert clean_text("a\n\tb\x00c  d", 100) == "a b c d"
        assert clean_text("x" * 50, 10) == "x" * 10
        assert clean_text(None, 10) == ""
