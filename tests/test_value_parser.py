"""Tests for numeric cell parsing and scale normalization."""

import pytest

from statement_extractor.value_parser import (
    ValueParser,
    is_null_marker,
    looks_numeric,
    parse_numeric,
)


class TestParseNumeric:
    """Printed cell text to numbers."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("$57,006", 57006),
            ("57,006", 57006),
            ("(1,234)", -1234),
            ("$ (1,234)", -1234),
            ("-45", -45),
            ("−45", -45),
            ("0.50", 0.5),
            ("1,234(1)", 1234),
            ("US$ 2,001", 2001),
        ],
    )
    def test_parses_printed_numbers(self, text, expected):
        assert parse_numeric(text) == expected

    @pytest.mark.parametrize("text", ["—", "-", "–", "", "   ", None, "$", "n/a", "Total"])
    def test_null_and_non_numeric_text(self, text):
        assert parse_numeric(text) is None

    def test_integer_results_stay_integers(self):
        assert isinstance(parse_numeric("1,200"), int)
        assert isinstance(parse_numeric("2.25"), float)


class TestScaling:
    """Magnitude words and reporting scales."""

    def test_magnitude_words_resolve_to_base_scale(self):
        parser = ValueParser(base_scale="millions")

        assert parser.parse_magnitude("$51.2 billion") == 51200
        assert parser.parse_magnitude("$760 million") == 760
        assert parser.parse_magnitude("760") is None

    def test_magnitude_amounts_round_half_up_to_base_unit(self):
        parser = ValueParser(base_scale="millions")

        assert parser.parse_numeric("$760.5 million") == 761
        assert parser.parse_magnitude("$2.5 million") == 3
        assert parser.parse_magnitude("$22.6 billion") == 22600
        assert parser.parse_scaled("($760.5 million)", "thousands") == -761

    def test_stated_magnitude_is_not_rescaled(self):
        parser = ValueParser(base_scale="millions")

        assert parser.parse_scaled("$1.2 billion", "thousands") == 1200
        assert parser.parse_scaled("(1.2 billion)", "millions") == -1200

    def test_document_scale_converts_to_base(self):
        parser = ValueParser(base_scale="millions")

        assert parser.parse_scaled("1,885.69", "billions") == 1885690
        assert parser.parse_scaled("760", "thousands") == pytest.approx(0.76)
        assert parser.parse_scaled("42", "millions") == 42

    def test_normalize_scale(self):
        parser = ValueParser()

        assert parser.normalize_scale(1.5, "billions", "millions") == 1500
        assert parser.normalize_scale(1234, "thousands", "millions") == pytest.approx(1.234)
        assert parser.normalize_scale(None, "billions", "millions") is None

    def test_unknown_scale_is_rejected(self):
        with pytest.raises(ValueError):
            ValueParser(base_scale="lakhs")
        with pytest.raises(ValueError):
            ValueParser().normalize_scale(1, "lakhs", "millions")


def test_looks_numeric():
    assert looks_numeric("(1,234)")
    assert looks_numeric("12.5%")
    assert looks_numeric("$ 300")
    assert not looks_numeric("$")
    assert not looks_numeric("Total assets")
    assert not looks_numeric("")


def test_is_null_marker():
    assert is_null_marker("—")
    assert is_null_marker("")
    assert is_null_marker(None)
    assert is_null_marker("$ -")
    assert not is_null_marker("0")
    assert not is_null_marker("n/a")
