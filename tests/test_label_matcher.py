"""Tests for row label normalization and classification."""

import pytest

from statement_extractor.constants import StatementConcept
from statement_extractor.label_matcher import (
    LabelMatcher,
    LabelPattern,
    LabelPatternSet,
    SectionDelimiter,
    classify,
    compile_pattern,
    normalize_label,
)


def _pattern(key, *patterns, section=None):
    return LabelPattern(key=key, patterns=[compile_pattern(p) for p in patterns], section=section)


def _income_set(**kwargs) -> LabelPatternSet:
    return LabelPatternSet(
        concept=StatementConcept.INCOME_STATEMENT,
        patterns=[
            _pattern("revenue", "Net revenue", "Revenue"),
            _pattern("netIncome", "Net income"),
            _pattern("epsBasic", "Basic", section="eps"),
            _pattern("epsDiluted", "Diluted", section="eps"),
            _pattern("sharesBasic", "Basic", section="shares"),
            _pattern("sharesDiluted", "Diluted", section="shares"),
        ],
        delimiters=[
            SectionDelimiter(
                name="eps",
                start=[compile_pattern("Earnings per share")],
                close_after=("epsDiluted",),
            ),
            SectionDelimiter(
                name="shares",
                start=[compile_pattern("Weighted average shares")],
                close_after=("sharesDiluted",),
            ),
        ],
        **kwargs,
    )


class TestNormalizeLabel:
    """Label normalization."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Net income (1)", "Net income"),
            ("(2) Net revenue", "Net revenue"),
            ("*Revenue", "Revenue"),
            ("Total stockholders’ equity:", "Total stockholders' equity"),
            ("Net  revenue", "Net revenue"),
            ("Earnings per share&#58;", "Earnings per share"),
            ("ＮＥＴ ＩＮＣＯＭＥ", "NET INCOME"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_label(raw) == expected

    def test_empty(self):
        assert normalize_label(None) == ""
        assert normalize_label("   ") == ""


class TestClassify:
    """Stateless classification against a pattern set."""

    def test_first_matching_pattern_wins(self):
        pattern_set = _income_set()

        assert classify("Net revenue", pattern_set) == "revenue"
        assert classify("NET INCOME", pattern_set) == "netIncome"

    def test_full_match_is_required_by_default(self):
        pattern_set = _income_set()

        assert classify("Net income attributable to Acme", pattern_set) is None

    def test_search_mode_matches_inside_long_labels(self):
        pattern_set = LabelPatternSet(
            concept=StatementConcept.BALANCE_SHEET,
            patterns=[_pattern("totalAssets", "Total Assets$")],
            match_mode="search",
        )

        assert classify("Balance Sheets (In billions) Total Assets", pattern_set) == "totalAssets"
        assert classify("Total Assets Turnover", pattern_set) is None

    def test_skip_patterns_win_over_matches(self):
        pattern_set = _income_set(skip=[compile_pattern("^European Commission fine")])

        assert classify("European Commission fine", pattern_set) is None

    def test_sectioned_patterns_need_their_section(self):
        pattern_set = _income_set()

        assert classify("Basic", pattern_set) is None
        assert classify("Basic", pattern_set, section="eps") == "epsBasic"
        assert classify("Basic", pattern_set, section="shares") == "sharesBasic"

    def test_unknown_match_mode_is_rejected(self):
        with pytest.raises(ValueError):
            LabelPatternSet(concept=StatementConcept.CASH_FLOW, patterns=[], match_mode="fuzzy")


class TestLabelMatcher:
    """Row-by-row matching with section state."""

    def test_delimiters_resolve_repeated_labels(self):
        matcher = LabelMatcher(_income_set())
        rows = [
            "Net income",
            "Earnings per share:",
            "Basic",
            "Diluted",
            "Weighted average shares:",
            "Basic",
            "Diluted",
        ]

        keys = []
        for label in rows:
            key = matcher.match_row(label)
            if key is not None:
                matcher.assigned(key)
            keys.append(key)

        assert keys == [
            "netIncome",
            None,
            "epsBasic",
            "epsDiluted",
            None,
            "sharesBasic",
            "sharesDiluted",
        ]
        assert matcher.section is None

    def test_end_row_closes_section_and_is_classified(self):
        pattern_set = LabelPatternSet(
            concept=StatementConcept.SEGMENT_REVENUE,
            patterns=[
                _pattern("iphone", "iPhone", section="category"),
                _pattern("totalNetSales", "Total net sales"),
            ],
            delimiters=[
                SectionDelimiter(
                    name="category",
                    start=[compile_pattern("Net sales by category")],
                    end=[compile_pattern("Total net sales")],
                )
            ],
        )
        matcher = LabelMatcher(pattern_set)

        assert matcher.match_row("iPhone") is None
        assert matcher.match_row("Net sales by category:") is None
        assert matcher.section == "category"
        assert matcher.match_row("iPhone (1)") == "iphone"
        assert matcher.match_row("Total net sales") == "totalNetSales"
        assert matcher.section is None

    def test_classify_does_not_advance_state(self):
        matcher = LabelMatcher(_income_set())

        assert matcher.classify("Earnings per share") is None
        assert matcher.section is None


def test_pattern_set_keys_and_year_range():
    pattern_set = _income_set(fiscal_years=(2022, 9999))

    assert pattern_set.keys[:2] == ["revenue", "netIncome"]
    assert pattern_set.expected_keys == pattern_set.keys
    assert pattern_set.applies_to(2024)
    assert not pattern_set.applies_to(2021)
