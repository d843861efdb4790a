"""Tests for extracting metric fragments from documents."""

from pathlib import Path

import pytest

from statement_extractor.constants import StatementConcept
from statement_extractor.data_models import DocumentKind, FilingUnit, IssueKind
from statement_extractor.exceptions import DocumentParseError
from statement_extractor.fragment_extractor import FragmentExtractor
from statement_extractor.pattern_config import load_company_profile, parse_company_profile

FIXTURES = Path(__file__).parent / "fixtures"


def _unit(company="acme", quarter="Q2", kind=DocumentKind.TABLE_HTML, name="press-release.htm"):
    return FilingUnit(
        company=company,
        fiscal_year=2024,
        quarter=quarter,
        document_kind=kind,
        document_name=name,
    )


def _diagnostic_kinds(fragment):
    return [diagnostic.kind for diagnostic in fragment.diagnostics]


class TestPressRelease:
    """Extraction from an HTML press release."""

    @classmethod
    def setup_class(cls):
        cls.profile = load_company_profile(FIXTURES / "acme_profile.json")
        cls.extractor = FragmentExtractor(cls.profile)
        cls.document = (FIXTURES / "press_release.htm").read_bytes()

    def test_income_statement(self):
        fragment = self.extractor.extract(_unit(), self.document, StatementConcept.INCOME_STATEMENT)

        assert fragment.located
        assert fragment.values == {
            "revenue": 1200,
            "costOfRevenue": 700,
            "grossProfit": 500,
            "researchAndDevelopment": 150,
            "sga": 100,
            "operatingIncome": 250,
            "interestAndOther": -10,
            "incomeBeforeTax": 240,
            "incomeTaxExpense": 40,
            "netIncome": 200,
            "epsBasic": 0.5,
            "epsDiluted": 0.49,
            "sharesBasic": 400,
            "sharesDiluted": 408,
        }
        assert fragment.diagnostics == []

    def test_balance_sheet_reads_first_column(self):
        fragment = self.extractor.extract(_unit(), self.document, "balance_sheet")

        assert fragment.values["totalAssets"] == 2000
        assert fragment.values["totalEquity"] == 1100
        assert fragment.values["totalLiabilitiesAndEquity"] == 2000

    def test_cash_flow(self):
        fragment = self.extractor.extract(_unit(), self.document, StatementConcept.CASH_FLOW)

        assert fragment.values["operatingCashFlow"] == 320
        assert fragment.values["capitalExpenditure"] == -120
        assert fragment.values["netIncomeCashFlow"] == 200

    def test_missing_table_is_structural_miss(self):
        fragment = self.extractor.extract(_unit(), self.document, StatementConcept.SEGMENT_REVENUE)

        assert not fragment.located
        assert fragment.is_structural_miss
        assert fragment.values == {}
        assert _diagnostic_kinds(fragment) == [IssueKind.STRUCTURAL_MISS]

    def test_concept_without_pattern_set_is_structural_miss(self):
        fragment = self.extractor.extract(_unit(), self.document, StatementConcept.INVESTMENTS)

        assert not fragment.located
        assert _diagnostic_kinds(fragment) == [IssueKind.STRUCTURAL_MISS]

    def test_extract_all_adapts_once(self):
        fragments = self.extractor.extract_all(
            _unit(), self.document, [StatementConcept.INCOME_STATEMENT, StatementConcept.CASH_FLOW]
        )

        assert [fragment.concept for fragment in fragments] == [
            StatementConcept.INCOME_STATEMENT,
            StatementConcept.CASH_FLOW,
        ]
        assert all(fragment.located for fragment in fragments)

    def test_unparseable_document_raises(self):
        with pytest.raises(DocumentParseError):
            self.extractor.extract(_unit(), b"", StatementConcept.INCOME_STATEMENT)


class TestRowRules:
    """Row-level rules: duplicates, malformed numbers and missing labels."""

    profile = parse_company_profile(
        {
            "company": "acme",
            "pattern_sets": {
                "balance_sheet": {
                    "patterns": [
                        {"key": "cashAndEquivalents", "patterns": ["Cash and cash equivalents"]},
                        {"key": "totalAssets", "patterns": ["Total assets"]},
                        {"key": "goodwill", "patterns": ["Goodwill"]},
                        {"key": "totalLiabilities", "patterns": ["Total liabilities"]},
                    ]
                }
            },
        }
    )

    def _extract(self, rows: str):
        document = (
            "<html><body><p>Consolidated Balance Sheets</p><table>"
            f"{rows}</table></body></html>"
        )
        return FragmentExtractor(self.profile).extract(_unit(), document, "balance_sheet")

    @staticmethod
    def _row(label, *values):
        cells = "".join(f"<td style='text-align:right'>{value}</td>" for value in values)
        return f"<tr><td style='text-align:left'>{label}</td>{cells}</tr>"

    def test_first_matching_row_wins(self):
        fragment = self._extract(
            self._row("Cash and cash equivalents", "300")
            + self._row("Total assets", "2,000")
            + self._row("Total assets", "9,999")
        )

        assert fragment.values["totalAssets"] == 2000

    def test_dash_is_null_without_diagnostic(self):
        fragment = self._extract(
            self._row("Cash and cash equivalents", "300")
            + self._row("Total assets", "2,000")
            + self._row("Goodwill", "—")
            + self._row("Total liabilities", "900")
        )

        assert fragment.values["goodwill"] is None
        assert "goodwill" in fragment.values
        assert _diagnostic_kinds(fragment) == []

    def test_text_and_blank_cells_hold_the_current_column(self):
        fragment = self._extract(
            self._row("Cash and cash equivalents", "n/a", "500")
            + self._row("Total assets", "2,000", "1,950")
            + self._row("Goodwill", "", "700")
            + self._row("Total liabilities", "900", "880")
        )

        assert fragment.values["cashAndEquivalents"] is None
        assert fragment.values["goodwill"] is None
        assert fragment.values["totalAssets"] == 2000
        assert [d.metric for d in fragment.diagnostics] == ["cashAndEquivalents"]
        assert _diagnostic_kinds(fragment) == [IssueKind.NUMERIC_MALFORMED]

    def test_malformed_number_is_null_with_diagnostic(self):
        fragment = self._extract(
            self._row("Cash and cash equivalents", "300")
            + self._row("Total assets", "2,000")
            + self._row("Goodwill", "12..5")
            + self._row("Total liabilities", "900")
        )

        assert fragment.values["goodwill"] is None
        assert _diagnostic_kinds(fragment) == [IssueKind.NUMERIC_MALFORMED]
        assert fragment.diagnostics[0].metric == "goodwill"

    def test_unmatched_expected_key_is_label_miss(self):
        fragment = self._extract(
            self._row("Cash and cash equivalents", "300") + self._row("Total assets", "2,000")
        )

        misses = [d.metric for d in fragment.diagnostics if d.kind is IssueKind.LABEL_MISS]
        assert misses == ["goodwill", "totalLiabilities"]
        assert "goodwill" not in fragment.values


def test_narrative_amounts_fill_missing_values():
    profile = load_company_profile(FIXTURES / "acme_profile.json")
    document = (
        "<html><body><p>Acme Corp Reports Results</p>"
        "<p>Revenue for the second quarter was $1.2 billion, up 9 percent.</p>"
        "</body></html>"
    )

    fragment = FragmentExtractor(profile).extract(_unit(), document, "income_statement")

    assert fragment.located
    assert fragment.values == {"revenue": 1200}
    assert IssueKind.LABEL_MISS in _diagnostic_kinds(fragment)


def test_annual_layout_text():
    profile = load_company_profile(FIXTURES / "acme_profile.json")
    document = (FIXTURES / "annual_report.txt").read_bytes()
    unit = _unit(quarter="FY", kind=DocumentKind.LAYOUT_TEXT, name="10-K.txt")

    fragments = FragmentExtractor(profile).extract_all(
        unit,
        document,
        [StatementConcept.INCOME_STATEMENT, StatementConcept.BALANCE_SHEET, StatementConcept.CASH_FLOW],
    )
    income, balance, cash = (fragment.values for fragment in fragments)

    assert income["revenue"] == 5000
    assert income["interestAndOther"] == -30
    assert income["epsDiluted"] == 2.2
    assert income["sharesDiluted"] == 409
    assert balance["totalAssets"] == 2100
    assert balance["totalEquity"] == 1180
    assert cash["capitalExpenditure"] == -500


def test_presentation_deck_scaled_from_billions():
    profile = load_company_profile("tsmc")
    document = (FIXTURES / "presentation.html").read_bytes()
    unit = _unit(
        company="tsmc", quarter="Q3", kind=DocumentKind.SHADOW_TEXT_DECK, name="presentation.html"
    )
    extractor = FragmentExtractor(profile)

    balance = extractor.extract(unit, document, StatementConcept.BALANCE_SHEET)
    cash = extractor.extract(unit, document, StatementConcept.CASH_FLOW)

    assert balance.located
    assert balance.values["cashAndEquivalents"] == 1885690
    assert balance.values["totalAssets"] == 5982390
    assert balance.values["totalEquity"] == 3910850
    assert balance.values["longTermDebt"] == 913930
    assert cash.values["capitalExpenditure"] == -181290
    assert cash.values["freeCashFlow"] == 254990
