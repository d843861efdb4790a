"""Tests for merging fragments into quarterly records."""

from statement_extractor.constants import StatementConcept
from statement_extractor.data_models import (
    Diagnostic,
    DocumentKind,
    FilingUnit,
    Fragment,
    IssueKind,
    MetricValue,
    Provenance,
)
from statement_extractor.record_merger import LOCATED, NOT_LOCATED, compute_composites, merge


def _fragment(kind, concept, values, located=True, name="", diagnostics=None):
    unit = FilingUnit("acme", 2024, "Q2", kind, name)
    return Fragment(
        unit=unit,
        concept=concept,
        values=values,
        located=located,
        diagnostics=diagnostics or [],
    )


class TestMerge:
    """First non-null value wins, in document priority order."""

    def test_first_non_null_value_wins(self):
        html = _fragment(
            DocumentKind.TABLE_HTML, StatementConcept.INCOME_STATEMENT, {"revenue": 1200, "netIncome": None}
        )
        text = _fragment(
            DocumentKind.LAYOUT_TEXT, StatementConcept.INCOME_STATEMENT, {"revenue": 1190, "netIncome": 200}
        )

        record = merge("acme", 2024, "Q2", [html, text])

        assert record.value("revenue") == 1200
        assert record.metrics["revenue"].source_kind is DocumentKind.TABLE_HTML
        assert record.value("netIncome") == 200
        assert record.metrics["netIncome"].source_kind is DocumentKind.LAYOUT_TEXT

    def test_document_priority_reorders_fragments(self):
        deck = _fragment(DocumentKind.SHADOW_TEXT_DECK, StatementConcept.BALANCE_SHEET, {"totalAssets": 5982390})
        html = _fragment(DocumentKind.TABLE_HTML, StatementConcept.BALANCE_SHEET, {"totalAssets": 5982000})

        record = merge("acme", 2024, "Q2", [deck, html], document_priority=["table_html", "shadow_text_deck"])

        assert record.value("totalAssets") == 5982000

    def test_null_value_is_kept_when_nothing_better(self):
        html = _fragment(DocumentKind.TABLE_HTML, StatementConcept.BALANCE_SHEET, {"goodwill": None})

        record = merge("acme", 2024, "Q2", [html])

        assert "goodwill" in record.metrics
        assert record.value("goodwill") is None

    def test_confidence_and_diagnostics(self):
        miss = Diagnostic(IssueKind.STRUCTURAL_MISS, StatementConcept.SEGMENT_REVENUE, None, "no grid")
        located = _fragment(DocumentKind.TABLE_HTML, StatementConcept.INCOME_STATEMENT, {"revenue": 1})
        missing = _fragment(
            DocumentKind.TABLE_HTML,
            StatementConcept.SEGMENT_REVENUE,
            {},
            located=False,
            diagnostics=[miss],
        )

        record = merge("acme", 2024, "Q2", [located, missing])

        assert record.confidence == {"income_statement": LOCATED, "segment_revenue": NOT_LOCATED}
        assert record.diagnostics == [miss]

    def test_located_in_any_document_wins(self):
        missing = _fragment(DocumentKind.TABLE_HTML, StatementConcept.CASH_FLOW, {}, located=False)
        found = _fragment(DocumentKind.LAYOUT_TEXT, StatementConcept.CASH_FLOW, {"operatingCashFlow": 5})

        record = merge("acme", 2024, "Q2", [missing, found])

        assert record.confidence["cash_flow"] == LOCATED

    def test_order_of_equal_fragments_does_not_matter(self):
        a = _fragment(DocumentKind.TABLE_HTML, StatementConcept.INCOME_STATEMENT, {"revenue": 1}, name="a.htm")
        b = _fragment(DocumentKind.TABLE_HTML, StatementConcept.INCOME_STATEMENT, {"revenue": 2}, name="b.htm")
        priority = ["table_html"]

        first = merge("acme", 2024, "Q2", [a, b], document_priority=priority)
        second = merge("acme", 2024, "Q2", [b, a], document_priority=priority)

        assert first.to_dict() == second.to_dict()
        assert first.value("revenue") == 1


class TestComposites:
    """Composite metrics built from reported components."""

    @staticmethod
    def _metrics(**values):
        return {
            key: MetricValue(value, Provenance.REPORTED, concept=StatementConcept.INCOME_STATEMENT)
            for key, value in values.items()
        }

    def test_sga_and_operating_expenses(self):
        metrics = compute_composites(
            self._metrics(salesAndMarketing=60, generalAndAdministrative=40, researchAndDevelopment=150)
        )

        assert metrics["sga"].value == 100
        assert metrics["sga"].provenance is Provenance.COMPUTED
        assert metrics["totalOperatingExpenses"].value == 250

    def test_operating_expenses_from_gross_profit_when_components_missing(self):
        metrics = compute_composites(self._metrics(grossProfit=500, operatingIncome=250))

        assert metrics["sga"].value is None
        assert metrics["totalOperatingExpenses"].value == 250
        assert metrics["totalOperatingExpenses"].provenance is Provenance.COMPUTED

    def test_reported_value_wins_over_composite(self):
        metrics = compute_composites(self._metrics(revenue=1200, costOfRevenue=700, grossProfit=499))

        assert metrics["grossProfit"].value == 499
        assert metrics["grossProfit"].provenance is Provenance.REPORTED

    def test_missing_operand_gives_null_not_partial_sum(self):
        metrics = compute_composites(self._metrics(salesAndMarketing=60))

        assert metrics["sga"].value is None
        assert metrics["sga"].provenance is Provenance.COMPUTED

    def test_cost_of_revenue_from_gross_profit(self):
        metrics = compute_composites(self._metrics(revenue=1200, grossProfit=500))

        assert metrics["costOfRevenue"].value == 700

    def test_non_operating_income_falls_back_to_components(self):
        metrics = compute_composites(
            self._metrics(equityInvestmentGains=30, interestAndOther=-10),
            other_income_keys=["equityInvestmentGains", "interestAndOther"],
        )

        assert metrics["nonOperatingIncome"].value == 20

    def test_non_operating_income_prefers_pretax_difference(self):
        metrics = compute_composites(
            self._metrics(incomeBeforeTax=240, operatingIncome=250, interestAndOther=-7),
            other_income_keys=["interestAndOther"],
        )

        assert metrics["nonOperatingIncome"].value == -10

    def test_free_cash_flow_uses_capex_magnitude(self):
        negative = compute_composites(self._metrics(operatingCashFlow=320, capitalExpenditure=-120))
        positive = compute_composites(self._metrics(operatingCashFlow=320, capitalExpenditure=120))

        assert negative["freeCashFlow"].value == 200
        assert positive["freeCashFlow"].value == 200

    def test_derived_operands_make_derived_composites(self):
        metrics = {
            "operatingCashFlow": MetricValue(340, Provenance.DERIVED),
            "capitalExpenditure": MetricValue(-140, Provenance.DERIVED),
        }

        compute_composites(metrics)

        assert metrics["freeCashFlow"].value == 200
        assert metrics["freeCashFlow"].provenance is Provenance.DERIVED
