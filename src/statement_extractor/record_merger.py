"""Merge fragments from several documents into one quarterly record."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .data_models import (
    Fragment,
    MetricValue,
    Number,
    Provenance,
    QuarterlyRecord,
)

logger = logging.getLogger(__name__)

LOCATED = "located"
NOT_LOCATED = "not_located"


def _sum(values: Sequence[Number]) -> Number:
    return sum(values)


def _difference(values: Sequence[Number]) -> Number:
    first, second = values
    return first - second


def _free_cash_flow(values: Sequence[Number]) -> Number:
    operating, capex = values
    # Capital expenditure is printed as an outflow by some companies and as a
    # positive amount by others.
    return operating - abs(capex)


# (target, operands, combine). Rules for the same target are tried in order;
# a rule only fires when every operand has a value.
COMPOSITE_RULES: List[Tuple[str, Tuple[str, ...], Callable[[Sequence[Number]], Number]]] = [
    ("sga", ("salesAndMarketing", "generalAndAdministrative"), _sum),
    ("grossProfit", ("revenue", "costOfRevenue"), _difference),
    ("costOfRevenue", ("revenue", "grossProfit"), _difference),
    ("totalOperatingExpenses", ("researchAndDevelopment", "sga"), _sum),
    ("totalOperatingExpenses", ("grossProfit", "operatingIncome"), _difference),
    ("nonOperatingIncome", ("incomeBeforeTax", "operatingIncome"), _difference),
    ("incomeTaxExpense", ("incomeBeforeTax", "netIncome"), _difference),
    ("freeCashFlow", ("operatingCashFlow", "capitalExpenditure"), _free_cash_flow),
]

COMPOSITE_KEYS = frozenset(target for target, _, _ in COMPOSITE_RULES)


def _has_value(metrics: Dict[str, MetricValue], key: str) -> bool:
    metric = metrics.get(key)
    return metric is not None and metric.value is not None


def _apply_rule(
    metrics: Dict[str, MetricValue],
    target: str,
    operands: Sequence[str],
    combine: Callable[[Sequence[Number]], Number],
) -> bool:
    if _has_value(metrics, target):
        return False
    if not all(_has_value(metrics, key) for key in operands):
        metrics.setdefault(target, MetricValue(None, Provenance.COMPUTED))
        return False

    inputs = [metrics[key] for key in operands]
    provenance = (
        Provenance.DERIVED if any(metric.derived for metric in inputs) else Provenance.COMPUTED
    )
    metrics[target] = MetricValue(
        combine([metric.value for metric in inputs]),
        provenance,
        concept=inputs[0].concept,
    )
    return True


def compute_composites(
    metrics: Dict[str, MetricValue], other_income_keys: Sequence[str] = ()
) -> Dict[str, MetricValue]:
    """
    Fill composite metrics from reported components, in place.

    A reported value always wins over a composite. A composite whose
    operands are not all present is recorded as null rather than built from
    partial inputs.

    Args:
        metrics: Metric map of one record
        other_income_keys: Lines that sum to non-operating income when income
            before tax or operating income is missing

    Returns:
        The same metric map
    """
    for target, operands, combine in COMPOSITE_RULES:
        _apply_rule(metrics, target, operands, combine)
        if target == "nonOperatingIncome" and other_income_keys:
            _apply_rule(metrics, target, tuple(other_income_keys), _sum)
    return metrics


def merge(
    company: str,
    fiscal_year: int,
    quarter: str,
    fragments: Iterable[Fragment],
    other_income_keys: Sequence[str] = (),
    document_priority: Optional[Sequence[str]] = None,
) -> QuarterlyRecord:
    """
    Merge fragments for one period into a canonical record.

    Args:
        company: Company identifier
        fiscal_year: Fiscal year of the period
        quarter: ``Q1``..``Q4`` or ``FY``
        fragments: Drafts from the period's documents
        other_income_keys: Components summed for non-operating income
        document_priority: Document kinds in order of trust; fragments are
            merged in this order when given, otherwise in the order received

    Returns:
        QuarterlyRecord where the first non-null value per key wins
    """
    fragments = list(fragments)
    if document_priority is not None:
        ranking = {kind: position for position, kind in enumerate(document_priority)}
        fragments.sort(
            key=lambda fragment: (
                ranking.get(fragment.unit.document_kind.value, len(ranking)),
                fragment.unit.document_name,
            )
        )

    record = QuarterlyRecord(company=company, fiscal_year=fiscal_year, quarter=quarter)

    for fragment in fragments:
        concept = fragment.concept.value
        if fragment.located:
            record.confidence[concept] = LOCATED
        else:
            record.confidence.setdefault(concept, NOT_LOCATED)
        record.diagnostics.extend(fragment.diagnostics)

        for key, value in fragment.values.items():
            existing = record.metrics.get(key)
            if existing is not None and existing.value is not None:
                if value is not None and value != existing.value:
                    logger.warning(
                        f"{company} FY{fiscal_year} {quarter}: keeping {key}={existing.value} "
                        f"from {existing.source_kind.value if existing.source_kind else 'unknown'}, "
                        f"dropping {value} from {fragment.unit.document_kind.value}"
                    )
                continue
            if existing is not None and value is None:
                continue
            record.metrics[key] = MetricValue(
                value,
                Provenance.REPORTED,
                source_kind=fragment.unit.document_kind,
                concept=fragment.concept,
            )

    compute_composites(record.metrics, other_income_keys)
    return record
