"""
Period reconciliation: derive fourth-quarter values from annual totals.

Many companies never publish standalone fourth-quarter statements. For flow
metrics Q4 equals the fiscal-year total minus the first three quarters;
balances are read from the annual document as of year end.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from .constants import ANNUAL_PERIOD, POINT_IN_TIME_CONCEPTS, UNSCALED_METRICS
from .data_models import (
    Diagnostic,
    IssueKind,
    MetricValue,
    Number,
    Provenance,
    QuarterlyRecord,
)
from .record_merger import LOCATED, compute_composites

logger = logging.getLogger(__name__)

PeriodValues = Union[QuarterlyRecord, Mapping[str, Optional[Number]]]


@dataclass(frozen=True)
class Unavailable:
    """Q4 cannot be derived because whole periods are missing."""

    missing_periods: Tuple[str, ...]

    @property
    def reason(self) -> str:
        return f"missing periods: {', '.join(self.missing_periods)}"


@dataclass
class DerivedQuarter:
    """Derived Q4 values plus the keys that could not be derived."""

    values: Dict[str, Number] = field(default_factory=dict)
    blocked: Dict[str, Tuple[str, ...]] = field(default_factory=dict)  # key -> periods lacking it


def _values_of(period: PeriodValues) -> Mapping[str, Optional[Number]]:
    if isinstance(period, QuarterlyRecord):
        return period.values()
    return period


def _subtract(annual: Number, quarters: Sequence[Number]) -> Number:
    result = annual
    for value in quarters:
        result = result - value
    if isinstance(result, float):
        return round(result, 6)
    return result


def derive_q4(
    annual: Optional[PeriodValues],
    q1: Optional[PeriodValues],
    q2: Optional[PeriodValues],
    q3: Optional[PeriodValues],
    exclude: Iterable[str] = (),
) -> Union[DerivedQuarter, Unavailable]:
    """
    Derive Q4 as annual minus the first three quarters.

    A key is derived only when it is non-null in all four inputs; otherwise
    it is listed in ``blocked`` with the periods that lack it.

    Args:
        annual: Fiscal-year values
        q1: First-quarter values
        q2: Second-quarter values
        q3: Third-quarter values
        exclude: Keys never derived by subtraction

    Returns:
        DerivedQuarter, or Unavailable when any input period is absent
    """
    inputs = {ANNUAL_PERIOD: annual, "Q1": q1, "Q2": q2, "Q3": q3}
    missing = tuple(name for name, period in inputs.items() if period is None)
    if missing:
        return Unavailable(missing)

    maps = {name: _values_of(period) for name, period in inputs.items()}
    excluded = set(exclude)
    keys = sorted(set().union(*(set(values) for values in maps.values())) - excluded)

    derived = DerivedQuarter()
    for key in keys:
        lacking = tuple(name for name, values in maps.items() if values.get(key) is None)
        if lacking:
            derived.blocked[key] = lacking
            continue
        derived.values[key] = _subtract(
            maps[ANNUAL_PERIOD][key], [maps["Q1"][key], maps["Q2"][key], maps["Q3"][key]]
        )
    return derived


def _non_derivable_keys(
    annual: QuarterlyRecord,
    quarters: Iterable[QuarterlyRecord],
    unscaled_metrics: Iterable[str],
) -> set:
    keys = set(unscaled_metrics)
    for key, metric in annual.metrics.items():
        if metric.provenance is Provenance.COMPUTED:
            keys.add(key)
    for record in (annual, *quarters):
        for key, metric in record.metrics.items():
            if metric.concept in POINT_IN_TIME_CONCEPTS:
                keys.add(key)
    return keys


def reconcile_fiscal_year(
    records_by_quarter: Mapping[str, QuarterlyRecord],
    annual_record: Optional[QuarterlyRecord],
    other_income_keys: Sequence[str] = (),
    unscaled_metrics: Iterable[str] = UNSCALED_METRICS,
) -> Optional[QuarterlyRecord]:
    """
    Build the Q4 record of a fiscal year.

    Reported Q4 values are kept. Missing flow values are derived from the
    annual record and the first three quarters; missing balances are taken
    from the annual record. Keys that cannot be derived get a
    ``RECONCILIATION_BLOCKED`` diagnostic.

    Args:
        records_by_quarter: Merged records keyed by ``Q1``..``Q4``
        annual_record: Merged record of the annual document, if any
        other_income_keys: Components summed for non-operating income
        unscaled_metrics: Per-share and share-count keys, never derived

    Returns:
        The Q4 record, or None when there is neither a reported Q4 nor an
        annual record
    """
    reported = records_by_quarter.get("Q4")
    if reported is None and annual_record is None:
        return None

    source = annual_record or reported
    record = QuarterlyRecord(company=source.company, fiscal_year=source.fiscal_year, quarter="Q4")
    if reported is not None:
        record.metrics.update(reported.metrics)
        record.confidence.update(reported.confidence)
        record.diagnostics.extend(reported.diagnostics)

    if annual_record is None:
        record.diagnostics.append(
            Diagnostic(
                IssueKind.RECONCILIATION_BLOCKED,
                None,
                None,
                f"No annual record for FY{record.fiscal_year}; Q4 has reported values only",
            )
        )
        compute_composites(record.metrics, other_income_keys)
        return record

    def has_value(key: str) -> bool:
        metric = record.metrics.get(key)
        return metric is not None and metric.value is not None

    for key, metric in annual_record.metrics.items():
        if metric.concept in POINT_IN_TIME_CONCEPTS and metric.value is not None and not has_value(key):
            record.metrics[key] = metric
    for concept, state in annual_record.confidence.items():
        if state == LOCATED or concept not in record.confidence:
            record.confidence[concept] = state

    earlier = [records_by_quarter.get(quarter) for quarter in ("Q1", "Q2", "Q3")]
    derivation = derive_q4(
        annual_record,
        *earlier,
        exclude=_non_derivable_keys(
            annual_record, [record for record in earlier if record is not None], unscaled_metrics
        ),
    )

    if isinstance(derivation, Unavailable):
        logger.info(f"{record.company} FY{record.fiscal_year}: Q4 not derivable ({derivation.reason})")
        record.diagnostics.append(
            Diagnostic(IssueKind.RECONCILIATION_BLOCKED, None, None, derivation.reason)
        )
    else:
        for key, value in derivation.values.items():
            if has_value(key):
                continue
            record.metrics[key] = MetricValue(
                value, Provenance.DERIVED, concept=annual_record.metrics[key].concept
            )
        for key, lacking in derivation.blocked.items():
            if has_value(key):
                continue
            annual_metric = annual_record.metrics.get(key)
            record.diagnostics.append(
                Diagnostic(
                    IssueKind.RECONCILIATION_BLOCKED,
                    annual_metric.concept if annual_metric else None,
                    key,
                    f"{key} missing in {', '.join(lacking)}",
                )
            )

    compute_composites(record.metrics, other_income_keys)
    return record
