"""Utilities for turning quarterly records into time-series tables and JSON."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from .constants import METRIC_VOCABULARY
from .data_models import QuarterlyRecord

KEY_COLUMNS = ["company", "fiscal_year", "quarter"]


@dataclass
class TimeseriesWriteResult:
    """Paths to persisted outputs for one company."""

    base_path: Path
    records_path: Path
    quarterly_path: Optional[Path]
    facts_path: Optional[Path]
    diagnostics_path: Optional[Path]


def _metric_columns(records: Sequence[QuarterlyRecord]) -> List[str]:
    """Vocabulary keys first in statement order, then any other keys sorted."""
    present = {key for record in records for key in record.metrics}
    ordered = [key for keys in METRIC_VOCABULARY.values() for key in keys if key in present]
    extras = sorted(present - set(ordered))
    return ordered + extras


def _sorted(records: Sequence[QuarterlyRecord]) -> List[QuarterlyRecord]:
    return sorted(records, key=lambda record: record.period_key)


def build_quarterly_dataframe(
    records: Sequence[QuarterlyRecord], metrics: Optional[Sequence[str]] = None
) -> pd.DataFrame:
    """One row per company quarter, one column per metric."""

    records = _sorted(records)
    metric_columns = list(metrics) if metrics is not None else _metric_columns(records)
    columns = KEY_COLUMNS + metric_columns

    rows = []
    for record in records:
        row = {"company": record.company, "fiscal_year": record.fiscal_year, "quarter": record.quarter}
        for key in metric_columns:
            row[key] = record.value(key)
        rows.append(row)

    frame = pd.DataFrame.from_records(rows, columns=columns)
    return frame.set_index(KEY_COLUMNS)


def build_metric_facts_dataframe(records: Sequence[QuarterlyRecord]) -> pd.DataFrame:
    """Long format: one row per metric value with its provenance."""

    rows = []
    for record in _sorted(records):
        for key in sorted(record.metrics):
            metric = record.metrics[key]
            rows.append(
                {
                    "company": record.company,
                    "fiscal_year": record.fiscal_year,
                    "quarter": record.quarter,
                    "metric": key,
                    "currency": record.currency,
                    "concept": metric.concept.value if metric.concept else None,
                    "value": metric.value,
                    "provenance": metric.provenance.value,
                    "source_kind": metric.source_kind.value if metric.source_kind else None,
                    "derived": metric.derived,
                }
            )

    columns = KEY_COLUMNS + [
        "metric",
        "currency",
        "concept",
        "value",
        "provenance",
        "source_kind",
        "derived",
    ]
    return pd.DataFrame.from_records(rows, columns=columns)


def build_diagnostics_dataframe(records: Sequence[QuarterlyRecord]) -> pd.DataFrame:
    """One row per diagnostic attached to any record."""

    rows = []
    for record in _sorted(records):
        for diagnostic in record.diagnostics:
            rows.append(
                {
                    "company": record.company,
                    "fiscal_year": record.fiscal_year,
                    "quarter": record.quarter,
                    **diagnostic.to_dict(),
                }
            )

    columns = KEY_COLUMNS + ["kind", "concept", "metric", "message"]
    return pd.DataFrame.from_records(rows, columns=columns)


def records_to_json(records: Sequence[QuarterlyRecord]) -> str:
    """Serialise records deterministically (sorted keys, sorted periods)."""
    payload = [record.to_dict() for record in _sorted(records)]
    return json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False)


class TimeseriesWriter:
    """Persist JSON and CSV outputs for a company."""

    def __init__(self, base_dir: Path | str = Path("output")) -> None:
        self.base_dir = Path(base_dir)

    def write(self, company: str, records: Sequence[QuarterlyRecord]) -> TimeseriesWriteResult:
        target_dir = self.base_dir / (_sanitize_path_component(company) or "unknown")
        target_dir.mkdir(parents=True, exist_ok=True)

        records_path = target_dir / "records.json"
        records_path.write_text(records_to_json(records) + "\n", encoding="utf-8")

        quarterly_path = None
        quarterly_df = build_quarterly_dataframe(records)
        if not quarterly_df.empty:
            quarterly_path = target_dir / "quarterly.csv"
            quarterly_df.to_csv(quarterly_path)

        facts_path = None
        facts_df = build_metric_facts_dataframe(records)
        if not facts_df.empty:
            facts_path = target_dir / "facts.csv"
            facts_df.to_csv(facts_path, index=False)

        diagnostics_path = None
        diagnostics_df = build_diagnostics_dataframe(records)
        if not diagnostics_df.empty:
            diagnostics_path = target_dir / "diagnostics.csv"
            diagnostics_df.to_csv(diagnostics_path, index=False)

        return TimeseriesWriteResult(
            base_path=target_dir,
            records_path=records_path,
            quarterly_path=quarterly_path,
            facts_path=facts_path,
            diagnostics_path=diagnostics_path,
        )


def _sanitize_path_component(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    safe = re.sub(r"[^0-9A-Za-z._-]", "_", value)
    return safe.strip("._-") or None
