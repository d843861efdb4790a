"""
Data models for quarterly statement extraction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .constants import (
    ANNUAL_PERIOD,
    DOCUMENT_KIND_ALIASES,
    QUARTERS,
    STATEMENT_CONCEPT_ALIASES,
    StatementConcept,
)

Number = Union[int, float]


class DocumentKind(Enum):
    """Layout family of a source document."""

    TABLE_HTML = "table_html"
    LAYOUT_TEXT = "layout_text"
    SHADOW_TEXT_DECK = "shadow_text_deck"

    @classmethod
    def from_alias(cls, name: Union[str, "DocumentKind"]) -> "DocumentKind":
        """Resolve a document kind from its value or a common alias."""
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower().lstrip(".")
        if key not in DOCUMENT_KIND_ALIASES:
            raise ValueError(f"Unknown document kind: {name}")
        return cls(DOCUMENT_KIND_ALIASES[key])


class CellRole(Enum):
    """Role the adapter assigned to a grid cell."""

    LABEL = "label"
    VALUE = "value"
    OTHER = "other"


class IssueKind(Enum):
    """Non-fatal issues recorded as diagnostics."""

    STRUCTURAL_MISS = "structural_miss"
    LABEL_MISS = "label_miss"
    NUMERIC_MALFORMED = "numeric_malformed"
    RECONCILIATION_BLOCKED = "reconciliation_blocked"


class Provenance(Enum):
    """Where a metric value came from."""

    REPORTED = "reported"  # read from a document
    DERIVED = "derived"  # annual minus three quarters
    COMPUTED = "computed"  # composite of reported values


def classify_concept(name: Union[str, StatementConcept]) -> StatementConcept:
    """Resolve a statement concept from its value or a display alias."""
    if isinstance(name, StatementConcept):
        return name
    text = str(name).strip()
    try:
        return StatementConcept(text.lower())
    except ValueError:
        pass
    alias = STATEMENT_CONCEPT_ALIASES.get(text.upper().replace("_", " "))
    if alias is None:
        raise ValueError(f"Unknown statement concept: {name}")
    return alias


@dataclass(frozen=True)
class FilingUnit:
    """One (company, fiscal year, quarter, document kind) extraction target.

    ``quarter`` is one of ``Q1``..``Q4`` or ``FY`` for an annual document.
    ``document_name`` tells apart two documents of the same kind filed for
    the same period (a press release and a quarterly report, say).
    """

    company: str
    fiscal_year: int
    quarter: str
    document_kind: DocumentKind
    document_name: str = ""

    def __post_init__(self):
        if self.quarter not in QUARTERS and self.quarter != ANNUAL_PERIOD:
            raise ValueError(f"Invalid quarter: {self.quarter}")

    @property
    def is_annual(self) -> bool:
        return self.quarter == ANNUAL_PERIOD

    @property
    def period_key(self) -> Tuple[str, int, str]:
        return (self.company, self.fiscal_year, self.quarter)

    @property
    def sort_key(self) -> Tuple[str, int, str, str, str]:
        return (
            self.company,
            self.fiscal_year,
            self.quarter,
            self.document_kind.value,
            self.document_name,
        )

    def __str__(self) -> str:
        name = f" {self.document_name}" if self.document_name else ""
        return (
            f"{self.company} FY{self.fiscal_year} {self.quarter} "
            f"[{self.document_kind.value}{name}]"
        )


@dataclass(frozen=True)
class GridCell:
    """A single cell of a document grid."""

    text: str
    role: CellRole = CellRole.OTHER
    align: Optional[str] = None  # left / right / center
    indent: int = 0
    colspan: int = 1
    valign: Optional[str] = None


@dataclass
class GridRow:
    """An ordered run of cells read from one table row or text line."""

    cells: List[GridCell]
    index: int = 0

    @property
    def label(self) -> str:
        for cell in self.cells:
            if cell.role is CellRole.LABEL:
                return cell.text
        return ""

    @property
    def values(self) -> List[str]:
        return [cell.text for cell in self.cells if cell.role is CellRole.VALUE]


@dataclass
class DocumentGrid:
    """A table or text block as rows of cells.

    When returned from ``adapt`` the top-level grid is a container: its
    ``tables`` hold one grid per table or text block, in document order.
    """

    rows: List[GridRow] = field(default_factory=list)
    table_index: int = 0
    heading: Optional[str] = None
    caption: str = ""
    text: str = ""
    tables: List["DocumentGrid"] = field(default_factory=list)
    kind: Optional[DocumentKind] = None
    source: Any = None  # parsed HTML tree, when there is one
    elements: Dict[Any, int] = field(default_factory=dict)  # <table> -> table_index

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def is_empty(self) -> bool:
        return not self.rows and not self.tables


@dataclass(frozen=True)
class Anchor:
    """Evidence that a grid holds a given statement.

    ``kind`` is ``heading`` (any phrase in the heading text leading to the
    table), ``co_occurrence`` (all phrases present in one grid) or
    ``phrase`` (any phrase present).
    """

    kind: str
    phrases: Tuple[str, ...]
    weight: float = 1.0


@dataclass
class Section:
    """A located grid for one statement concept."""

    concept: StatementConcept
    grid: DocumentGrid
    score: float
    strategy: str = "content"
    matched_anchors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class NotFound:
    """No grid scored high enough for a concept."""

    concept: StatementConcept
    reason: str
    best_score: float = 0.0


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal issue attached to a fragment or record."""

    kind: IssueKind
    concept: Optional[StatementConcept]
    metric: Optional[str]
    message: str

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "kind": self.kind.value,
            "concept": self.concept.value if self.concept else None,
            "metric": self.metric,
            "message": self.message,
        }


@dataclass
class Fragment:
    """Draft metric map extracted from one document for one concept."""

    unit: FilingUnit
    concept: StatementConcept
    values: Dict[str, Optional[Number]] = field(default_factory=dict)
    located: bool = False
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def is_structural_miss(self) -> bool:
        return not self.located


@dataclass(frozen=True)
class MetricValue:
    """A metric value with its provenance."""

    value: Optional[Number]
    provenance: Provenance = Provenance.REPORTED
    source_kind: Optional[DocumentKind] = None
    concept: Optional[StatementConcept] = None

    @property
    def derived(self) -> bool:
        return self.provenance is Provenance.DERIVED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "provenance": self.provenance.value,
            "source_kind": self.source_kind.value if self.source_kind else None,
            "derived": self.derived,
        }


@dataclass
class QuarterlyRecord:
    """Canonical record for one company quarter (or fiscal year when ``FY``)."""

    company: str
    fiscal_year: int
    quarter: str
    metrics: Dict[str, MetricValue] = field(default_factory=dict)
    confidence: Dict[str, str] = field(default_factory=dict)  # concept -> located/not_located
    diagnostics: List[Diagnostic] = field(default_factory=list)
    currency: Optional[str] = None

    @property
    def period_key(self) -> Tuple[str, int, str]:
        return (self.company, self.fiscal_year, self.quarter)

    def value(self, key: str) -> Optional[Number]:
        metric = self.metrics.get(key)
        return metric.value if metric else None

    def values(self) -> Dict[str, Optional[Number]]:
        """Plain key -> value map."""
        return {key: metric.value for key, metric in self.metrics.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "company": self.company,
            "fiscal_year": self.fiscal_year,
            "quarter": self.quarter,
            "currency": self.currency,
            "metrics": {key: self.metrics[key].to_dict() for key in sorted(self.metrics)},
            "confidence": dict(sorted(self.confidence.items())),
            "diagnostics": [diagnostic.to_dict() for diagnostic in self.diagnostics],
        }


@dataclass
class ExtractionConfig:
    """Configuration for an extraction run."""

    max_workers: int = 4
    min_score: float = 1.0
    heading_max_hops: int = 6
    preferred_rows: Tuple[int, int] = (6, 20)
    show_progress: bool = True

    def __post_init__(self):
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.heading_max_hops < 0:
            raise ValueError("heading_max_hops cannot be negative")
        low, high = self.preferred_rows
        if low > high:
            raise ValueError("preferred_rows must be (min, max)")


@dataclass
class UnitResult:
    """Result of extracting every requested concept from one document."""

    unit: FilingUnit
    fragments: List[Fragment]
    success: bool
    error: Optional[str] = None
    warnings: Optional[List[str]] = None

    def __post_init__(self):
        if self.warnings is None:
            self.warnings = []
