"""
Quarterly statement extractor.

Extracts standardized quarterly financial data from press releases,
regulatory filings and investor presentations using label-pattern
configuration per company.
"""

__version__ = "0.1.0"

from .constants import METRIC_VOCABULARY, StatementConcept
from .data_models import (
    Anchor,
    CellRole,
    Diagnostic,
    DocumentGrid,
    DocumentKind,
    ExtractionConfig,
    FilingUnit,
    Fragment,
    GridCell,
    GridRow,
    IssueKind,
    MetricValue,
    NotFound,
    Provenance,
    QuarterlyRecord,
    Section,
    UnitResult,
    classify_concept,
)
from .exceptions import DocumentParseError, ExtractionError, ProfileError
from .value_parser import ValueParser, parse_numeric
from .document_adapter import DocumentAdapter, ShadowTextSignature, adapt
from .section_locator import SectionLocator
from .label_matcher import (
    LabelMatcher,
    LabelPattern,
    LabelPatternSet,
    SectionDelimiter,
    classify,
    normalize_label,
)
from .pattern_config import CompanyProfile, available_profiles, load_company_profile
from .fragment_extractor import FragmentExtractor
from .record_merger import compute_composites, merge
from .period_reconciliation import DerivedQuarter, Unavailable, derive_q4, reconcile_fiscal_year
from .pipeline import DocumentInput, ExtractionPipeline, discover_documents
from .timeseries_exporter import (
    TimeseriesWriter,
    build_diagnostics_dataframe,
    build_metric_facts_dataframe,
    build_quarterly_dataframe,
    records_to_json,
)

__all__ = [
    "METRIC_VOCABULARY",
    "StatementConcept",
    "Anchor",
    "CellRole",
    "Diagnostic",
    "DocumentGrid",
    "DocumentKind",
    "ExtractionConfig",
    "FilingUnit",
    "Fragment",
    "GridCell",
    "GridRow",
    "IssueKind",
    "MetricValue",
    "NotFound",
    "Provenance",
    "QuarterlyRecord",
    "Section",
    "UnitResult",
    "classify_concept",
    "DocumentParseError",
    "ExtractionError",
    "ProfileError",
    "ValueParser",
    "parse_numeric",
    "DocumentAdapter",
    "ShadowTextSignature",
    "adapt",
    "SectionLocator",
    "LabelMatcher",
    "LabelPattern",
    "LabelPatternSet",
    "SectionDelimiter",
    "classify",
    "normalize_label",
    "CompanyProfile",
    "available_profiles",
    "load_company_profile",
    "FragmentExtractor",
    "compute_composites",
    "merge",
    "DerivedQuarter",
    "Unavailable",
    "derive_q4",
    "reconcile_fiscal_year",
    "DocumentInput",
    "ExtractionPipeline",
    "discover_documents",
    "TimeseriesWriter",
    "build_diagnostics_dataframe",
    "build_metric_facts_dataframe",
    "build_quarterly_dataframe",
    "records_to_json",
]
