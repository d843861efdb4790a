"""
Extraction pipeline: runs every document of a company through extraction and
folds the fragments into quarterly records.
"""

import logging
import re
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from tqdm import tqdm

from .constants import ANNUAL_PERIOD, QUARTERS, StatementConcept
from .data_models import (
    DocumentKind,
    ExtractionConfig,
    FilingUnit,
    Fragment,
    IssueKind,
    QuarterlyRecord,
    UnitResult,
)
from .exceptions import ExtractionError
from .fragment_extractor import FragmentExtractor
from .pattern_config import CompanyProfile
from .period_reconciliation import reconcile_fiscal_year
from .record_merger import merge

logger = logging.getLogger(__name__)

FISCAL_YEAR_DIR = re.compile(r"^(?:FY)?(\d{4})$", re.IGNORECASE)
QUARTER_DIR = re.compile(r"^Q([1-4])$", re.IGNORECASE)
EXTENSION_KINDS = {
    ".htm": DocumentKind.TABLE_HTML,
    ".html": DocumentKind.TABLE_HTML,
    ".txt": DocumentKind.LAYOUT_TEXT,
}


@dataclass
class DocumentInput:
    """A fetched document and the concepts to extract from it."""

    unit: FilingUnit
    content: Optional[bytes] = None
    path: Optional[Path] = None
    concepts: Tuple[StatementConcept, ...] = ()

    def read(self) -> bytes:
        if self.content is not None:
            return self.content
        if self.path is None:
            raise ExtractionError(f"No content or path for {self.unit}")
        return Path(self.path).read_bytes()


class ExtractionPipeline:
    """Parallel extraction over independent filing units."""

    def __init__(self, profile: CompanyProfile, config: Optional[ExtractionConfig] = None):
        self.profile = profile
        self.config = config or ExtractionConfig()
        self.extractor = FragmentExtractor(profile, self.config)

    def run_unit(self, document: DocumentInput) -> UnitResult:
        """
        Extract every requested concept from one document.

        Args:
            document: Document bytes (or path) and its filing unit

        Returns:
            UnitResult; ``success`` is False only when the document could not
            be read or parsed at all
        """
        unit = document.unit
        concepts = document.concepts or tuple(self.profile.concepts)

        try:
            fragments = self.extractor.extract_all(unit, document.read(), concepts)
        except (ExtractionError, OSError) as e:
            logger.error(f"Failed to extract {unit}: {e}")
            return UnitResult(unit=unit, fragments=[], success=False, error=str(e))

        warnings = [
            diagnostic.message
            for fragment in fragments
            for diagnostic in fragment.diagnostics
            if diagnostic.kind is IssueKind.STRUCTURAL_MISS
        ]
        located = sum(1 for fragment in fragments if fragment.located)
        logger.info(f"Extracted {unit}: {located}/{len(fragments)} statements located")
        return UnitResult(unit=unit, fragments=fragments, success=True, warnings=warnings)

    def run(self, documents: Iterable[DocumentInput]) -> List[UnitResult]:
        """
        Extract many documents in parallel.

        Args:
            documents: Documents to process; each is independent

        Returns:
            UnitResults sorted by filing unit, whatever order they finished in
        """
        documents = list(documents)
        logger.info(f"Starting extraction of {len(documents)} documents")

        results: List[UnitResult] = []
        progress_bar = None

        if self.config.show_progress:
            progress_bar = tqdm(total=len(documents), desc="Extracting statements", unit="doc")

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            future_to_document = {
                executor.submit(self.run_unit, document): document for document in documents
            }

            for future in as_completed(future_to_document):
                document = future_to_document[future]
                try:
                    result = future.result()
                except Exception as e:
                    logger.error(f"Unexpected error extracting {document.unit}: {e}")
                    result = UnitResult(
                        unit=document.unit,
                        fragments=[],
                        success=False,
                        error=f"Unexpected error: {e}",
                    )
                results.append(result)

                if progress_bar:
                    status = "✓" if result.success else "✗"
                    progress_bar.set_postfix_str(f"{status} {document.unit}")
                    progress_bar.update(1)

        if progress_bar:
            progress_bar.close()

        successful = sum(1 for r in results if r.success)
        logger.info(
            f"Extraction completed: {successful} successful, {len(results) - successful} failed"
        )
        return sorted(results, key=lambda r: r.unit.sort_key)

    def build_records(self, results: Iterable[UnitResult]) -> List[QuarterlyRecord]:
        """
        Merge unit fragments into quarterly records and reconcile Q4.

        Args:
            results: Output of ``run``

        Returns:
            Quarterly records sorted by company, fiscal year and quarter
        """
        grouped: Dict[Tuple[str, int, str], List[Fragment]] = defaultdict(list)
        for result in sorted(results, key=lambda r: r.unit.sort_key):
            if not result.success:
                continue
            grouped[result.unit.period_key].extend(result.fragments)

        years: Dict[Tuple[str, int], Dict[str, QuarterlyRecord]] = defaultdict(dict)
        for (company, fiscal_year, quarter), fragments in grouped.items():
            years[(company, fiscal_year)][quarter] = merge(
                company,
                fiscal_year,
                quarter,
                fragments,
                other_income_keys=self.profile.other_income_keys,
                document_priority=self.profile.document_priority,
            )

        records: List[QuarterlyRecord] = []
        for company, fiscal_year in sorted(years):
            periods = years[(company, fiscal_year)]
            q4 = reconcile_fiscal_year(
                periods,
                periods.get(ANNUAL_PERIOD),
                other_income_keys=self.profile.other_income_keys,
                unscaled_metrics=self.profile.unscaled_metrics,
            )
            if q4 is not None:
                periods["Q4"] = q4
            records.extend(periods[quarter] for quarter in QUARTERS if quarter in periods)

        for record in records:
            record.currency = self.profile.currency
        return records

    def run_records(self, documents: Iterable[DocumentInput]) -> List[QuarterlyRecord]:
        """Run extraction and return the merged quarterly records."""
        return self.build_records(self.run(documents))


def discover_documents(
    root: Union[str, Path], profile: CompanyProfile
) -> List[DocumentInput]:
    """
    Find fetched documents laid out as ``<root>/FY2024/Q1/<file>``.

    File names are matched against the profile's document list; without one,
    ``.htm``/``.html`` files are read as HTML tables and ``.txt`` files as
    layout text.
    """
    root = Path(root)
    documents: List[DocumentInput] = []

    for year_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        year_match = FISCAL_YEAR_DIR.match(year_dir.name)
        if not year_match:
            continue
        fiscal_year = int(year_match.group(1))

        for quarter_dir in sorted(p for p in year_dir.iterdir() if p.is_dir()):
            quarter_match = QUARTER_DIR.match(quarter_dir.name)
            if not quarter_match:
                continue
            quarter = f"Q{quarter_match.group(1)}"

            for path in sorted(p for p in quarter_dir.iterdir() if p.is_file()):
                document = _document_for(path, profile, fiscal_year, quarter)
                if document is None:
                    logger.debug(f"Skipping unrecognised document: {path}")
                    continue
                documents.append(document)

    logger.info(f"Found {len(documents)} documents for {profile.company} under {root}")
    return documents


def _document_for(
    path: Path, profile: CompanyProfile, fiscal_year: int, quarter: str
) -> Optional[DocumentInput]:
    if profile.documents:
        spec = profile.document_spec_for(path.name)
        if spec is None:
            return None
        kind, concepts = spec.kind, spec.concepts
        period = ANNUAL_PERIOD if spec.is_annual else quarter
    else:
        kind = EXTENSION_KINDS.get(path.suffix.lower())
        if kind is None:
            return None
        concepts, period = (), quarter

    unit = FilingUnit(
        company=profile.company,
        fiscal_year=fiscal_year,
        quarter=period,
        document_kind=kind,
        document_name=path.name,
    )
    return DocumentInput(unit=unit, path=path, concepts=concepts)
