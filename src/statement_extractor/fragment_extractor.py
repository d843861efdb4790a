"""
Fragment extractor: locate a statement in one document and read its rows.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set, Union

from .constants import StatementConcept
from .data_models import (
    Diagnostic,
    DocumentGrid,
    ExtractionConfig,
    FilingUnit,
    Fragment,
    IssueKind,
    Number,
    Section,
    classify_concept,
)
from .document_adapter import DocumentAdapter
from .label_matcher import LabelMatcher, LabelPatternSet
from .pattern_config import CompanyProfile
from .section_locator import SectionLocator
from .value_parser import ValueParser, is_null_marker

logger = logging.getLogger(__name__)


class FragmentExtractor:
    """Extract metric fragments for a company from its documents."""

    def __init__(
        self,
        profile: CompanyProfile,
        config: Optional[ExtractionConfig] = None,
        adapter: Optional[DocumentAdapter] = None,
        locator: Optional[SectionLocator] = None,
        parser: Optional[ValueParser] = None,
    ):
        """
        Initialize the extractor.

        Args:
            profile: Company profile with pattern sets and scales
            config: Extraction settings shared with the locator
            adapter: Document adapter (default settings if omitted)
            locator: Section locator (built from ``config`` if omitted)
            parser: Numeric parser; its base scale should be the profile's
                reporting scale
        """
        self.profile = profile
        self.config = config or ExtractionConfig()
        self.adapter = adapter or DocumentAdapter()
        self.locator = locator or SectionLocator(self.config)
        self.parser = parser or ValueParser(base_scale=profile.reporting_scale)

    def extract(
        self,
        unit: FilingUnit,
        document_bytes: Union[bytes, str],
        concept: Union[StatementConcept, str],
    ) -> Fragment:
        """
        Extract one concept from one document.

        Raises:
            DocumentParseError: If the document cannot be parsed at all
        """
        grid_source = self.adapter.adapt(document_bytes, unit.document_kind)
        return self.extract_from_grid(unit, grid_source, concept)

    def extract_all(
        self,
        unit: FilingUnit,
        document_bytes: Union[bytes, str],
        concepts: Iterable[Union[StatementConcept, str]],
    ) -> List[Fragment]:
        """Extract several concepts from one document, adapting it once."""
        grid_source = self.adapter.adapt(document_bytes, unit.document_kind)
        return [self.extract_from_grid(unit, grid_source, concept) for concept in concepts]

    def extract_from_grid(
        self,
        unit: FilingUnit,
        grid_source: DocumentGrid,
        concept: Union[StatementConcept, str],
    ) -> Fragment:
        """Extract one concept from an already adapted document."""
        concept = classify_concept(concept)
        fragment = Fragment(unit=unit, concept=concept)

        pattern_sets = self.profile.pattern_sets_for(concept, unit.fiscal_year)
        if not pattern_sets:
            fragment.diagnostics.append(
                Diagnostic(
                    IssueKind.STRUCTURAL_MISS,
                    concept,
                    None,
                    f"No pattern set for {concept.value} in FY{unit.fiscal_year}",
                )
            )
            return fragment

        scale = self.profile.document_scale(unit.document_kind)
        reasons: List[str] = []

        # Later pattern sets only fill keys the earlier ones left empty.
        for pattern_set in pattern_sets:
            located = self.locator.locate(
                grid_source,
                concept,
                anchors=pattern_set.anchors or None,
                exclude=pattern_set.exclude,
            )
            if isinstance(located, Section):
                fragment.located = True
                self._read_rows(fragment, located, pattern_set, scale)
            else:
                reasons.append(located.reason)

            if pattern_set.narrative and self._read_narrative(
                fragment, grid_source.text, pattern_set, scale
            ):
                fragment.located = True

        if not fragment.located:
            reason = "; ".join(dict.fromkeys(reasons)) or "no section located"
            logger.warning(f"{unit}: {concept.value} not located ({reason})")
            fragment.diagnostics.append(
                Diagnostic(IssueKind.STRUCTURAL_MISS, concept, None, reason)
            )
            return fragment

        for key in self._expected_keys(pattern_sets):
            if key not in fragment.values:
                fragment.diagnostics.append(
                    Diagnostic(IssueKind.LABEL_MISS, concept, key, f"No row matched {key}")
                )

        logger.debug(
            f"{unit}: {concept.value} -> {sum(v is not None for v in fragment.values.values())} values"
        )
        return fragment

    def _read_rows(
        self,
        fragment: Fragment,
        section: Section,
        pattern_set: LabelPatternSet,
        scale: str,
    ) -> None:
        matcher = LabelMatcher(pattern_set)
        assigned: Set[str] = set()
        column = pattern_set.value_column

        for row in section.grid.rows:
            key = matcher.match_row(row.label)
            if key is None:
                continue

            raw_values = row.values
            if not raw_values:
                logger.debug(f"Row '{row.label}' matched {key} but has no values")
                continue
            if key in assigned:
                logger.debug(f"Keeping first value for {key}; ignoring row '{row.label}'")
                continue
            assigned.add(key)
            matcher.assigned(key)

            if fragment.values.get(key) is not None:
                continue

            if column >= len(raw_values):
                fragment.values[key] = None
                fragment.diagnostics.append(
                    Diagnostic(
                        IssueKind.NUMERIC_MALFORMED,
                        fragment.concept,
                        key,
                        f"Row '{row.label}' has no value in column {column}",
                    )
                )
                continue

            raw = raw_values[column]
            value = self._parse(key, raw, scale)
            if value is None and not is_null_marker(raw):
                fragment.diagnostics.append(
                    Diagnostic(
                        IssueKind.NUMERIC_MALFORMED,
                        fragment.concept,
                        key,
                        f"Could not parse {raw!r} in row '{row.label}'",
                    )
                )
            fragment.values[key] = value

    def _read_narrative(
        self,
        fragment: Fragment,
        text: str,
        pattern_set: LabelPatternSet,
        scale: str,
    ) -> bool:
        found = False
        for narrative in pattern_set.narrative:
            if fragment.values.get(narrative.key) is not None:
                continue
            match = narrative.pattern.search(text or "")
            if not match:
                continue

            raw = match.group(1) if match.groups() else match.group(0)
            value = self._parse(narrative.key, raw, scale)
            if value is None:
                fragment.diagnostics.append(
                    Diagnostic(
                        IssueKind.NUMERIC_MALFORMED,
                        fragment.concept,
                        narrative.key,
                        f"Could not parse narrative amount {raw!r}",
                    )
                )
                continue
            fragment.values[narrative.key] = value
            found = True
        return found

    def _parse(self, key: str, raw: str, scale: str) -> Optional[Number]:
        if key in self.profile.unscaled_metrics:
            return self.parser.parse_numeric(raw)
        return self.parser.parse_scaled(raw, scale)

    @staticmethod
    def _expected_keys(pattern_sets: List[LabelPatternSet]) -> List[str]:
        keys: Dict[str, None] = {}
        for pattern_set in pattern_sets:
            for key in pattern_set.expected_keys:
                keys.setdefault(key, None)
        return list(keys)
