"""
Company profiles: label pattern sets, anchors and scales loaded from JSON.
"""

import fnmatch
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .constants import (
    DEFAULT_DOCUMENT_PRIORITY,
    METRIC_VOCABULARY,
    OPEN_VOCABULARY_CONCEPTS,
    SCALE_FACTORS,
    UNSCALED_METRICS,
    StatementConcept,
)
from .data_models import Anchor, DocumentKind, classify_concept
from .exceptions import ProfileError
from .label_matcher import (
    LabelPattern,
    LabelPatternSet,
    NarrativePattern,
    SectionDelimiter,
    compile_pattern,
)
from .section_locator import validate_anchor

logger = logging.getLogger(__name__)

PATTERNS_DIR = Path(__file__).parent / "patterns"
OPEN_ENDED_YEAR = 9999


@dataclass(frozen=True)
class DocumentSpec:
    """Which file in a period directory is which kind of document."""

    name: str  # file name or glob
    kind: DocumentKind
    period: str = "quarter"  # "quarter" or "annual"
    concepts: Tuple[StatementConcept, ...] = ()

    @property
    def is_annual(self) -> bool:
        return self.period == "annual"

    def matches(self, filename: str) -> bool:
        return fnmatch.fnmatch(filename.lower(), self.name.lower())


@dataclass
class CompanyProfile:
    """Extraction settings for one company."""

    company: str
    currency: str = "USD"
    reporting_scale: str = "millions"
    document_scales: Dict[str, str] = field(default_factory=dict)
    pattern_sets: Dict[StatementConcept, List[LabelPatternSet]] = field(default_factory=dict)
    other_income_keys: List[str] = field(default_factory=list)
    unscaled_metrics: frozenset = UNSCALED_METRICS
    document_priority: Tuple[str, ...] = DEFAULT_DOCUMENT_PRIORITY
    documents: List[DocumentSpec] = field(default_factory=list)

    @property
    def concepts(self) -> List[StatementConcept]:
        return [concept for concept in StatementConcept if self.pattern_sets.get(concept)]

    def pattern_sets_for(
        self, concept: Union[StatementConcept, str], fiscal_year: int
    ) -> List[LabelPatternSet]:
        """Pattern sets for a concept that apply to a fiscal year, in declared order."""
        concept = classify_concept(concept)
        return [
            pattern_set
            for pattern_set in self.pattern_sets.get(concept, [])
            if pattern_set.applies_to(fiscal_year)
        ]

    def pattern_set_for(
        self, concept: Union[StatementConcept, str], fiscal_year: int
    ) -> Optional[LabelPatternSet]:
        """Primary pattern set for a concept and fiscal year."""
        pattern_sets = self.pattern_sets_for(concept, fiscal_year)
        return pattern_sets[0] if pattern_sets else None

    def document_scale(self, kind: Union[DocumentKind, str]) -> str:
        kind = DocumentKind.from_alias(kind)
        return self.document_scales.get(kind.value, self.reporting_scale)

    def document_spec_for(self, filename: str) -> Optional[DocumentSpec]:
        for spec in self.documents:
            if spec.matches(filename):
                return spec
        return None


def available_profiles() -> List[str]:
    """Names of the company profiles shipped with the package."""
    return sorted(path.stem for path in PATTERNS_DIR.glob("*.json"))


def load_company_profile(path: Union[str, Path]) -> CompanyProfile:
    """
    Load a company profile.

    Args:
        path: Path to a JSON profile, or the name of a bundled profile
            (``"intel"`` resolves to ``patterns/intel.json``)

    Returns:
        Parsed CompanyProfile

    Raises:
        ProfileError: If the file is missing, is not valid JSON, or declares
            unknown concepts, keys, scales or regular expressions
    """
    profile_path = Path(path)
    if not profile_path.suffix:
        profile_path = PATTERNS_DIR / f"{profile_path.name}.json"
    if not profile_path.exists():
        raise ProfileError(f"Company profile not found: {profile_path}")

    try:
        data = json.loads(profile_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ProfileError(f"Invalid JSON in {profile_path}: {exc}") from exc

    profile = parse_company_profile(data)
    logger.debug(
        f"Loaded profile '{profile.company}' with {sum(len(v) for v in profile.pattern_sets.values())} pattern sets"
    )
    return profile


def parse_company_profile(data: Dict[str, Any]) -> CompanyProfile:
    """Build a CompanyProfile from its JSON representation."""
    if not isinstance(data, dict) or not data.get("company"):
        raise ProfileError("Profile must be an object with a 'company' name")

    reporting_scale = data.get("reporting_scale", "millions")
    document_scales = {}
    for kind, scale in data.get("document_scales", {}).items():
        document_scales[_document_kind(kind).value] = _scale(scale)

    pattern_sets: Dict[StatementConcept, List[LabelPatternSet]] = {}
    for concept_name, entries in data.get("pattern_sets", {}).items():
        concept = _concept(concept_name)
        if isinstance(entries, dict):
            entries = [entries]
        pattern_sets[concept] = [_parse_pattern_set(concept, entry) for entry in entries]

    documents = [_parse_document_spec(entry) for entry in data.get("documents", [])]

    priority = tuple(
        _document_kind(kind).value for kind in data.get("document_priority", DEFAULT_DOCUMENT_PRIORITY)
    )

    return CompanyProfile(
        company=str(data["company"]).lower(),
        currency=data.get("currency", "USD"),
        reporting_scale=_scale(reporting_scale),
        document_scales=document_scales,
        pattern_sets=pattern_sets,
        other_income_keys=list(data.get("other_income_keys", [])),
        unscaled_metrics=UNSCALED_METRICS | frozenset(data.get("unscaled_metrics", [])),
        document_priority=priority,
        documents=documents,
    )


def _parse_pattern_set(concept: StatementConcept, data: Dict[str, Any]) -> LabelPatternSet:
    delimiters = [
        SectionDelimiter(
            name=entry["name"],
            start=_compile_all(entry.get("start", [])),
            end=_compile_all(entry.get("end", [])),
            close_after=tuple(entry.get("close_after", [])),
        )
        for entry in data.get("delimiters", [])
    ]
    section_names = {delimiter.name for delimiter in delimiters}

    patterns = []
    for entry in data.get("patterns", []):
        key = entry.get("key")
        if not key:
            raise ProfileError(f"Pattern without a key in {concept.value}")
        _check_key(concept, key)
        section = entry.get("section")
        if section is not None and section not in section_names:
            raise ProfileError(f"Pattern '{key}' refers to undeclared section '{section}'")
        patterns.append(
            LabelPattern(
                key=key,
                patterns=_compile_all(entry.get("patterns", entry.get("pattern", []))),
                section=section,
            )
        )

    narrative = []
    for entry in data.get("narrative", []):
        _check_key(concept, entry["key"])
        narrative.append(NarrativePattern(key=entry["key"], pattern=_compile(entry["pattern"])))

    anchors = []
    for entry in data.get("anchors", []):
        try:
            anchors.append(
                validate_anchor(
                    Anchor(
                        kind=entry["kind"],
                        phrases=tuple(_as_list(entry["phrases"])),
                        weight=float(entry.get("weight", 1.0)),
                    )
                )
            )
        except (KeyError, ValueError) as exc:
            raise ProfileError(f"Invalid anchor in {concept.value}: {exc}") from exc

    fiscal_years = None
    if data.get("fiscal_years"):
        start, end = data["fiscal_years"]
        fiscal_years = (int(start), int(end) if end is not None else OPEN_ENDED_YEAR)

    try:
        return LabelPatternSet(
            concept=concept,
            patterns=patterns,
            delimiters=delimiters,
            skip=_compile_all(data.get("skip", [])),
            narrative=narrative,
            anchors=anchors,
            exclude=list(data.get("exclude", [])),
            match_mode=data.get("match_mode", "full"),
            value_column=int(data.get("value_column", 0)),
            fiscal_years=fiscal_years,
            expected=data.get("expected"),
        )
    except ValueError as exc:
        raise ProfileError(f"Invalid pattern set for {concept.value}: {exc}") from exc


def _parse_document_spec(data: Dict[str, Any]) -> DocumentSpec:
    period = data.get("period", "quarter")
    if period not in ("quarter", "annual"):
        raise ProfileError(f"Unknown document period: {period}")
    return DocumentSpec(
        name=data["name"],
        kind=_document_kind(data["kind"]),
        period=period,
        concepts=tuple(_concept(name) for name in data.get("concepts", [])),
    )


def _check_key(concept: StatementConcept, key: str) -> None:
    if concept in OPEN_VOCABULARY_CONCEPTS:
        return
    if key not in METRIC_VOCABULARY[concept]:
        raise ProfileError(f"Unknown metric key '{key}' for {concept.value}")


def _concept(name: str) -> StatementConcept:
    try:
        return classify_concept(name)
    except ValueError as exc:
        raise ProfileError(str(exc)) from exc


def _document_kind(name: str) -> DocumentKind:
    try:
        return DocumentKind.from_alias(name)
    except ValueError as exc:
        raise ProfileError(str(exc)) from exc


def _scale(name: str) -> str:
    if name not in SCALE_FACTORS:
        raise ProfileError(f"Unknown scale: {name}")
    return name


def _as_list(value: Union[str, List[str]]) -> List[str]:
    return [value] if isinstance(value, str) else list(value)


def _compile(pattern: str):
    try:
        return compile_pattern(pattern)
    except re.error as exc:
        raise ProfileError(f"Invalid pattern {pattern!r}: {exc}") from exc


def _compile_all(patterns: Union[str, List[str]]) -> list:
    return [_compile(pattern) for pattern in _as_list(patterns)]
