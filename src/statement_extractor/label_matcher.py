"""
Label matcher for mapping printed row labels to canonical metric keys.

Pattern sets are ordered: the first pattern that matches a label decides its
key. Section delimiters let identical labels ("Basic", "Diluted", "Total")
resolve to different keys depending on the block of rows they sit in.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Pattern, Tuple

from .constants import StatementConcept
from .data_models import Anchor

logger = logging.getLogger(__name__)

APOSTROPHES = str.maketrans({"’": "'", "‘": "'", "`": "'", "´": "'", "′": "'"})
FOOTNOTE_PREFIX = re.compile(r"^(?:\(\d{1,2}\)|\*+)\s*")
FOOTNOTE_SUFFIX = re.compile(r"\s*(?:\(\d{1,2}\)|\*+)$")
WHITESPACE = re.compile(r"\s+")

MATCH_MODES = ("full", "search")


def normalize_label(text: Optional[str]) -> str:
    """
    Normalize a printed row label for matching.

    Folds full-width characters and non-breaking spaces (NFKC), apostrophe
    variants, HTML colon entities, footnote markers, trailing colons and
    runs of whitespace. Case is kept; matching is case-insensitive.
    """
    if not text:
        return ""
    label = unicodedata.normalize("NFKC", text)
    label = label.replace("&#58;", ":").replace("&nbsp;", " ")
    label = label.translate(APOSTROPHES)
    label = WHITESPACE.sub(" ", label).strip()
    label = FOOTNOTE_PREFIX.sub("", label)
    label = FOOTNOTE_SUFFIX.sub("", label)
    return label.rstrip(":").strip()


def compile_pattern(pattern: str) -> Pattern:
    return re.compile(pattern, re.IGNORECASE)


def _matches(patterns: Iterable[Pattern], label: str, match_mode: str) -> bool:
    for pattern in patterns:
        found = pattern.fullmatch(label) if match_mode == "full" else pattern.search(label)
        if found:
            return True
    return False


@dataclass
class LabelPattern:
    """Patterns that map a row label to one metric key."""

    key: str
    patterns: List[Pattern]
    section: Optional[str] = None  # only matches inside this named section

    def matches(self, label: str, match_mode: str = "full") -> bool:
        return _matches(self.patterns, label, match_mode)


@dataclass
class SectionDelimiter:
    """Rows that open and close a named block of rows.

    A start row is consumed by the tracker. An end row closes the block and
    is then classified as an ordinary row. ``close_after`` closes the block
    as soon as one of the listed keys has been assigned.
    """

    name: str
    start: List[Pattern]
    end: List[Pattern] = field(default_factory=list)
    close_after: Tuple[str, ...] = ()


@dataclass
class NarrativePattern:
    """Regex over prose; its first group captures the amount text."""

    key: str
    pattern: Pattern


@dataclass
class LabelPatternSet:
    """Ordered label patterns plus location hints for one statement concept."""

    concept: StatementConcept
    patterns: List[LabelPattern]
    delimiters: List[SectionDelimiter] = field(default_factory=list)
    skip: List[Pattern] = field(default_factory=list)
    narrative: List[NarrativePattern] = field(default_factory=list)
    anchors: List[Anchor] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    match_mode: str = "full"
    value_column: int = 0
    fiscal_years: Optional[Tuple[int, int]] = None
    expected: Optional[List[str]] = None

    def __post_init__(self):
        if self.match_mode not in MATCH_MODES:
            raise ValueError(f"Unknown match mode: {self.match_mode}")

    @property
    def keys(self) -> List[str]:
        """Metric keys in declared order, without duplicates."""
        seen: List[str] = []
        for pattern in self.patterns:
            if pattern.key not in seen:
                seen.append(pattern.key)
        for narrative in self.narrative:
            if narrative.key not in seen:
                seen.append(narrative.key)
        return seen

    @property
    def expected_keys(self) -> List[str]:
        return list(self.expected) if self.expected is not None else self.keys

    def applies_to(self, fiscal_year: int) -> bool:
        if self.fiscal_years is None:
            return True
        start, end = self.fiscal_years
        return start <= fiscal_year <= end


def classify(
    row_label_text: str, pattern_set: LabelPatternSet, section: Optional[str] = None
) -> Optional[str]:
    """
    Classify a row label against a pattern set.

    Args:
        row_label_text: Label as printed in the document
        pattern_set: Ordered patterns; the first match wins
        section: Name of the section the row sits in, if any

    Returns:
        Metric key, or None for unmatched and skipped rows
    """
    label = normalize_label(row_label_text)
    if not label:
        return None
    if _matches(pattern_set.skip, label, "search"):
        logger.debug(f"Skipping row: {label}")
        return None

    for pattern in pattern_set.patterns:
        if pattern.section is not None and pattern.section != section:
            continue
        if pattern.matches(label, pattern_set.match_mode):
            return pattern.key
    return None


class SectionTracker:
    """State machine over section delimiter rows."""

    def __init__(self, delimiters: Iterable[SectionDelimiter], match_mode: str = "full"):
        self.delimiters = list(delimiters)
        self.match_mode = match_mode
        self.current: Optional[SectionDelimiter] = None

    @property
    def section(self) -> Optional[str]:
        return self.current.name if self.current else None

    def observe(self, label: str) -> bool:
        """Advance on a normalized row label; True when the row opened a section."""
        for delimiter in self.delimiters:
            if _matches(delimiter.start, label, self.match_mode):
                self.current = delimiter
                logger.debug(f"Entering section '{delimiter.name}' at row: {label}")
                return True

        if self.current and _matches(self.current.end, label, self.match_mode):
            logger.debug(f"Leaving section '{self.current.name}' at row: {label}")
            self.current = None
        return False

    def assigned(self, key: str) -> None:
        if self.current and key in self.current.close_after:
            self.current = None


class LabelMatcher:
    """Row-by-row matcher holding section state for one pass over one grid."""

    def __init__(self, pattern_set: LabelPatternSet):
        self.pattern_set = pattern_set
        self.tracker = SectionTracker(pattern_set.delimiters, pattern_set.match_mode)

    @property
    def section(self) -> Optional[str]:
        return self.tracker.section

    def classify(
        self, row_label_text: str, pattern_set: Optional[LabelPatternSet] = None
    ) -> Optional[str]:
        """Classify a label in the current section without advancing state."""
        return classify(row_label_text, pattern_set or self.pattern_set, self.section)

    def match_row(self, row_label_text: str) -> Optional[str]:
        """Advance section state for a row, then classify it."""
        label = normalize_label(row_label_text)
        if not label:
            return None
        if self.tracker.observe(label):
            return None
        return self.classify(label)

    def assigned(self, key: str) -> None:
        """Tell the matcher a key received its value."""
        self.tracker.assigned(key)
