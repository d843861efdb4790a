"""
Table/section locator: picks the grid that holds a given statement.

Each statement concept has a ranked list of anchors. A grid's score is the
sum of the weights of the anchors it matches; heading anchors may also be
satisfied by walking forward from a heading element in the HTML tree to the
first table that follows it.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .constants import StatementConcept
from .data_models import (
    Anchor,
    DocumentGrid,
    ExtractionConfig,
    NotFound,
    Section,
    classify_concept,
)
from .label_matcher import normalize_label

logger = logging.getLogger(__name__)

ANCHOR_KINDS = ("heading", "co_occurrence", "phrase")
NON_HEADING_TAGS = {"html", "body", "head", "table", "tbody", "thead", "tfoot", "tr", "td", "th"}
MAX_HEADING_TEXT = 300
MAX_HEADING_CHILDREN = 12

DEFAULT_ANCHORS: Dict[StatementConcept, List[Anchor]] = {
    StatementConcept.INCOME_STATEMENT: [
        Anchor("heading", ("statements of operations", "statement of operations"), 3.0),
        Anchor("heading", ("income statements", "statements of income"), 3.0),
        Anchor("heading", ("statements of earnings",), 3.0),
        Anchor("co_occurrence", ("revenue", "net income"), 2.0),
        Anchor("co_occurrence", ("net sales", "net income"), 2.0),
        Anchor("phrase", ("operating income", "income from operations", "operating expenses"), 1.0),
        Anchor("phrase", ("per share",), 0.5),
    ],
    StatementConcept.BALANCE_SHEET: [
        Anchor("heading", ("balance sheets", "balance sheet"), 3.0),
        Anchor("heading", ("statements of financial position", "financial position"), 3.0),
        Anchor("co_occurrence", ("cash and cash equivalents", "total assets"), 2.0),
        Anchor("co_occurrence", ("total liabilities", "equity"), 1.0),
    ],
    StatementConcept.CASH_FLOW: [
        Anchor("heading", ("statements of cash flows", "statement of cash flows"), 3.0),
        Anchor("co_occurrence", ("operating activities", "investing activities"), 2.0),
        Anchor("phrase", ("financing activities",), 1.0),
        Anchor("phrase", ("cash and cash equivalents, beginning of period",), 0.5),
    ],
    StatementConcept.SEGMENT_REVENUE: [
        Anchor("heading", ("segment information", "revenue by segment", "net sales by reportable segment"), 3.0),
        Anchor("co_occurrence", ("segment", "revenue"), 1.5),
        Anchor("co_occurrence", ("segment", "net sales"), 1.5),
    ],
    StatementConcept.SEGMENT_PROFIT: [
        Anchor("heading", ("segment operating income", "segment operating profit"), 3.0),
        Anchor("co_occurrence", ("segment", "operating income"), 2.0),
        Anchor("co_occurrence", ("segment", "operating profit"), 2.0),
    ],
    StatementConcept.INVESTMENTS: [
        Anchor("heading", ("equity investments", "investments"), 2.0),
        Anchor("phrase", ("marketable equity securities", "non-marketable equity"), 1.0),
        Anchor("co_occurrence", ("equity", "investments", "total"), 1.0),
    ],
}


def _fold(text: Optional[str]) -> str:
    return normalize_label(text).lower()


def validate_anchor(anchor: Anchor) -> Anchor:
    if anchor.kind not in ANCHOR_KINDS:
        raise ValueError(f"Unknown anchor kind: {anchor.kind}")
    if not anchor.phrases:
        raise ValueError("Anchor needs at least one phrase")
    return anchor


class SectionLocator:
    """Locate the grid holding a statement concept inside a document."""

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        anchors: Optional[Dict[StatementConcept, List[Anchor]]] = None,
    ):
        """Initialize the locator.

        Args:
            config: Scoring thresholds and heading walk bound
            anchors: Per-concept anchor overrides; concepts not listed use
                the built-in anchors
        """
        self.config = config or ExtractionConfig()
        self.anchors = dict(DEFAULT_ANCHORS)
        if anchors:
            self.anchors.update(anchors)

    def locate(
        self,
        grid_source: DocumentGrid,
        concept: Union[StatementConcept, str],
        anchors: Optional[Sequence[Anchor]] = None,
        exclude: Optional[Iterable[str]] = None,
    ) -> Union[Section, NotFound]:
        """
        Find the best grid for a statement concept.

        Args:
            grid_source: Container returned by the document adapter
            concept: Statement concept to look for
            anchors: Anchors to use instead of the configured ones
            exclude: Phrases that disqualify a grid outright

        Returns:
            Section for the best grid, or NotFound when no grid reaches the
            minimum score
        """
        concept = classify_concept(concept)
        anchors = [validate_anchor(anchor) for anchor in (anchors or self.anchors.get(concept, []))]
        excluded = [_fold(phrase) for phrase in (exclude or []) if phrase]

        grids = grid_source.tables or ([grid_source] if grid_source.rows else [])
        if not grids:
            return NotFound(concept, "document has no tables or text blocks")

        heading_hits = self._heading_walk(grid_source, anchors)

        candidates = []
        for grid in grids:
            if excluded:
                text = _fold(f"{grid.heading or ''} {grid.text}")
                if any(phrase in text for phrase in excluded):
                    logger.debug(f"Grid {grid.table_index} excluded for {concept.value}")
                    continue
            score, matched, via_heading = self._score(
                grid, anchors, heading_hits.get(grid.table_index, set())
            )
            if score > 0:
                candidates.append((score, grid, matched, via_heading))

        if not candidates:
            return NotFound(concept, "no grid matched any anchor")

        score, grid, matched, via_heading = max(
            candidates, key=lambda candidate: self._rank(candidate[0], candidate[1])
        )
        if score < self.config.min_score:
            return NotFound(
                concept,
                f"best score {score:g} below minimum {self.config.min_score:g}",
                best_score=score,
            )

        logger.debug(
            f"Located {concept.value} in grid {grid.table_index} "
            f"(score {score:g}, {grid.row_count} rows)"
        )
        return Section(
            concept=concept,
            grid=grid,
            score=score,
            strategy="heading" if via_heading else "content",
            matched_anchors=matched,
        )

    def _rank(self, score: float, grid: DocumentGrid) -> Tuple[float, int, int, int]:
        low, high = self.config.preferred_rows
        preferred = 1 if low <= grid.row_count <= high else 0
        return (score, preferred, -grid.row_count, -grid.table_index)

    @staticmethod
    def _score(
        grid: DocumentGrid, anchors: Sequence[Anchor], heading_hits: Set[int]
    ) -> Tuple[float, List[str], bool]:
        heading_text = _fold(f"{grid.heading or ''} {grid.caption}")
        text = _fold(grid.text)
        score = 0.0
        matched: List[str] = []
        via_heading = False

        for position, anchor in enumerate(anchors):
            phrases = [_fold(phrase) for phrase in anchor.phrases]
            if anchor.kind == "heading":
                hit = position in heading_hits or any(phrase in heading_text for phrase in phrases)
                via_heading = via_heading or hit
            elif anchor.kind == "co_occurrence":
                hit = all(phrase in text for phrase in phrases)
            else:
                hit = any(phrase in text for phrase in phrases)

            if hit:
                score += anchor.weight
                matched.append(f"{anchor.kind}:{' + '.join(anchor.phrases)}")

        return score, matched, via_heading

    def _heading_walk(
        self, grid_source: DocumentGrid, anchors: Sequence[Anchor]
    ) -> Dict[int, Set[int]]:
        """Map table index to the heading anchors whose heading leads to that table."""
        root = grid_source.source
        heading_anchors = [
            (position, [_fold(phrase) for phrase in anchor.phrases])
            for position, anchor in enumerate(anchors)
            if anchor.kind == "heading"
        ]
        if root is None or not grid_source.elements or not heading_anchors:
            return {}

        hits: Dict[int, Set[int]] = {}
        for element in root.iter():
            if not isinstance(element.tag, str) or element.tag in NON_HEADING_TAGS:
                continue
            if len(element) > MAX_HEADING_CHILDREN or element.find(".//table") is not None:
                continue
            text = _fold(" ".join(element.itertext()))
            if not text or len(text) > MAX_HEADING_TEXT:
                continue

            matched = [
                position
                for position, phrases in heading_anchors
                if any(phrase in text for phrase in phrases)
            ]
            if not matched:
                continue
            # Titles printed inside a table are scored from the grid caption.
            if next(element.iterancestors("table"), None) is not None:
                continue

            table = self._walk_to_table(element)
            if table is None:
                logger.debug(f"No table within {self.config.heading_max_hops} nodes of heading: {text[:80]}")
                continue
            index = grid_source.elements.get(table)
            if index is not None:
                hits.setdefault(index, set()).update(matched)

        return hits

    def _walk_to_table(self, heading):
        """First table reached from ``heading`` within the configured hop bound."""
        node = heading
        hops = 0
        while hops < self.config.heading_max_hops:
            sibling = node.getnext()
            if sibling is None:
                parent = node.getparent()
                if parent is None or parent.tag in ("body", "html"):
                    return None
                node = parent
                hops += 1
                continue

            node = sibling
            hops += 1
            if not isinstance(sibling.tag, str):
                continue
            if sibling.tag == "table":
                return sibling
            nested = sibling.find(".//table")
            if nested is not None:
                return nested

        return None
