"""
Document adapter: turns HTML tables, layout text and presentation decks into
uniform grids of labelled rows.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Tuple, Union

from lxml import etree, html

from .data_models import CellRole, DocumentGrid, DocumentKind, GridCell, GridRow
from .exceptions import DocumentParseError
from .value_parser import CURRENCY_PATTERN, DASH_GLYPHS, looks_numeric

logger = logging.getLogger(__name__)

WHITESPACE = re.compile(r"\s+")
ZERO_WIDTH = re.compile("[\u200b\u200c\u200d\ufeff]")
LENGTH_PATTERN = re.compile(r"(-?[\d.]+)\s*(pt|px|em|%)?")
LAYOUT_COLUMN_GAP = re.compile(r"\s{2,}")
LAYOUT_BLOCK_BREAK = re.compile(r"\f|\n(?:[ \t]*\n)+")
CURRENCY_SPLIT = re.compile(r"\s(?=(?:US|NT)?\$\s*[\d(])")
SUFFIX_TOKENS = {")", "%", ")%"}

HEADING_LOOKBACK = 6
MAX_HEADING_LENGTH = 200


def clean_text(text: Optional[str]) -> str:
    """Collapse whitespace (non-breaking spaces included) and drop zero-width marks."""
    if not text:
        return ""
    return WHITESPACE.sub(" ", ZERO_WIDTH.sub("", text)).strip()


def _is_currency_symbol(text: str) -> bool:
    return bool(CURRENCY_PATTERN.fullmatch(text.strip()))


def _is_dash(text: str) -> bool:
    return bool(text) and all(ch in DASH_GLYPHS for ch in text)


@dataclass(frozen=True)
class ShadowTextSignature:
    """Style signature of the invisible text layer in presentation decks."""

    max_font_size: float = 1.0
    colors: Tuple[str, ...] = ("white", "#fff", "#ffffff", "transparent")
    require_color: bool = True
    min_run_length: int = 20

    def matches(self, font_size: Optional[float], color: Optional[str]) -> bool:
        if font_size is None or font_size > self.max_font_size:
            return False
        if not self.require_color:
            return True
        return color is not None and color in self.colors


class DocumentAdapter:
    """Adapter from raw document bytes to a container of grids."""

    def __init__(self, shadow_signature: Optional[ShadowTextSignature] = None):
        self.shadow_signature = shadow_signature or ShadowTextSignature()

    def adapt(
        self, document_bytes: Union[bytes, str], document_kind: Union[str, DocumentKind]
    ) -> DocumentGrid:
        """
        Adapt a document into grids.

        Args:
            document_bytes: Raw document content
            document_kind: Layout family (``table_html``, ``layout_text`` or
                ``shadow_text_deck``) or an alias of one

        Returns:
            Container grid whose ``tables`` hold one grid per table or text
            block; empty when the document has no qualifying structure

        Raises:
            DocumentParseError: If the bytes cannot be decoded or parsed
        """
        kind = DocumentKind.from_alias(document_kind)

        if kind is DocumentKind.TABLE_HTML:
            container = self._adapt_table_html(document_bytes)
        elif kind is DocumentKind.LAYOUT_TEXT:
            container = self._adapt_layout_text(document_bytes)
        else:
            container = self._adapt_shadow_deck(document_bytes)

        container.kind = kind
        logger.debug(f"Adapted {kind.value} document into {len(container.tables)} grids")
        return container

    # ------------------------------------------------------------------
    # table_html

    def _adapt_table_html(self, document_bytes: Union[bytes, str]) -> DocumentGrid:
        root = _parse_html(document_bytes)
        container = DocumentGrid(source=root, text=clean_text(" ".join(root.itertext())))

        for table in root.iter("table"):
            rows = []
            for tr in _own_rows(table):
                row = self._html_row(tr, len(rows))
                if row is not None:
                    rows.append(row)
            if not rows:
                continue

            grid = _finish_grid(rows, len(container.tables))
            grid.heading = _preceding_heading(table)
            container.elements[table] = grid.table_index
            container.tables.append(grid)

        return container

    def _html_row(self, tr, index: int) -> Optional[GridRow]:
        cells: List[GridCell] = []

        for td in tr:
            if not isinstance(td.tag, str) or td.tag.lower() not in ("td", "th"):
                continue
            # A nested table is adapted as a grid of its own.
            if td.find(".//table") is not None:
                continue
            if _is_tiny(td):
                continue
            text = clean_text(" ".join(td.itertext()))
            align = _alignment(td)

            # An empty right-aligned cell keeps its column as "no value";
            # unaligned empty cells are spacers.
            if not text:
                if align == "right":
                    cells.append(GridCell(text="", role=CellRole.VALUE, align=align))
                continue
            if _is_currency_symbol(text):
                continue

            # Closing parens and percent signs often sit in their own cell.
            if (
                text in SUFFIX_TOKENS
                and cells
                and cells[-1].role is CellRole.VALUE
                and cells[-1].text
            ):
                cells[-1] = replace(cells[-1], text=cells[-1].text + text)
                continue

            valign = (td.get("valign") or _style(td).get("vertical-align") or "").lower() or None
            indent = _indent(td)
            colspan = _int_attribute(td, "colspan")

            if looks_numeric(text) or align == "right":
                role = CellRole.VALUE
            elif align == "left" or valign == "top" or indent or colspan >= 2:
                role = CellRole.LABEL
            else:
                role = CellRole.OTHER

            cells.append(
                GridCell(
                    text=text,
                    role=role,
                    align=align,
                    indent=indent,
                    colspan=colspan,
                    valign=valign,
                )
            )

        if not any(cell.text for cell in cells):
            return None

        if not any(cell.role is CellRole.LABEL for cell in cells):
            for position, cell in enumerate(cells):
                if any(ch.isalpha() for ch in cell.text) and not looks_numeric(cell.text):
                    cells[position] = replace(cell, role=CellRole.LABEL)
                    break

        return GridRow(cells=cells, index=index)

    # ------------------------------------------------------------------
    # layout_text

    def _adapt_layout_text(self, document_bytes: Union[bytes, str]) -> DocumentGrid:
        text = _decode(document_bytes)
        container = DocumentGrid(text=clean_text(text))

        # Blocks without any values (titles, unit lines) head the next block.
        pending: List[str] = []
        for block in LAYOUT_BLOCK_BREAK.split(text):
            lines = pending + [line for line in block.splitlines() if line.strip()]
            rows = _layout_rows(lines)
            if not rows:
                continue
            if not any(row.values for row in rows):
                pending = lines
                continue
            pending = []
            self._append_layout_grid(container, rows)

        if pending:
            self._append_layout_grid(container, _layout_rows(pending))
        return container

    @staticmethod
    def _append_layout_grid(container: DocumentGrid, rows: List[GridRow]) -> None:
        grid = _finish_grid(rows, len(container.tables))
        grid.heading = next((row.label for row in rows if not row.values and row.label), None)
        container.tables.append(grid)

    # ------------------------------------------------------------------
    # shadow_text_deck

    def _adapt_shadow_deck(self, document_bytes: Union[bytes, str]) -> DocumentGrid:
        root = _parse_html(document_bytes)
        container = DocumentGrid()
        runs: List[str] = []

        for element in root.iter():
            if not isinstance(element.tag, str):
                continue
            if not self._is_shadow(element):
                continue
            parent = element.getparent()
            if parent is not None and self._is_shadow(parent):
                continue

            text = clean_text(" ".join(element.itertext()))
            if len(text) < self.shadow_signature.min_run_length:
                continue
            runs.append(text)

            rows = [
                _text_row(label, values, index)
                for index, (label, values) in enumerate(split_label_value_runs(text))
                if label
            ]
            if not rows:
                continue
            grid = _finish_grid(rows, len(container.tables))
            grid.heading = rows[0].label[:120]
            grid.text = text
            container.tables.append(grid)

        container.text = " ".join(runs)
        if not runs:
            logger.debug("No invisible text layer found in presentation deck")
        return container

    def _is_shadow(self, element) -> bool:
        font_size, color = _effective_style(element)
        return self.shadow_signature.matches(font_size, color)


_DEFAULT_ADAPTER = DocumentAdapter()


def adapt(
    document_bytes: Union[bytes, str], document_kind: Union[str, DocumentKind]
) -> DocumentGrid:
    """Adapt a document with the default adapter settings."""
    return _DEFAULT_ADAPTER.adapt(document_bytes, document_kind)


def split_label_value_runs(text: str) -> List[Tuple[str, List[str]]]:
    """
    Split flowing text into (label, values) runs.

    "Total Assets 7,933.02 100.0 % Total Liabilities 2,472.23" gives
    [("Total Assets", ["7,933.02", "100.0%"]), ("Total Liabilities", ["2,472.23"])].
    A dash counts as a value only next to other values, so prose dashes stay
    in labels.
    """
    tokens = text.split()
    runs: List[Tuple[str, List[str]]] = []
    label_words: List[str] = []
    values: List[str] = []

    for position, token in enumerate(tokens):
        if _is_currency_symbol(token):
            continue
        if token in SUFFIX_TOKENS and values:
            values[-1] += token
            continue

        numeric = looks_numeric(token)
        if numeric and _is_dash(token) and not values:
            following = tokens[position + 1] if position + 1 < len(tokens) else ""
            numeric = looks_numeric(following) and not _is_dash(following)

        if numeric:
            values.append(token)
            continue

        if values:
            runs.append((" ".join(label_words), values))
            label_words, values = [], []
        label_words.append(token)

    if label_words or values:
        runs.append((" ".join(label_words), values))
    return runs


def _decode(document_bytes: Union[bytes, str]) -> str:
    if isinstance(document_bytes, str):
        text = document_bytes
    else:
        try:
            text = document_bytes.decode("utf-8")
        except UnicodeDecodeError:
            try:
                text = document_bytes.decode("cp1252")
            except UnicodeDecodeError as exc:
                raise DocumentParseError(f"Unable to decode text document: {exc}") from exc
    if "\x00" in text:
        raise DocumentParseError("Text document contains binary data")
    return text


def _parse_html(document_bytes: Union[bytes, str]):
    if isinstance(document_bytes, str):
        document_bytes = document_bytes.encode("utf-8")
    if not document_bytes or not document_bytes.strip():
        raise DocumentParseError("Document is empty")
    try:
        root = html.fromstring(document_bytes)
    except (etree.ParserError, ValueError) as exc:
        raise DocumentParseError(f"Unable to parse HTML document: {exc}") from exc

    for node in root.xpath("//script|//style"):
        node.drop_tree()
    return root


def _own_rows(table) -> Iterable:
    """Rows of ``table`` itself, not of tables nested inside it."""
    for tr in table.iter("tr"):
        owner = next(tr.iterancestors("table"), None)
        if owner is table:
            yield tr


def _style(element) -> Dict[str, str]:
    declarations: Dict[str, str] = {}
    for declaration in (element.get("style") or "").split(";"):
        name, _, value = declaration.partition(":")
        if value:
            declarations[name.strip().lower()] = value.strip().lower()
    return declarations


def _length(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    match = LENGTH_PATTERN.match(value.strip())
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def _declared_align(element) -> Optional[str]:
    value = _style(element).get("text-align") or element.get("align")
    return value.strip().lower() if value else None


def _alignment(cell) -> Optional[str]:
    # An inner paragraph's alignment wins over the cell's own.
    for inner in cell.iterdescendants("p", "div"):
        align = _declared_align(inner)
        if align:
            return align
    return _declared_align(cell)


def _indent(cell) -> int:
    for element in [cell, *cell.iterdescendants("p", "div", "span")]:
        style = _style(element)
        for name in ("padding-left", "margin-left", "text-indent"):
            size = _length(style.get(name))
            if size and size > 0:
                return int(size)
    return 0


def _is_tiny(cell) -> bool:
    for element in [cell, *cell.iterchildren("p", "span", "font")]:
        size = _length(_style(element).get("font-size"))
        if size is not None and size <= 1:
            return True
    return False


def _int_attribute(element, name: str) -> int:
    try:
        return max(int(element.get(name, "1")), 1)
    except ValueError:
        return 1


def _effective_style(element) -> Tuple[Optional[float], Optional[str]]:
    """Font size and colour in effect for ``element``, inherited from ancestors."""
    font_size: Optional[float] = None
    color: Optional[str] = None
    node = element
    while node is not None and (font_size is None or color is None):
        if isinstance(node.tag, str):
            style = _style(node)
            if font_size is None and "font-size" in style:
                font_size = _length(style["font-size"])
            if color is None:
                declared = style.get("color") or node.get("color")
                if declared:
                    color = declared.strip().lower()
        node = node.getparent()
    return font_size, color


def _preceding_heading(table, max_hops: int = HEADING_LOOKBACK) -> Optional[str]:
    """Nearest short block of text before ``table``, within ``max_hops`` nodes."""
    node = table
    hops = 0
    while node is not None and hops < max_hops:
        sibling = node.getprevious()
        if sibling is None:
            node = node.getparent()
            if node is None or node.tag in ("body", "html"):
                return None
            hops += 1
            continue

        node = sibling
        hops += 1
        if not isinstance(sibling.tag, str):
            continue
        if sibling.tag == "table" or sibling.find(".//table") is not None:
            return None

        text = clean_text(" ".join(sibling.itertext()))
        if not text:
            continue
        return text if len(text) <= MAX_HEADING_LENGTH else None

    return None


def _numeric_tokens(text: str) -> Optional[List[str]]:
    """Value tokens of a segment (currency signs dropped), or None when it holds any word."""
    tokens: List[str] = []
    for token in text.split():
        if _is_currency_symbol(token):
            continue
        if token in SUFFIX_TOKENS and tokens:
            tokens[-1] += token
            continue
        if not looks_numeric(token):
            return None
        tokens.append(token)
    return tokens


def _parse_layout_line(line: str) -> Tuple[str, List[str]]:
    label_parts: List[str] = []
    values: List[str] = []

    for segment in LAYOUT_COLUMN_GAP.split(line.strip()):
        if not segment:
            continue
        tokens = _numeric_tokens(segment)
        if tokens is not None:
            values.extend(tokens)
            continue
        if values:
            break

        split = CURRENCY_SPLIT.split(segment, maxsplit=1)
        if len(split) == 2:
            trailing = _numeric_tokens(split[1])
            if trailing is not None:
                label_parts.append(split[0])
                values.extend(trailing)
                continue
        label_parts.append(segment)

    return " ".join(label_parts), values


def _layout_rows(lines: List[str]) -> List[GridRow]:
    parsed = [(_parse_layout_line(line), len(line) - len(line.lstrip())) for line in lines]
    rows: List[GridRow] = []
    position = 0

    while position < len(parsed):
        (label, values), indent = parsed[position]

        # Wrapped labels: "Total equity" / "investments   8,000", or a label
        # whose numbers were pushed onto the next line.
        if label and not values and position + 1 < len(parsed):
            (next_label, next_values), _ = parsed[position + 1]
            if next_values and (not next_label or next_label[:1].islower()):
                label = f"{label} {next_label}".strip()
                values = next_values
                position += 1

        if label or values:
            rows.append(_text_row(label, values, len(rows), indent))
        position += 1

    return rows


def _text_row(label: str, values: List[str], index: int, indent: int = 0) -> GridRow:
    cells = []
    if label:
        cells.append(GridCell(text=label, role=CellRole.LABEL, align="left", indent=indent))
    cells.extend(GridCell(text=value, role=CellRole.VALUE, align="right") for value in values)
    return GridRow(cells=cells, index=index)


def _finish_grid(rows: List[GridRow], table_index: int) -> DocumentGrid:
    caption_parts = []
    for row in rows[:3]:
        if row.values:
            break
        if row.label:
            caption_parts.append(row.label)

    text = " ".join(cell.text for row in rows for cell in row.cells)
    return DocumentGrid(
        rows=rows,
        table_index=table_index,
        caption=" ".join(caption_parts),
        text=text,
    )
