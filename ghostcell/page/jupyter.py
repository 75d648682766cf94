"""Jupyter adapter: cells and caret from classic Jupyter's CodeMirror markup.

Jupyter does not expose a selection offset at all. The caret offset is
inferred from geometry instead: the caret's bounding box is compared against
the bounding boxes of the lines of text in the focused cell.

The character-width estimate assumes a monospaced font with one glyph per
character. Proportional fonts, combining characters and wide (CJK) glyphs are
not supported.
"""

from __future__ import annotations

import logging

from ghostcell.core import StructureError
from ghostcell.page.dom import DocumentView, Element, Rect
from ghostcell.page.model import CaretPosition, CellKind, CellSnapshot

logger = logging.getLogger("ghostcell.page.jupyter")

# Caret and line tops come from the same layout pass and agree exactly.
LINE_TOP_EPSILON = 1e-4
# The caret's left edge jitters by sub-pixel amounts around the text end.
LINE_END_EPSILON = 1.0


def line_content(line: Element) -> str:
    """Text of a `pre.CodeMirror-line`, without CodeMirror's zero-width spaces."""
    return line.text.replace("\u200b", "").replace("\u00a0", " ")


def _line_text_node(document: DocumentView, line: Element) -> Element:
    # This span is exactly as wide as the line's text.
    spans = document.query_all("span[role=presentation]", line)
    if len(spans) != 1:
        raise StructureError(f"Expected exactly one text span per code line, found {len(spans)}")
    return spans[0]


def _cell_kind(cell: Element) -> CellKind:
    return CellKind.CODE if cell.has_class("code_cell") else CellKind.TEXT


def _cell_text(document: DocumentView, cell: Element) -> str:
    lines = document.query_all("pre.CodeMirror-line", cell)
    for line in lines:
        _line_text_node(document, line)
    return "\n".join(line_content(line) for line in lines)


def caret_offset_in_line(caret: Rect, text_rect: Rect, length: int) -> int:
    """Estimate how many characters precede the caret on its line."""
    if length == 0 or text_rect.width == 0:
        return 0
    character_width = text_rect.width / length
    return round((caret.left - text_rect.left) / character_width)


class JupyterAdapter:
    """Notebook adapter for classic Jupyter."""

    def extract_cells(self, document: DocumentView) -> list[CellSnapshot]:
        cells: list[CellSnapshot] = []
        for index, cell in enumerate(document.query_all("div.cell")):
            kind = _cell_kind(cell)
            # Markdown sources are not reconstructed.
            text = _cell_text(document, cell) if kind == CellKind.CODE else ""
            cells.append(CellSnapshot(index=index, kind=kind, text=text))
        return cells

    def extract_caret(self, document: DocumentView, cells: list[CellSnapshot] | None) -> CaretPosition | None:
        cell_nodes = document.query_all("div.cell")
        # `.cell.selected` is not enough: a cell can be selected without being edited.
        focused_index = next(
            (
                i
                for i, cell in enumerate(cell_nodes)
                if document.query("div.CodeMirror.CodeMirror-focused", cell) is not None
            ),
            None,
        )
        if focused_index is None:
            return None

        if document.query(".CodeMirror-selected") is not None:
            return None

        focused = cell_nodes[focused_index]
        textarea = document.query("textarea", focused)
        if textarea is None or textarea.parent is None:
            raise StructureError("Expected the focused cell to have a caret input")
        caret = document.bounding_rect(textarea.parent)

        lines = document.query_all("pre.CodeMirror-line", focused)
        line_number = next(
            (i for i, line in enumerate(lines) if abs(document.bounding_rect(line).top - caret.top) < LINE_TOP_EPSILON),
            None,
        )
        if line_number is None:
            raise StructureError("Could not determine the line number the caret is on")

        line = lines[line_number]
        text_rect = document.bounding_rect(_line_text_node(document, line))
        contents = [line_content(node) for node in lines[:line_number]]
        in_line = caret_offset_in_line(caret, text_rect, len(line_content(line)))
        offset = sum(len(c) for c in contents) + in_line + line_number

        is_at_line_end = abs(caret.left - text_rect.right) < LINE_END_EPSILON
        logger.debug(
            "caret cell=%d line=%d offset=%d at_end=%s", focused_index, line_number, offset, is_at_line_end
        )
        return CaretPosition(
            focused_cell_index=focused_index,
            focused_cell_kind=_cell_kind(focused),
            line=line_number,
            is_at_line_end=is_at_line_end,
            offset=offset,
        )
