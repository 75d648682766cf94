"""Colab adapter: cells and caret from Colab's Monaco-based markup.

Colab "virtualizes" its cells. Off-screen cells do not mount a live editor,
so their text has to be rebuilt from a pre-rendered fallback node.
"""

from __future__ import annotations

from ghostcell.core import StructureError
from ghostcell.page.dom import DocumentView, Element, parse_offset_top
from ghostcell.page.model import CaretPosition, CellKind, CellSnapshot

_NBSP = "\u00a0"


def _normalize(text: str) -> str:
    # Colab displays non-breaking spaces rather than regular spaces.
    return text.replace(_NBSP, " ")


def query_cell_lines(document: DocumentView, cell: Element) -> list[Element]:
    """Return a cell's `.view-line` nodes in visual order.

    Monaco positions each line absolutely and does not keep them in document
    order, so they are sorted by their rendered `top` offset.
    """
    lines = document.query_all(".view-line", cell)
    return sorted(lines, key=lambda line: parse_offset_top(document.computed_top(line)))


def _line_text(line: Element) -> str:
    spans = [child for child in line.children if child.tag == "span"]
    if len(spans) != 1:
        raise StructureError(f"Expected exactly one text span per code line, found {len(spans)}")
    return _normalize(spans[0].text)


def _virtualized_text(document: DocumentView, editor: Element) -> str:
    content = document.query("pre.lazy-virtualized > pre.monaco-colorized", editor)
    if content is None:
        raise StructureError(
            'Expected each off-screen non-rendered cell to have a <pre class="lazy-virtualized..."> element'
        )

    parts: list[str] = []
    for node in content.children:
        if node.tag == "span":
            parts.append(node.text)
        elif node.tag == "br":
            parts.append("\n")
        else:
            raise StructureError(f"Unexpected tag type {node.tag!r}")
    return _normalize("".join(parts))


def _cell_kind(cell: Element) -> CellKind:
    return CellKind.CODE if cell.has_class("code") else CellKind.TEXT


def _cell_text(document: DocumentView, cell: Element) -> str:
    if document.query(".markdown", cell) is not None:
        # Markdown cells are not rendered back to source.
        return ""

    editor = document.query("div.lazy-editor", cell)
    if editor is None:
        raise StructureError("Expected code cell to have an editor component")

    if document.query(".monaco", editor) is not None:
        return "\n".join(_line_text(line) for line in query_cell_lines(document, editor))
    return _virtualized_text(document, editor)


class ColabAdapter:
    """Notebook adapter for Colab."""

    def extract_cells(self, document: DocumentView) -> list[CellSnapshot]:
        cells: list[CellSnapshot] = []
        for index, cell in enumerate(document.query_all("div.cell")):
            kind = _cell_kind(cell)
            text = _cell_text(document, cell) if kind == CellKind.CODE else ""
            cells.append(CellSnapshot(index=index, kind=kind, text=text))
        return cells

    def extract_caret(self, document: DocumentView, cells: list[CellSnapshot] | None) -> CaretPosition | None:
        if cells is None:
            return None

        # `.cell.focused` is also set on merely selected cells; only the
        # editor's own focus marker means the user is typing in it.
        cell_nodes = document.query_all("div.cell")
        focused_index = next(
            (i for i, cell in enumerate(cell_nodes) if document.query("div.monaco-editor.focused", cell) is not None),
            None,
        )
        if focused_index is None or focused_index >= len(cells):
            return None

        input_area = document.query("textarea.inputarea", cell_nodes[focused_index])
        # No input area when the focused cell is off-screen.
        selection = document.selection_range(input_area) if input_area is not None else None
        if selection is None:
            return None
        start, end = selection
        if start != end:
            return None

        text = cells[focused_index].text
        after = text[start:]
        return CaretPosition(
            focused_cell_index=focused_index,
            focused_cell_kind=_cell_kind(cell_nodes[focused_index]),
            line=text[:start].count("\n"),
            is_at_line_end=after == "" or after.startswith("\n"),
            offset=start,
        )
