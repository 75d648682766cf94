"""Build the language-model prompt from the text preceding the caret."""

from __future__ import annotations

from collections.abc import Sequence

from ghostcell.page.model import CaretPosition, CellKind, NotebookSnapshot

CELL_SEPARATOR = "\n\n"


def build_prompt(caret: CaretPosition | None, cell_texts: Sequence[str] | None) -> str | None:
    """Return everything before the caret, or None when no completion should be requested.

    No prompt is built when the caret is unknown, sits in a non-code cell, or
    is in the middle of a line. Cells after the focused one are never
    included: the model must not see "future" code.
    """
    if caret is None or cell_texts is None:
        return None
    if caret.focused_cell_kind != CellKind.CODE:
        return None
    if not caret.is_at_line_end:
        return None
    if not 0 <= caret.focused_cell_index < len(cell_texts):
        return None

    parts = [text + CELL_SEPARATOR for text in cell_texts[: caret.focused_cell_index]]
    lines = cell_texts[caret.focused_cell_index].split("\n")
    parts.append("\n".join(lines[: caret.line + 1]))
    return "".join(parts)


def prompt_for_snapshot(caret: CaretPosition | None, snapshot: NotebookSnapshot | None) -> str | None:
    return build_prompt(caret, snapshot.texts if snapshot is not None else None)
