"""Logical notebook model extracted from the host page.

Every value here is immutable: observation recomputes fresh snapshots on each
mutation batch instead of mutating old ones.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class NotebookVariant(StrEnum):
    COLAB = "colab"
    JUPYTER = "jupyter"


class CellKind(StrEnum):
    CODE = "CODE"
    TEXT = "TEXT"


class CellSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    kind: CellKind
    text: str


class NotebookSnapshot(BaseModel):
    """Ordered cells of a notebook, in document order."""

    model_config = ConfigDict(frozen=True)

    cells: tuple[CellSnapshot, ...] = ()

    @property
    def texts(self) -> list[str]:
        return [cell.text for cell in self.cells]


class CaretPosition(BaseModel):
    """A simplified representation of "where the user is" in their notebook.

    `offset` is the flat character offset of the caret inside the focused
    cell; `line` is the zero-based line it sits on.
    """

    model_config = ConfigDict(frozen=True)

    focused_cell_index: int
    focused_cell_kind: CellKind
    line: int
    is_at_line_end: bool
    offset: int = 0
