"""Notebook adapters: one implementation per host notebook UI."""

from __future__ import annotations

from typing import Protocol, runtime_checkable
from urllib.parse import urlparse

from ghostcell.page.colab import ColabAdapter
from ghostcell.page.dom import DocumentView
from ghostcell.page.jupyter import JupyterAdapter
from ghostcell.page.model import CaretPosition, CellSnapshot, NotebookVariant

COLAB_HOST_SUFFIX = "colab.research.google.com"
JUPYTER_SIGNATURE = "div[id=ipython-main-app]"


@runtime_checkable
class NotebookAdapter(Protocol):
    """Reads a live document tree into the logical notebook model."""

    def extract_cells(self, document: DocumentView) -> list[CellSnapshot]:
        """Return every cell in document order; raise StructureError on unknown markup."""
        ...

    def extract_caret(self, document: DocumentView, cells: list[CellSnapshot] | None) -> CaretPosition | None:
        """Return the collapsed caret position, or None when there is none."""
        ...


_ADAPTERS: dict[NotebookVariant, NotebookAdapter] = {
    NotebookVariant.COLAB: ColabAdapter(),
    NotebookVariant.JUPYTER: JupyterAdapter(),
}


def detect_variant(document: DocumentView) -> NotebookVariant | None:
    """Identify the host notebook UI, or None if it is not (yet) recognisable.

    Colab is known from the URL alone. Jupyter only becomes recognisable once
    its main app element has been rendered.
    """
    host = urlparse(document.url).hostname or ""
    if host.endswith(COLAB_HOST_SUFFIX):
        return NotebookVariant.COLAB
    if document.query(JUPYTER_SIGNATURE) is not None:
        return NotebookVariant.JUPYTER
    return None


def adapter_for(variant: NotebookVariant) -> NotebookAdapter:
    return _ADAPTERS[variant]
