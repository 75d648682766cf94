"""Observation loop: recompute the notebook model on every page mutation."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, Callable, Sequence
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from ghostcell.core import StructureError
from ghostcell.page.adapters import adapter_for, detect_variant
from ghostcell.page.dom import DocumentView
from ghostcell.page.model import CaretPosition, NotebookSnapshot, NotebookVariant

logger = logging.getLogger("ghostcell.page.observer")


class MutationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str = "subtree"
    target: str = "body"


MutationBatch = Sequence[MutationRecord]


class Page(Protocol):
    """Whatever currently holds the host document."""

    @property
    def document(self) -> DocumentView: ...


class Observation(BaseModel):
    model_config = ConfigDict(frozen=True)

    variant: NotebookVariant
    snapshot: NotebookSnapshot
    caret: CaretPosition | None = None


class ObservationLoop:
    """Publishes a fresh `Observation` for every non-empty mutation batch.

    Recomputation is total: no diffing, so intermediate DOM states never leak
    into the model. The notebook variant is detected once and then fixed for
    the lifetime of the page. A `StructureError` halts the loop for good.
    """

    def __init__(self, page: Page) -> None:
        self._page = page
        self._variant: NotebookVariant | None = None
        self._subscribers: list[Callable[[Observation], None]] = []
        self._failure: StructureError | None = None
        self.latest: Observation | None = None

    @property
    def variant(self) -> NotebookVariant | None:
        return self._variant

    @property
    def halted(self) -> bool:
        return self._failure is not None

    def subscribe(self, callback: Callable[[Observation], None]) -> Callable[[], None]:
        """Register a consumer; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def refresh(self) -> Observation | None:
        """Recompute as if the whole body had changed."""
        return self.on_mutations([MutationRecord()])

    def on_mutations(self, batch: MutationBatch) -> Observation | None:
        if not batch or self._failure is not None:
            return None

        document = self._page.document
        if self._variant is None:
            self._variant = detect_variant(document)
            if self._variant is None:
                return None
            logger.info("Detected %s notebook", self._variant)

        adapter = adapter_for(self._variant)
        try:
            cells = adapter.extract_cells(document)
            caret = adapter.extract_caret(document, cells)
        except StructureError as e:
            self._failure = e
            logger.error("Unrecognised %s markup, observation halted until reload: %s", self._variant, e)
            raise

        observation = Observation(
            variant=self._variant,
            snapshot=NotebookSnapshot(cells=tuple(cells)),
            caret=caret,
        )
        self.latest = observation
        for callback in list(self._subscribers):
            callback(observation)
        return observation

    async def run(self, source: AsyncIterable[MutationBatch]) -> None:
        """Consume mutation batches until the source ends or the loop halts."""
        async for batch in source:
            self.on_mutations(batch)
