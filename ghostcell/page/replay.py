"""Replay a sequence of HTML snapshots as page mutations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from pathlib import Path

from ghostcell.page.dom import HtmlDocument
from ghostcell.page.observer import MutationBatch, MutationRecord

logger = logging.getLogger("ghostcell.page.replay")


class SnapshotReplay:
    """Acts as both the page and its mutation source.

    Each step swaps in the next snapshot as the current document and emits a
    one-record batch. `prepare` runs on every new document before it is
    announced, which is where callers inject layout measurements.
    """

    def __init__(
        self,
        snapshots: Sequence[str | Path],
        *,
        url: str = "",
        delay_seconds: float = 0.0,
        prepare: Callable[[HtmlDocument], None] | None = None,
    ) -> None:
        self._snapshots = list(snapshots)
        self._url = url
        self._delay = delay_seconds
        self._prepare = prepare
        self._document = HtmlDocument("", url=url)

    @property
    def document(self) -> HtmlDocument:
        return self._document

    def _load(self, snapshot: str | Path) -> HtmlDocument:
        html = snapshot.read_text(encoding="utf-8") if isinstance(snapshot, Path) else snapshot
        document = HtmlDocument(html, url=self._url)
        if self._prepare is not None:
            self._prepare(document)
        return document

    async def __aiter__(self) -> AsyncIterator[MutationBatch]:
        for i, snapshot in enumerate(self._snapshots):
            if i and self._delay:
                await asyncio.sleep(self._delay)
            self._document = self._load(snapshot)
            logger.debug("Replaying snapshot %d/%d", i + 1, len(self._snapshots))
            yield [MutationRecord()]
