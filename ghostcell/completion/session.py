"""Wires page observation to the completion pipeline."""

from __future__ import annotations

import logging
from collections.abc import Callable

from ghostcell.completion.pipeline import CompletionPipeline
from ghostcell.completion.prompt import prompt_for_snapshot
from ghostcell.page.observer import Observation, ObservationLoop

logger = logging.getLogger("ghostcell.completion.session")


class CompletionSession:
    """Feeds every published observation's prompt into the pipeline."""

    def __init__(self, loop: ObservationLoop, pipeline: CompletionPipeline) -> None:
        self.loop = loop
        self.pipeline = pipeline
        self._unsubscribe: Callable[[], None] | None = None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.loop.subscribe(self._on_observation)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_observation(self, observation: Observation) -> None:
        prompt = prompt_for_snapshot(observation.caret, observation.snapshot)
        # Mutations that leave the prompt alone (e.g. the overlay itself
        # re-rendering) must not keep pushing the debounce window back.
        if prompt == self.pipeline.prompt:
            return
        logger.debug("Prompt changed (%s chars)", None if prompt is None else len(prompt))
        self.pipeline.set_prompt(prompt)
