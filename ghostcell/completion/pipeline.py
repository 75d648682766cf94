"""Debounced, deduplicated, staleness-safe completion requests.

Phases: IDLE -> DEBOUNCING -> (SHORT_CIRCUITED | IN_FLIGHT) -> IDLE.

Several requests may be in flight at once and their replies may arrive in
any order. The accepted state is only ever replaced by a candidate whose
request started no earlier than the current one, so an older reply can never
overwrite a newer result. In-flight requests are never aborted; stale
replies are discarded on arrival.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from ghostcell.completion.client import CompletionReply, CredentialProvider, Notice, Notifier

logger = logging.getLogger("ghostcell.completion.pipeline")

DEFAULT_DEBOUNCE_SECONDS = 0.5


class Completer(Protocol):
    async def complete(self, prompt: str, token: str) -> CompletionReply: ...


class PipelinePhase(StrEnum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    SHORT_CIRCUITED = "short_circuited"
    IN_FLIGHT = "in_flight"


class CompletionState(BaseModel):
    """The most recent accepted result. Replaced wholesale, never mutated."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    completion: str
    request_start_time: float


def first_line(text: str) -> str:
    return text.split("\n")[0].replace("\u00a0", " ")


class CompletionPipeline:
    def __init__(
        self,
        client: Completer,
        credentials: CredentialProvider,
        notifier: Notifier,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._credentials = credentials
        self._notifier = notifier
        self._debounce_seconds = debounce_seconds
        self._clock = clock

        self._state: CompletionState | None = None
        self._prompt: str | None = None
        self._phase = PipelinePhase.IDLE
        self._debounce: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._pending_requests = 0
        self._subscribers: list[Callable[[str | None], None]] = []
        self._published: str | None = None

        self.requests_issued = 0
        self.short_circuits = 0

    @property
    def state(self) -> CompletionState | None:
        return self._state

    @property
    def phase(self) -> PipelinePhase:
        return self._phase

    @property
    def prompt(self) -> str | None:
        return self._prompt

    @property
    def completion(self) -> str | None:
        """The accepted completion, only while it still answers the current prompt."""
        if self._state is None or self._prompt is None or self._state.prompt != self._prompt:
            return None
        return self._state.completion

    def subscribe(self, callback: Callable[[str | None], None]) -> Callable[[], None]:
        """Register a consumer of completion changes; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    # --- Prompt intake -------------------------------------------------------

    def set_prompt(self, prompt: str | None) -> None:
        """Feed the latest prompt; restarts the trailing debounce window.

        Must be called from within the running event loop.
        """
        self._prompt = prompt
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None

        if prompt is None:
            self._phase = PipelinePhase.IDLE
        else:
            self._phase = PipelinePhase.DEBOUNCING
            self._debounce = asyncio.get_running_loop().create_task(self._debounce_then_process(prompt))
        self._publish()

    async def _debounce_then_process(self, prompt: str) -> None:
        received_at = self._clock()
        await asyncio.sleep(self._debounce_seconds)
        self._debounce = None
        # Processing outlives the next debounce window, so it runs as its own task.
        task = asyncio.get_running_loop().create_task(self.process(prompt, received_at=received_at))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # --- Processing ------------------------------------------------------------

    async def process(self, prompt: str, *, received_at: float | None = None) -> None:
        """Resolve one debounced prompt, with or without a network call."""
        state = self._state
        token = self._credentials.token()

        # Empty prompts are not likely to give good results.
        if token is None or prompt == "":
            self._short_circuit(prompt)
            return

        # The previous suggestion was fully typed or accepted; the model would
        # only return an empty continuation for the same line.
        if state is not None and prompt == state.prompt + state.completion:
            self._short_circuit(prompt)
            return

        # Nothing changed since the last answer.
        if state is not None and prompt == state.prompt:
            self.short_circuits += 1
            self._settle()
            return

        request_start_time = self._clock()
        self.requests_issued += 1
        self._pending_requests += 1
        self._phase = PipelinePhase.IN_FLIGHT
        try:
            reply: CompletionReply | None = await self._client.complete(prompt, token)
        except Exception:  # noqa: BLE001
            logger.exception("Completion request failed")
            reply = None
        finally:
            self._pending_requests -= 1

        self._handle_reply(prompt, request_start_time, reply)
        if reply is not None and reply.status == 200 and received_at is not None:
            logger.info(
                "Completion request (including the debounce wait) took %dms",
                (self._clock() - received_at) * 1000,
            )
        self._settle()

    def _handle_reply(self, prompt: str, request_start_time: float, reply: CompletionReply | None) -> None:
        cleared = CompletionState(prompt=prompt, completion="", request_start_time=request_start_time)

        if reply is None:
            self._notifier.notify(Notice.UNEXPECTED_ERROR)
            self.apply(cleared)
        elif reply.status == 200:
            completion = first_line(reply.completion or "")
            self.apply(CompletionState(prompt=prompt, completion=completion, request_start_time=request_start_time))
        elif reply.status == 401:
            self._credentials.invalidate()
            self._notifier.notify(Notice.SIGN_IN_REQUIRED)
            self.apply(cleared)
        elif reply.status == 429:
            self._notifier.notify(Notice.RATE_LIMITED)
            self.apply(cleared)
        else:
            logger.warning("Completion endpoint answered %d", reply.status)
            self._notifier.notify(Notice.UNEXPECTED_ERROR)
            self.apply(cleared)

    def _short_circuit(self, prompt: str) -> None:
        self.short_circuits += 1
        self._phase = PipelinePhase.SHORT_CIRCUITED
        self.apply(CompletionState(prompt=prompt, completion="", request_start_time=self._clock()))
        self._settle()

    def _settle(self) -> None:
        if self._debounce is not None:
            self._phase = PipelinePhase.DEBOUNCING
        elif self._pending_requests:
            self._phase = PipelinePhase.IN_FLIGHT
        else:
            self._phase = PipelinePhase.IDLE

    def apply(self, candidate: CompletionState) -> bool:
        """Compare-and-swap keyed on request start time; returns whether it was accepted."""
        current = self._state
        if current is not None and candidate.request_start_time < current.request_start_time:
            logger.debug(
                "Discarding stale completion (started %.3f, current %.3f)",
                candidate.request_start_time,
                current.request_start_time,
            )
            return False
        self._state = candidate
        self._publish()
        return True

    def _publish(self) -> None:
        completion = self.completion
        if completion == self._published:
            return
        self._published = completion
        for callback in list(self._subscribers):
            callback(completion)

    async def drain(self) -> None:
        """Wait for the pending debounce window and every in-flight request to finish."""
        while self._debounce is not None or self._tasks:
            pending = [t for t in (self._debounce, *self._tasks) if t is not None]
            await asyncio.wait(pending)
        self._settle()

    async def aclose(self) -> None:
        """Cancel the debounce timer and wait for in-flight requests to land."""
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._settle()
