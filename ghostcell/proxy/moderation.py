"""Moderation of model output before it leaves the proxy.

The classifier labels text "0" (safe), "1" (sensitive) or "2" (toxic). Output
is rejected only when "2" is the top label and the classifier is confident
about it, i.e. its log-probability is above the threshold.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Protocol

import httpx
from pydantic import BaseModel

from ghostcell.config import ModerationConfig
from ghostcell.core import Result

logger = logging.getLogger("ghostcell.proxy.moderation")

TOXIC_LABEL = "2"
DEFAULT_TOXIC_THRESHOLD = -0.355


class Verdict(BaseModel):
    label: str
    logprob: float = 0.0

    def is_toxic(self, threshold: float = DEFAULT_TOXIC_THRESHOLD) -> bool:
        return self.label == TOXIC_LABEL and self.logprob > threshold


class ContentFilter(Protocol):
    async def classify(self, text: str) -> Result[Verdict]: ...


class NullContentFilter:
    """Used when no classifier is configured: everything is safe."""

    async def classify(self, text: str) -> Result[Verdict]:
        return Result(data=Verdict(label="0"))


def _top_label(body: dict[str, Any]) -> Verdict:
    choice = body["choices"][0]
    label = str(choice["text"]).strip()
    top_logprobs: dict[str, float] = choice["logprobs"]["top_logprobs"][0]
    return Verdict(label=label, logprob=float(top_logprobs.get(label, 0.0)))


class CompletionsContentFilter:
    """Toxicity classifier served from an OpenAI-compatible completions endpoint."""

    def __init__(self, config: ModerationConfig, *, http: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._http = http or httpx.AsyncClient(timeout=10.0)

    async def classify(self, text: str) -> Result[Verdict]:
        result: Result[Verdict] = Result()
        headers: dict[str, str] = {}
        api_key = os.environ.get(self._config.api_key_env, "")
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        try:
            response = await self._http.post(
                self._config.url,
                headers=headers,
                json={
                    "model": self._config.model,
                    "prompt": f"<|endoftext|>{text}\n--\nLabel:",
                    "max_tokens": 1,
                    "temperature": 0.0,
                    "top_p": 0,
                    "logprobs": 10,
                },
            )
            response.raise_for_status()
            result.data = _top_label(response.json())
        except httpx.HTTPError as e:
            result.error("MODERATION_ERROR", f"Content filter request failed: {e}")
        except (KeyError, IndexError, TypeError, ValueError) as e:
            result.error("MODERATION_ERROR", f"Unexpected content filter response: {e}")
        return result

    async def aclose(self) -> None:
        await self._http.aclose()


def content_filter_for(config: ModerationConfig) -> ContentFilter:
    if not config.url:
        return NullContentFilter()
    return CompletionsContentFilter(config)


async def moderate(text: str, content_filter: ContentFilter, *, threshold: float = DEFAULT_TOXIC_THRESHOLD) -> str:
    """Return `text`, or an empty string when the classifier flags it as toxic.

    A classifier outage fails closed: the completion is withheld.
    """
    if not text:
        return text
    verdict = await content_filter.classify(text)
    if not verdict.ok or verdict.data is None:
        logger.warning("Moderation unavailable, withholding completion: %s", verdict.diagnostics)
        return ""
    if verdict.data.is_toxic(threshold):
        logger.info("Completion rejected by moderation (logprob %.3f)", verdict.data.logprob)
        return ""
    return text
