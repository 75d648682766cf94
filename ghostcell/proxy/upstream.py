"""Language-model call behind the completion proxy."""

from __future__ import annotations

import logging
import os
import time

import anthropic
from pydantic import BaseModel

from ghostcell.config import LLMConfig
from ghostcell.core import Result

logger = logging.getLogger("ghostcell.proxy.upstream")

_SYSTEM_PROMPT = """\
You are a code completion engine embedded in a Python notebook. The user message \
is the notebook source up to the caret, which sits at the end of its last line. \
Reply with the text that continues that line, exactly as it should be typed. \
No explanations, no markdown, no repetition of the existing text. Reply with \
nothing if the line is already complete."""


class UpstreamCompletion(BaseModel):
    completion: str
    lm_inference_ms: int


def request_completion(prompt: str, user: str, config: LLMConfig) -> Result[UpstreamCompletion]:
    """Ask the model to continue the caret's line, returning only its first line."""
    result: Result[UpstreamCompletion] = Result()

    api_key = os.environ.get(config.api_key_env, "")
    if not api_key:
        logger.error("Missing API key: %s", config.api_key_env)
        result.error("CONFIG_ERROR", f"Missing API key: {config.api_key_env}")
        return result

    start = time.monotonic()
    try:
        client = anthropic.Anthropic(api_key=api_key)
        response = client.messages.create(
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=0,
            system=_SYSTEM_PROMPT,
            stop_sequences=["\n"],
            messages=[{"role": "user", "content": prompt}],
            metadata={"user_id": user},
        )
    except anthropic.RateLimitError as e:
        result.error("RATE_LIMITED", f"Model rate limit: {e}")
        return result
    except anthropic.APIError as e:
        result.error("LM_ERROR", f"Anthropic API error: {e}")
        return result

    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.info("LM inference call took %dms", elapsed_ms)

    text = ""
    for block in response.content:
        if block.type == "text":
            text = block.text
            break

    result.data = UpstreamCompletion(completion=text.split("\n")[0], lm_inference_ms=elapsed_ms)
    return result
