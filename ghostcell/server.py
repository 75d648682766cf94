"""FastAPI completion proxy for ghostcell."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from ghostcell.config import GhostcellConfig, load_config
from ghostcell.proxy.moderation import ContentFilter, content_filter_for, moderate
from ghostcell.proxy.rate_limit import SlidingLogRateLimiter
from ghostcell.proxy.upstream import request_completion

logger = logging.getLogger("ghostcell.server")

app = FastAPI(title="ghostcell", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    # Lets the browser cache the preflight response (2 hours is Chrome's maximum).
    max_age=2 * 60 * 60,
)

_bearer = HTTPBearer(auto_error=False)


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected malformed request to %s", request.url.path)
    return JSONResponse(status_code=400, content={"error": "`prompt` is required."})

# Created on first request from the active config
_limiter: SlidingLogRateLimiter | None = None
_content_filter: ContentFilter | None = None


def get_limiter(config: GhostcellConfig) -> SlidingLogRateLimiter:
    global _limiter  # noqa: PLW0603
    if _limiter is None:
        _limiter = SlidingLogRateLimiter.from_config(config.proxy.rate_limit)
    return _limiter


def get_content_filter(config: GhostcellConfig) -> ContentFilter:
    global _content_filter  # noqa: PLW0603
    if _content_filter is None:
        _content_filter = content_filter_for(config.proxy.moderation)
    return _content_filter


def reset_state() -> None:
    """Drop the rate limiter and content filter singletons (for testing)."""
    global _limiter, _content_filter  # noqa: PLW0603
    _limiter = None
    _content_filter = None


def _no_details(status_code: int, headers: dict[str, str] | None = None) -> JSONResponse:
    # Failure bodies never carry upstream details.
    return JSONResponse(status_code=status_code, content={"data": {}}, headers=headers)


@app.get("/api/health")
async def health() -> dict[str, Any]:
    config = load_config()
    return {"ok": True, "model": config.llm.model, "moderation": bool(config.proxy.moderation.url)}


class CompleteRequest(BaseModel):
    prompt: str


@app.post("/complete")
async def complete(
    request: CompleteRequest,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> Any:
    config = load_config()
    user = config.proxy.tokens.get(credentials.credentials) if credentials is not None else None
    if user is None:
        logger.info("POST /complete rejected: missing or unknown token")
        return JSONResponse(status_code=401, content={"error": "A valid bearer token is required."})

    limiter = get_limiter(config)
    if not limiter.admit(user):
        retry_after = math.ceil(limiter.retry_after(user))
        return _no_details(429, headers={"Retry-After": str(retry_after)})

    logger.info("POST /complete user=%s prompt_len=%d", user, len(request.prompt))
    result = await asyncio.to_thread(request_completion, request.prompt, user, config.llm)
    if not result.ok or result.data is None:
        logger.warning("Upstream completion failed: %s", result.diagnostics)
        return _no_details(429 if result.has_code("RATE_LIMITED") else 500)

    completion = await moderate(
        result.data.completion,
        get_content_filter(config),
        threshold=config.proxy.moderation.threshold,
    )
    return {"completion": completion, "lm_inference_ms": result.data.lm_inference_ms}
