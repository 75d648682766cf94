"""Completion endpoint client and the collaborators the pipeline talks to."""

from __future__ import annotations

import logging
import os
from enum import StrEnum
from typing import Protocol, runtime_checkable

import httpx
from pydantic import BaseModel

from ghostcell.config import ClientConfig

logger = logging.getLogger("ghostcell.completion.client")


class CompletionReply(BaseModel):
    status: int
    completion: str | None = None


class CompletionClient:
    """POSTs `{"prompt": ...}` to the completion proxy with a bearer token."""

    def __init__(self, endpoint_url: str, *, timeout_seconds: float = 10.0, http: httpx.AsyncClient | None = None) -> None:
        self.endpoint_url = endpoint_url
        self._http = http or httpx.AsyncClient(timeout=timeout_seconds)

    @classmethod
    def from_config(cls, config: ClientConfig) -> CompletionClient:
        return cls(config.endpoint_url, timeout_seconds=config.timeout_seconds)

    async def complete(self, prompt: str, token: str) -> CompletionReply:
        """Request a completion; non-200 statuses are returned, not raised."""
        response = await self._http.post(
            self.endpoint_url,
            json={"prompt": prompt},
            headers={"Authorization": f"Bearer {token}"},
        )
        if response.status_code != 200:
            return CompletionReply(status=response.status_code)

        completion = response.json().get("completion")
        if not isinstance(completion, str):
            raise ValueError(f"Malformed completion response: {response.text[:80]!r}")
        return CompletionReply(status=200, completion=completion)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> CompletionClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


@runtime_checkable
class CredentialProvider(Protocol):
    def token(self) -> str | None:
        """Return the current bearer token, or None when signed out."""
        ...

    def invalidate(self) -> None:
        """Forget the current token (the endpoint rejected it)."""
        ...


class StaticCredentials:
    def __init__(self, token: str | None) -> None:
        self._token = token

    def token(self) -> str | None:
        return self._token

    def invalidate(self) -> None:
        self._token = None


class EnvCredentials:
    """Token read from an environment variable; invalidation lasts until it changes."""

    def __init__(self, env_var: str) -> None:
        self.env_var = env_var
        self._rejected: str | None = None

    def token(self) -> str | None:
        value = os.environ.get(self.env_var, "") or None
        if value is not None and value == self._rejected:
            return None
        return value

    def invalidate(self) -> None:
        self._rejected = os.environ.get(self.env_var, "") or None


class Notice(StrEnum):
    SIGN_IN_REQUIRED = "sign_in_required"
    RATE_LIMITED = "rate_limited"
    UNEXPECTED_ERROR = "unexpected_error"


NOTICE_MESSAGES: dict[Notice, str] = {
    Notice.SIGN_IN_REQUIRED: "You must sign in (or sign back in) to get completions.",
    Notice.RATE_LIMITED: "Completions will be available again in a few moments.",
    Notice.UNEXPECTED_ERROR: "Ran into an unexpected error while requesting a completion.",
}


@runtime_checkable
class Notifier(Protocol):
    def notify(self, notice: Notice) -> None:
        """Surface a user-visible notification."""
        ...


class LogNotifier:
    """Notifier that writes notices to the log."""

    def notify(self, notice: Notice) -> None:
        if notice == Notice.UNEXPECTED_ERROR:
            logger.error(NOTICE_MESSAGES[notice])
        else:
            logger.warning(NOTICE_MESSAGES[notice])
