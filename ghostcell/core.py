"""Core types used across all modules."""

from enum import StrEnum
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class StructureError(RuntimeError):
    """The host page's markup no longer matches what an adapter expects.

    Fatal for the current page session: the adapter is stale relative to the
    host UI and must not be retried.
    """


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Diag(BaseModel):
    """A structured diagnostic message."""

    severity: Severity
    code: str
    message: str
    hint: str | None = None


class Result(BaseModel, Generic[T]):  # noqa: UP046 - Pydantic requires Generic[T] subclass
    """Result container that pairs output with diagnostics.

    Recoverable failures (upstream model errors, moderation outages) are
    reported as diagnostics instead of being raised.
    """

    data: T | None = None
    diagnostics: list[Diag] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self.diagnostics)

    @property
    def ok(self) -> bool:
        return not self.has_errors

    def has_code(self, code: str) -> bool:
        return any(d.code == code for d in self.diagnostics)

    def error(self, code: str, message: str, *, hint: str | None = None) -> None:
        self.diagnostics.append(Diag(severity=Severity.ERROR, code=code, message=message, hint=hint))
