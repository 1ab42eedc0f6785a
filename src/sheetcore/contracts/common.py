"""Common Pydantic models: response envelope, errors, warnings, metrics."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from sheetcore.contracts.table import Change


class TableFormatError(Exception):
    """Raised when a table document cannot be parsed."""


class SheetcoreError(ValueError):
    """Base for library errors that carry an envelope error code."""

    code = "ERR_INTERNAL"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code:
            self.code = code


class RefError(SheetcoreError):
    """Raised when an A1 reference cannot be resolved."""

    code = "ERR_REF_INVALID"


class IntentError(SheetcoreError):
    """Raised when an edit intent does not match any known shape."""

    code = "ERR_INTENT_INVALID"


class TransformError(SheetcoreError):
    """Raised when a bulk transform receives unusable parameters."""

    code = "ERR_TRANSFORM_INVALID"


class FingerprintConflictError(SheetcoreError):
    """The table changed on disk since the caller last read it."""

    code = "ERR_FINGERPRINT_CONFLICT"

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__("Table fingerprint changed since it was last read")
        self.expected = expected
        self.actual = actual


class Target(BaseModel):
    """Identifies the target table file/column/range for a command."""

    file: str | None = None
    column: str | None = None
    ref: str | None = None


class WarningDetail(BaseModel):
    """Structured warning."""

    code: str
    message: str
    path: str | None = None


class ErrorDetail(BaseModel):
    """Structured error."""

    code: str
    message: str
    details: dict[str, Any] | None = None


class Metrics(BaseModel):
    """Execution metrics."""

    duration_ms: int = 0


class ResponseEnvelope(BaseModel):
    """Standard response envelope returned by every command."""

    ok: bool = True
    command: str = ""
    target: Target = Field(default_factory=Target)
    result: Any = None
    changes: list[Change] = Field(default_factory=list)
    warnings: list[WarningDetail] = Field(default_factory=list)
    errors: list[ErrorDetail] = Field(default_factory=list)
    metrics: Metrics = Field(default_factory=Metrics)
