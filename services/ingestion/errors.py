"""Errors raised by the ingestion pipeline.

Every error the caller can see derives from `IngestError` and carries the
pipeline stage it came from. `CompensationError` is only ever logged and
recorded on the saga; it never reaches the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from services.ingestion.saga import Saga


class IngestError(Exception):
    """Base class for failures surfaced to the caller of `ingest`."""

    stage = "ingest"

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.key = key
        self.saga: Optional["Saga"] = None


class InputError(IngestError):
    """Empty or missing upload, rejected before any side effect."""

    stage = "input"


class StoreWriteError(IngestError):
    """The blob could not be written; nothing needs to be undone."""

    stage = "upload"


class StoreReadbackError(IngestError):
    """The blob was written but could not be fetched back."""

    stage = "readback"


class PersistenceError(IngestError):
    """The metadata insert raised or reported a non-successful result."""

    stage = "persist"


class PersistenceRejectedError(PersistenceError):
    """The metadata insert violated a constraint and will not succeed on retry."""


class CompensationError(Exception):
    """An undo step failed during rollback."""

    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(f"Compensation step {step!r} failed: {cause}")
        self.step = step
        self.cause = cause
