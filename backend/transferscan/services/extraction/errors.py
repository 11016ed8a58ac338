"""Error taxonomy for the extraction core.

None of these escape ``ExtractionOrchestrator.extract``; they are raised at the
boundary where a failure is detected and absorbed one level up.
"""

from __future__ import annotations


class ExtractionError(Exception):
    """Base class for all extraction-side failures."""


class ImageAcquisitionError(ExtractionError):
    """The image reference could not be resolved to bytes."""


class BackendTimeoutError(ExtractionError):
    """A backend did not answer within its deadline."""

    def __init__(self, backend: str, timeout_seconds: float) -> None:
        super().__init__(f"{backend} timeout after {timeout_seconds:g}s")
        self.backend = backend
        self.timeout_seconds = timeout_seconds


class BackendProtocolError(ExtractionError):
    """A backend answered, but the payload could not be parsed."""

    def __init__(self, message: str, *, raw: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class FieldValidationError(ExtractionError, ValueError):
    """A single extracted field failed domain validation.

    Raised by the field sanitizers; the caller drops the field instead of
    failing the whole extraction.
    """

    def __init__(self, field: str, value: object, reason: str) -> None:
        super().__init__(f"{field}: {reason} (got {value!r})")
        self.field = field
        self.value = value
        self.reason = reason


class CacheIOError(ExtractionError):
    """The persistent key-value store behind the cache is unavailable."""
