"""Error definitions for the Folio pipeline."""

from __future__ import annotations

from typing import Optional


class FolioError(Exception):
    """Base exception for all custom errors."""


class ConfigurationError(FolioError):
    """Raised when settings cannot produce a working pipeline."""


class EmptyInputError(FolioError):
    """Raised when a document yields no text worth translating."""


class UnsupportedFileTypeError(FolioError):
    """Raised when a given file extension is not supported."""


class InvalidImageError(FolioError):
    """Raised when an image is rejected before it reaches the OCR service."""


class OverwriteRefusedError(FolioError):
    """Raised when attempting to overwrite an output without consent."""


class TransformFailure(FolioError):
    """Raised when the remote service fails to transform one segment.

    Covers transport errors, non-success statuses and payloads missing the
    expected field. ``detail`` keeps the raw diagnostic (usually the
    response body) apart from the user-facing message.
    """

    def __init__(
        self,
        message: str,
        *,
        detail: Optional[str] = None,
        segment_index: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.detail = detail
        self.segment_index = segment_index

    def __str__(self) -> str:
        message = super().__str__()
        if self.segment_index is None:
            return message
        return f"Segment {self.segment_index + 1}: {message}"


class CancellationError(FolioError):
    """Raised when a run is cancelled between two transform calls."""
