"""Custom exception hierarchy for the document extraction service.

Each pipeline component raises its own typed error; the request handler maps
them to HTTP status codes and a JSON ``{"error": ...}`` body.
"""
from __future__ import annotations


class DocExtractError(Exception):
    """Base class for every error raised by the extraction pipeline."""


class BadRequestError(DocExtractError):
    """Raised when the client request is unusable (missing or empty file)."""


class PayloadTooLargeError(BadRequestError):
    """Raised when the uploaded file exceeds the configured size limit."""


class StorageError(DocExtractError):
    """Raised when the upload to object storage does not complete."""


class JobStartError(DocExtractError):
    """Raised when the OCR service rejects a job or returns no job id."""


class OCRQueryError(DocExtractError):
    """Raised when a single job status query fails (treated as transient)."""


class JobFailedError(DocExtractError):
    """Raised when the OCR job reaches the FAILED terminal state."""


class PollingTimeoutError(DocExtractError):
    """Raised when polling exceeds its attempt or duration ceiling."""


class AnalysisError(DocExtractError):
    """Raised when the NLP service rejects the extracted text."""


class ProcessingError(DocExtractError):
    """Wraps an upstream failure for the HTTP layer."""

    def __init__(self, message: str, *, status_code: int = 500) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "DocExtractError",
    "BadRequestError",
    "PayloadTooLargeError",
    "StorageError",
    "JobStartError",
    "OCRQueryError",
    "JobFailedError",
    "PollingTimeoutError",
    "AnalysisError",
    "ProcessingError",
]
