"""Custom exception hierarchy for the batch field extraction service.

Input errors abort a request; everything under ``ExtractionError`` is scoped
to a single document and ends up as a placeholder result. The remote service
errors carry enough detail for the transport to decide whether to retry.
"""
from __future__ import annotations


class ValidationError(Exception):
    """Raised when the request payload (documents, field names) is invalid."""


class ExtractionError(Exception):
    """Base class for failures while extracting one document."""


class NonRetryableExtractionError(ExtractionError):
    """Failure that will not go away by trying the same document again."""


class DocumentTooLargeError(NonRetryableExtractionError):
    """Raised when a payload exceeds the configured upload limit."""


class UnsupportedDocumentError(NonRetryableExtractionError):
    """Raised when a payload is missing or not in a supported format."""


class EmptyOutputError(NonRetryableExtractionError):
    """Raised when the remote job completed without any textual output."""


class OutputParseError(NonRetryableExtractionError):
    """Raised when the remote output does not contain a usable JSON array."""


class JobFailedError(ExtractionError):
    """Raised when the remote job reaches a failure terminal status."""

    def __init__(self, status: str, reason: str | None = None) -> None:
        self.status = status
        self.reason = reason
        super().__init__(f"Run {status}: {reason or 'Unknown error'}")


class JobTimeoutError(ExtractionError):
    """Raised when polling exhausts its wait budget."""


class RemoteServiceError(ExtractionError):
    """Raised by remote backends for a failed call."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RateLimitedError(RemoteServiceError):
    """The remote service asked us to slow down (HTTP 429)."""

    def __init__(
        self,
        message: str = "Rate limited",
        *,
        retry_after: float | None = None,
    ) -> None:
        self.retry_after = retry_after
        super().__init__(message, status_code=429)


class ServerFaultError(RemoteServiceError):
    """Server-side failure (HTTP 5xx)."""


class ClientFaultError(RemoteServiceError):
    """Request rejected by the remote service (HTTP 4xx other than 429)."""


class TransportFaultError(RemoteServiceError):
    """Connection failure or timeout before a response was received."""


__all__ = [
    "ValidationError",
    "ExtractionError",
    "NonRetryableExtractionError",
    "DocumentTooLargeError",
    "UnsupportedDocumentError",
    "EmptyOutputError",
    "OutputParseError",
    "JobFailedError",
    "JobTimeoutError",
    "RemoteServiceError",
    "RateLimitedError",
    "ServerFaultError",
    "ClientFaultError",
    "TransportFaultError",
]
