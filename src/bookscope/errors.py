"""Domain error taxonomy shared by the bookscope services."""

from __future__ import annotations

__all__ = [
    "BookscopeError",
    "InvalidIdentifier",
    "DocumentNotFound",
    "RequestTimeout",
    "ConnectivityError",
    "UpstreamError",
    "MalformedResponse",
    "UnparsableResponse",
    "ConfigurationError",
]


class BookscopeError(RuntimeError):
    """Base error carrying a stable, caller-facing category."""

    category = "internal"


class InvalidIdentifier(BookscopeError, ValueError):
    """Raised when a book identifier is missing or blank."""

    category = "invalid_input"


class DocumentNotFound(BookscopeError):
    """Raised when the text provider has no document for the identifier."""

    category = "not_found"


class RequestTimeout(BookscopeError):
    """Raised when an upstream call exceeds its time budget."""

    category = "unavailable"


class ConnectivityError(BookscopeError):
    """Raised when the upstream host cannot be reached."""

    category = "unavailable"


class UpstreamError(BookscopeError):
    """Raised for any other upstream failure."""

    category = "unavailable"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(BookscopeError):
    """Raised when the upstream returned an empty or non-text body."""

    category = "upstream_data"


class UnparsableResponse(BookscopeError):
    """Raised when no JSON object can be recovered from a model response."""

    category = "data_error"


class ConfigurationError(BookscopeError):
    """Raised eagerly when a collaborator is missing required settings."""

    category = "configuration"
