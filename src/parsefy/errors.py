"""Custom exception classes for the Parsefy SDK."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from parsefy.types import ExtractionMetadata


class ParsefyError(Exception):
    """
    Base exception for all Parsefy errors.

    The `code` attribute identifies the failure kind. Codes raised directly
    with this class:

    - ``TIMEOUT``: the request did not finish within the configured timeout
    - ``NETWORK_ERROR``: the API could not be reached (DNS, refused connection)
    - ``PARSE_ERROR``: a 2xx response body was not valid JSON
    - ``TRANSFORM_ERROR``: a 2xx response did not match the expected shape
    - ``UNKNOWN_ERROR``: any other HTTP client failure
    """

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class APIError(ParsefyError):
    """Raised when the API returns an HTTP error (4xx/5xx)."""

    def __init__(
        self,
        message: str,
        status_code: int,
        response: Any = None,
    ):
        super().__init__(message, "HTTP_ERROR")
        self.status_code = status_code
        self.response = response

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


class ExtractionError(ParsefyError):
    """
    Extraction failed even though the request succeeded.

    Never raised by the client itself: a failed extraction is returned in
    `ExtractResult.error`. Call `ExtractResult.raise_for_error()` to turn it
    into this exception, with the attempt's metadata attached.
    """

    def __init__(
        self,
        message: str,
        code: str,
        metadata: "ExtractionMetadata",
    ):
        super().__init__(message, code)
        self.metadata = metadata


class ValidationError(ParsefyError):
    """
    Raised for client-side validation errors, before any request is sent.

    Codes: ``MISSING_API_KEY``, ``INVALID_SCHEMA``, ``INVALID_OPTION``,
    ``INVALID_FILE_INPUT``, ``FILE_NOT_FOUND``, ``FILE_UNREADABLE``,
    ``UNSUPPORTED_ENVIRONMENT``, ``UNSUPPORTED_FILE_TYPE``, ``EMPTY_FILE``,
    ``FILE_TOO_LARGE``.
    """

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code)
