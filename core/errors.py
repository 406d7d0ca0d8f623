"""
Error taxonomy for the analysis service.

Every error carries a machine-readable ``code`` and the HTTP ``status`` the web
layer responds with. Provider failures of any kind share ``LLM_UNAVAILABLE``;
callers cannot tell rate limits, network errors and malformed payloads apart.
"""

from __future__ import annotations


class AnalysisError(Exception):
    """Base class for all errors surfaced to callers."""

    code: str = "INTERNAL_ERROR"
    status: int = 500
    message: str = "Internal error"

    def __init__(self, details: str = "") -> None:
        super().__init__(details or self.message)
        self.details = details


class EmptyInputError(AnalysisError):
    code = "EMPTY_INPUT"
    status = 400
    message = "Text cannot be empty"


class MalformedRequestError(AnalysisError):
    code = "INVALID_REQUEST"
    status = 400
    message = "Invalid request format"


class EmptyBatchError(AnalysisError):
    code = "EMPTY_INPUT"
    status = 400
    message = "No texts provided"


class BatchTooLargeError(AnalysisError):
    code = "BATCH_SIZE_EXCEEDED"
    status = 400
    message = "Maximum 10 texts allowed per batch"


class ProviderError(AnalysisError):
    """Any failure of the analysis provider."""

    code = "LLM_UNAVAILABLE"
    status = 503
    message = "LLM service unavailable"


class ProviderUnavailableError(ProviderError):
    """Upstream failure: API error, simulated outage or timeout."""


class InvalidProviderResponseError(ProviderError):
    """The provider answered, but not with the expected JSON shape."""

    message = "Invalid JSON response from LLM"


class PersistenceError(AnalysisError):
    code = "DB_ERROR"
    status = 500
    message = "Database error"


class NotFoundError(AnalysisError):
    code = "NOT_FOUND"
    status = 404
    message = "Not found"
