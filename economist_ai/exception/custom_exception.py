from __future__ import annotations

from typing import Any, Optional


class ErrorType:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    NOT_FOUND = "NOT_FOUND"
    NO_DATA = "NO_DATA"
    FETCH_ERROR = "FETCH_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    CONFIG_ERROR = "CONFIG_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class EconomistException(Exception):
    """
    Base error for the backend.

    Carries the wire-level error type and HTTP status so the API layer can
    render the `{success, data, error}` envelope without a lookup table.
    """

    error_type: str = ErrorType.UNKNOWN_ERROR
    status_code: int = 500
    default_details: Optional[str] = None

    def __init__(
        self,
        message: str,
        details: Any = None,
        fallback: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details if details is not None else self.default_details
        self.fallback = fallback

    def to_error(self) -> dict:
        return {
            "message": self.message,
            "type": self.error_type,
            "details": self.details,
            "fallback": self.fallback,
        }

    def to_envelope(self) -> dict:
        return {"success": False, "data": None, "error": self.to_error()}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | type={self.error_type} | details={self.details}"
        return f"{self.message} | type={self.error_type}"


class ValidationError(EconomistException):
    error_type = ErrorType.VALIDATION_ERROR
    status_code = 400


class AuthError(EconomistException):
    error_type = ErrorType.AUTH_ERROR
    status_code = 401


class ForbiddenError(AuthError):
    status_code = 403


class NotFoundError(EconomistException):
    error_type = ErrorType.NOT_FOUND
    status_code = 404


class NoDataError(EconomistException):
    error_type = ErrorType.NO_DATA
    status_code = 400


class ExtractionError(EconomistException):
    error_type = ErrorType.FETCH_ERROR
    status_code = 400


class RateLimitError(EconomistException):
    error_type = ErrorType.RATE_LIMIT
    status_code = 429


class ConfigError(EconomistException):
    error_type = ErrorType.CONFIG_ERROR
    status_code = 500


# Internal stage failures: all surface as UNKNOWN_ERROR, told apart by details.
class MetadataError(EconomistException):
    default_details = "metadata_generation_failed"


class EmbeddingError(EconomistException):
    default_details = "embedding_failed"


class VectorStoreError(EconomistException):
    default_details = "vector_store_failed"


class PersistenceError(EconomistException):
    default_details = "persistence_failed"
