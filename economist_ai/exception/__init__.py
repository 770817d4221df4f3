from .custom_exception import (
    AuthError,
    ConfigError,
    EconomistException,
    EmbeddingError,
    ErrorType,
    ExtractionError,
    ForbiddenError,
    MetadataError,
    NoDataError,
    NotFoundError,
    PersistenceError,
    RateLimitError,
    ValidationError,
    VectorStoreError,
)

__all__ = [
    "AuthError",
    "ConfigError",
    "EconomistException",
    "EmbeddingError",
    "ErrorType",
    "ExtractionError",
    "ForbiddenError",
    "MetadataError",
    "NoDataError",
    "NotFoundError",
    "PersistenceError",
    "RateLimitError",
    "ValidationError",
    "VectorStoreError",
]
