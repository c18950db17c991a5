"""
Shared error handling for the query cache layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class CacheLayerException(Exception):
    """Base exception for the query cache layer."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class CapacityError(CacheLayerException):
    """Raised when a cache is configured with an unusable capacity."""

    def __init__(self, message: str = "Cache capacity must be positive", details: Optional[Dict[str, Any]] = None):
        super().__init__("CAPACITY_ERROR", message, details)


class SerializationError(CacheLayerException):
    """Raised when a value cannot be represented in the persisted medium."""

    def __init__(self, message: str = "Value is not JSON serializable", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERIALIZATION_ERROR", message, details)


class StorageError(CacheLayerException):
    """Persistent key-value medium errors."""

    status_code = 503

    def __init__(self, backend: str, message: str = "Storage backend error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORAGE_ERROR", f"{backend}: {message}", details)


class CacheKeyNotFoundError(CacheLayerException):
    """Raised by the service surface when a key holds no live entry."""

    status_code = 404

    def __init__(self, key: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_KEY_NOT_FOUND", f"No live cache entry for key '{key}'", details)
