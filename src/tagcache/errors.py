"""
tagcache - Core Error Types

Defines the exception hierarchy for the cache facade, pools, drivers and the
configuration reconciler. All exceptions inherit from TagCacheError.

Propagation rules:
- Backend I/O failures are logged and degraded to a miss / False result.
- Configuration errors disable the affected pool only.
- CrossDriverTypeError is a programming error and is always raised.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes used in serialized error payloads."""

    # Configuration
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INVALID_OPTION = "INVALID_OPTION"
    CONFIG_CORRUPT = "CONFIG_CORRUPT"

    # Cache / backend
    CACHE_FAILURE = "CACHE_FAILURE"
    CACHE_CONNECTION = "CACHE_CONNECTION"
    CACHE_READ = "CACHE_READ"
    CACHE_WRITE = "CACHE_WRITE"
    INVALID_VALUE = "INVALID_VALUE"
    INVALID_KEY = "INVALID_KEY"
    CROSS_DRIVER_TYPE = "CROSS_DRIVER_TYPE"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class TagCacheError(Exception):
    """Base exception for all tagcache errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary (for logs and admin payloads)."""
        return {
            "error": self.__class__.__name__,
            "error_code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(TagCacheError):
    """Raised when configuration is invalid or missing."""

    code = ErrorCode.CONFIGURATION_ERROR


class InvalidOptionError(ConfigurationError):
    """Raised when a driver rejects one of its configured options."""

    code = ErrorCode.INVALID_OPTION

    def __init__(self, pool: str, driver: str, option: str, value: Any = None):
        message = f"Invalid option '{option}' for driver '{driver}' in pool '{pool}'"
        super().__init__(message, {"pool": pool, "driver": driver, "option": option, "value": repr(value)})
        self.pool = pool
        self.driver = driver
        self.option = option


class ConfigCorruptError(ConfigurationError):
    """Raised when the configuration snapshot cannot be read or parsed."""

    code = ErrorCode.CONFIG_CORRUPT


class CacheError(TagCacheError):
    """Base exception for cache-related errors."""

    code = ErrorCode.CACHE_FAILURE


class CacheConnectionError(CacheError):
    """Raised when a cache backend connection cannot be established."""

    code = ErrorCode.CACHE_CONNECTION

    def __init__(self, backend: str, details: dict[str, Any] | None = None):
        message = f"Failed to connect to cache backend: {backend}"
        super().__init__(message, details)


class CacheReadError(CacheError):
    """Raised when a backend read fails after connect."""

    code = ErrorCode.CACHE_READ


class CacheWriteError(CacheError):
    """Raised when a backend write fails after connect."""

    code = ErrorCode.CACHE_WRITE


class CacheValueError(CacheError, ValueError):
    """Raised when a stored value or delta cannot be used for an operation."""

    code = ErrorCode.INVALID_VALUE


class InvalidKeyError(CacheError, ValueError):
    """Raised for empty, non-string or reserved cache keys and tags."""

    code = ErrorCode.INVALID_KEY


class CrossDriverTypeError(CacheError, TypeError):
    """Raised when an item from one pool/driver is handed to another pool."""

    code = ErrorCode.CROSS_DRIVER_TYPE

    def __init__(self, pool: str, expected: str, received: str):
        message = f"Cross-driver type confusion detected in pool '{pool}': expected {expected}, got {received}"
        super().__init__(message, {"pool": pool, "expected": expected, "received": received})
