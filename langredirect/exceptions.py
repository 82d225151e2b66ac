"""
Exception classes for the language redirector.

Only configuration errors are allowed to escape to the caller, and only at
startup. Everything raised while handling a request is caught where it is
raised and turned into an unmodified passthrough.
"""

from typing import Any


class RedirectorError(Exception):
    """Base exception class for all redirector exceptions"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigurationError(RedirectorError):
    """Raised when the static configuration cannot be turned into a RedirectorConfig"""

    def __init__(self, message: str, setting: str | None = None):
        details = {"setting": setting} if setting else {}
        super().__init__(message=message, details=details)


class InvalidRoutePatternError(ConfigurationError):
    """Raised when a listen_on_paths entry cannot be compiled"""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(message=f"Invalid route pattern '{pattern}': {reason}", setting="listen_on_paths")
        self.details["pattern"] = pattern


# ============================================================================
# Runtime Exceptions (always recovered locally)
# ============================================================================


class OriginUnavailableError(RedirectorError):
    """Raised when the origin cannot be reached"""

    def __init__(self, url: str, reason: str):
        super().__init__(message=f"Origin request to {url} failed: {reason}", details={"url": url})


class CacheStoreError(RedirectorError):
    """Raised by cache stores when a backend operation fails"""

    def __init__(self, operation: str, key: str, reason: str):
        super().__init__(
            message=f"Cache {operation} failed for {key}: {reason}",
            details={"operation": operation, "key": key},
        )
