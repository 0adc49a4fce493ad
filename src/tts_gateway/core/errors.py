"""
Error Codes and Exceptions for tts-gateway.

Every failure that can leave the synthesis core is a TTSError subclass
carrying a stable string code. The API layer maps codes to HTTP status
codes (see api/routes.py), so callers can tell a rate-limited request
apart from a failed synthesis without parsing messages.

Hierarchy:
    TTSError
    ├── InvalidInput
    ├── ConfigurationError
    │   └── NoBackendAvailable
    ├── FeatureNotGranted
    ├── RateLimited
    ├── SynthesisFailed
    │   └── SynthesisTimeout
    ├── StoreUnavailable
    │   └── InternalCacheError
    └── StatusReportFailed
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Standardized error codes for API responses."""
    INVALID_INPUT = "INVALID_INPUT"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    NO_BACKEND_AVAILABLE = "NO_BACKEND_AVAILABLE"
    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMITED = "RATE_LIMITED"
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"
    TIMEOUT = "TIMEOUT"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INTERNAL_CACHE_ERROR = "INTERNAL_CACHE_ERROR"
    STATUS_REPORT_FAILED = "STATUS_REPORT_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class TTSError(Exception):
    """
    Base exception for gateway errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to standardized error response dict for API."""
        result: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class InvalidInput(TTSError):
    """Raised when a request is malformed."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class ConfigurationError(TTSError):
    """Raised for registry or wiring mistakes. Never retried."""
    def __init__(self, message: str, details: Optional[Dict] = None, code: str = ErrorCode.CONFIGURATION_ERROR):
        super().__init__(message, code, details)


class NoBackendAvailable(ConfigurationError):
    """Raised when no registered backend accepts a request."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, details, code=ErrorCode.NO_BACKEND_AVAILABLE)


class FeatureNotGranted(TTSError):
    """Raised when a request needs a feature the caller's claim lacks."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.UNAUTHORIZED, details)


class RateLimited(TTSError):
    """Raised when a user's daily character budget would be exceeded."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.RATE_LIMITED, details)


class SynthesisFailed(TTSError):
    """Raised when the selected backend fails. Not retried, not failed over."""
    def __init__(self, message: str, details: Optional[Dict] = None, code: str = ErrorCode.SYNTHESIS_FAILED):
        super().__init__(message, code, details)


class SynthesisTimeout(SynthesisFailed):
    """Raised when a backend call exceeds the configured timeout."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, details, code=ErrorCode.TIMEOUT)


class StoreUnavailable(TTSError):
    """Raised when a storage tier fails and the failure cannot be absorbed."""
    def __init__(self, message: str, details: Optional[Dict] = None, code: str = ErrorCode.STORE_UNAVAILABLE):
        super().__init__(message, code, details)


class InternalCacheError(StoreUnavailable):
    """Raised when a synthesized artifact could not be persisted."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, details, code=ErrorCode.INTERNAL_CACHE_ERROR)


class StatusReportFailed(TTSError):
    """Raised when the status collaborator rejects a terminal report."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.STATUS_REPORT_FAILED, details)
