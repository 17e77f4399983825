"""
Error Types for Speech Generation.

Every failure the generation pipeline can surface derives from SpeechError,
which carries a machine-readable code and an optional details dict and
serializes to the standard API error payload via to_dict().

Error Hierarchy:
    SpeechError
    ├── ConfigurationError  - Server misconfiguration (missing API key)
    ├── RateLimitedError    - Caller window exceeded, or remote 429
    ├── GenerationError     - Chunk failed after all retries
    ├── EmptyResultError    - Nothing to synthesize / no audio produced
    └── CancelledError      - Caller went away mid-pipeline

Input validation errors live in narrator.services.validators.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """
    Standardized error codes for API responses.
    """
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"   # Missing API key etc.
    RATE_LIMITED = "RATE_LIMITED"                 # Caller or remote throttling
    GENERATION_FAILED = "GENERATION_FAILED"       # Chunk exhausted its retries
    EMPTY_RESULT = "EMPTY_RESULT"                 # No audio produced
    CANCELLED = "CANCELLED"                       # Caller disconnected
    INTERNAL_ERROR = "INTERNAL_ERROR"             # Unexpected error


class SpeechError(Exception):
    """
    Base exception for speech generation errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode class.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to standardized error response dict for API."""
        result = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ConfigurationError(SpeechError):
    """Raised when the server is missing required configuration."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class RateLimitedError(SpeechError):
    """
    Raised when a request is throttled.

    remote=False means the per-caller limiter rejected the request and
    retry_after tells the caller when to come back. remote=True means the
    speech model answered 429 / RESOURCE_EXHAUSTED; the retrier handles it.
    """
    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        remote: bool = False,
        details: Optional[Dict] = None,
    ):
        self.retry_after = retry_after
        self.remote = remote
        merged = dict(details or {})
        if retry_after is not None:
            merged.setdefault("retry_after", retry_after)
        super().__init__(message, ErrorCode.RATE_LIMITED, merged)


class GenerationError(SpeechError):
    """Raised when a chunk (or the whole request) fails to produce audio."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.GENERATION_FAILED, details)


class EmptyResultError(SpeechError):
    """Raised when the pipeline finishes without any audio."""
    def __init__(self, message: str = "no audio produced", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.EMPTY_RESULT, details)


class CancelledError(SpeechError):
    """Raised when the caller cancels a generation before it completes."""
    def __init__(self, message: str = "generation cancelled", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.CANCELLED, details)
