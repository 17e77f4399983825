"""
Input Validation for the Speech Service.

Validation happens before any rate limiting, caching or remote work so bad
requests are rejected cheaply with a clear message.

Validation Rules:
    - Text: Required, must be a string, must contain non-whitespace
      characters, max 100000 characters by default

Error Handling:
    validate_text raises ValidationError with:
        - message: Human-readable error description
        - code: Machine-readable error code (e.g., "TEXT_TOO_LONG")

Usage:
    from narrator.services.validators import validate_text, ValidationError

    try:
        text = validate_text(payload.get("text"), max_length=100000)
    except ValidationError as e:
        return 400, {"error": e.message}
"""
from __future__ import annotations

from typing import Any

from narrator.core.config import Defaults
from narrator.core.logging import get_logger, debug

_LOG = get_logger("narrator.validators")

TEXT_REQUIRED_MESSAGE = "Text is required and must be a string."


class ValidationError(Exception):
    """
    Exception raised when input validation fails.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for programmatic handling.

    Example:
        >>> raise ValidationError("Text is required", "TEXT_REQUIRED")
    """

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self):
        return {"ok": False, "error": self.code, "message": self.message}


def validate_text(text: Any, max_length: int = Defaults.VALIDATION_MAX_TEXT_LENGTH) -> str:
    """
    Validate text input.

    The text is returned unchanged (not stripped): it is also the cache key,
    and the chunker does its own trimming.

    Args:
        text: Raw "text" value from the request body.
        max_length: Maximum allowed length in characters.

    Returns:
        The validated text.

    Raises:
        ValidationError: TEXT_NOT_STRING, TEXT_REQUIRED or TEXT_TOO_LONG.
    """
    if text is not None and not isinstance(text, str):
        debug(_LOG, "text_not_string", type=type(text).__name__)
        raise ValidationError(TEXT_REQUIRED_MESSAGE, "TEXT_NOT_STRING")

    if not text or not text.strip():
        raise ValidationError(TEXT_REQUIRED_MESSAGE, "TEXT_REQUIRED")

    if len(text) > max_length:
        raise ValidationError(
            f"Text exceeds maximum length ({len(text)} > {max_length})",
            "TEXT_TOO_LONG",
        )

    return text
