"""
API Request/Response Schemas.

This module defines Pydantic models for the speech API endpoints.

Models:
    GenerateSpeechRequest: Input for /api/generateSpeech, its /stream variant
        and /v1/tts
    GenerateSpeechResponse: Success body of /api/generateSpeech
    ErrorResponse: Error body of /api/generateSpeech

The text field is deliberately typed loosely: a missing, null or
non-string value must produce the service's own 400 message rather than
FastAPI's generic validation error, so the check lives in
services/validators.py.

Example Request:
    {"text": "Once upon a time..."}

Example Responses:
    200 {"audio": "UklGRiQA...", "cached": false}
    429 {"error": "Too many requests. Please try again later.", "retryAfter": 42}
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class GenerateSpeechRequest(BaseModel):
    """
    Speech generation request.

    Attributes:
        text: The text to speak. Validated by validate_text(): required,
            string, non-blank, at most validation.max_text_length chars.
    """
    model_config = ConfigDict(extra="ignore")

    text: Any = Field(default=None, description="Text to convert to speech")


class GenerateSpeechResponse(BaseModel):
    """
    Successful generation.

    Attributes:
        audio: Base64-encoded WAV file (24 kHz mono 16-bit by default).
        cached: True when served from the result cache.
    """
    audio: str
    cached: bool = False


class ErrorResponse(BaseModel):
    """Error body; retryAfter is present on 429 only."""
    model_config = ConfigDict(populate_by_name=True)

    error: str
    retry_after: Optional[int] = Field(default=None, alias="retryAfter")
