"""
narrator Services Layer.

This package provides the business logic layer that sits between the API
layer and the generation pipeline.

Components:
    - speech_service.py: SpeechService class (request orchestrator)
    - validators.py: Input validation functions
"""
from .speech_service import (
    GenerationResult,
    SpeechService,
    get_service,
    reset_service,
)
from .validators import ValidationError, validate_text

__all__ = [
    "SpeechService",
    "GenerationResult",
    "get_service",
    "reset_service",
    "ValidationError",
    "validate_text",
]
