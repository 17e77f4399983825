"""
FastAPI REST API Layer for narrator.

This package defines all HTTP endpoints:
    - routes.py: /api/generateSpeech (+ /stream), /v1/tts, /health, /metrics
    - schemas.py: Request/response Pydantic models
    - dependencies.py: FastAPI dependency injection
"""
