"""
FastAPI Dependency Injection Providers.

Dependencies are functions injected into route handlers with Depends().

Architecture:
    1. get_settings() - Loads and caches application configuration
    2. get_speech_service() - Creates/returns the singleton SpeechService

    Both are singletons so every request shares one cache and one rate
    limiter.

Usage in Route Handlers:
    from fastapi import Depends
    from narrator.api.dependencies import get_speech_service

    @router.post("/api/generateSpeech")
    async def generate(req: GenerateSpeechRequest,
                       service: SpeechService = Depends(get_speech_service)):
        ...

Settings Location:
    NARRATOR_SETTINGS, else config/settings.yaml. When the file does not
    exist the defaults (plus NARRATOR_* overrides) are used.
"""
from __future__ import annotations

import os
from functools import lru_cache

from narrator.core.config import Settings, default_settings, load_settings
from narrator.core.logging import get_logger, info
from narrator.services.speech_service import SpeechService, get_service

_LOG = get_logger("narrator.api")

DEFAULT_SETTINGS_PATH = "config/settings.yaml"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    Returns:
        Settings: Application configuration (validated lazily by the service).
    """
    path = os.getenv("NARRATOR_SETTINGS", DEFAULT_SETTINGS_PATH)
    try:
        return load_settings(path)
    except FileNotFoundError:
        info(_LOG, "settings_defaults", path=path)
        return default_settings()


def get_speech_service() -> SpeechService:
    """Get the singleton SpeechService instance."""
    return get_service(get_settings())
