"""
Remote Speech Model Clients.

The pipeline only needs one thing from the remote model: turn a bounded
text chunk into raw PCM bytes, or fail. SpeechModelClient captures that
contract; GeminiSpeechClient implements it with google-genai.

Error mapping:
    - HTTP 429 / RESOURCE_EXHAUSTED / quota messages -> RateLimitedError(remote=True)
    - anything else, including a response without audio -> GenerationError

Usage:
    client = GeminiSpeechClient.from_config(config.model)
    pcm = await client.synthesize("Hello there.")
"""
from __future__ import annotations

import base64
import os
from typing import Any, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from narrator.core.config import Defaults, ModelConfig
from narrator.core.logging import get_logger, debug, info
from narrator.tts.errors import ConfigurationError, GenerationError, RateLimitedError

_LOG = get_logger("narrator.client")

API_KEY_MISSING_MESSAGE = "API key not configured on server."

_QUOTA_MARKERS = (
    "resource_exhausted",
    "exceeded your current quota",
    "quotafailure",
)


def is_rate_limit_error(e: BaseException) -> bool:
    """Detect remote throttling by status code or by the quota markers in the message."""
    if isinstance(e, genai_errors.APIError) and getattr(e, "code", None) == 429:
        return True
    s_low = str(e).lower()
    return any(marker in s_low for marker in _QUOTA_MARKERS)


class SpeechModelClient:
    """
    Abstract remote speech model.

    Subclasses implement synthesize(); it must return raw little-endian PCM
    and raise RateLimitedError or GenerationError on failure.
    """

    name: str = "base"

    async def synthesize(self, text: str) -> bytes:
        raise NotImplementedError


class GeminiSpeechClient(SpeechModelClient):
    """Gemini TTS via google-genai with a single prebuilt voice."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = Defaults.MODEL_NAME,
        voice: str = Defaults.MODEL_VOICE,
    ):
        if not api_key:
            raise ConfigurationError(API_KEY_MISSING_MESSAGE)
        self.model = model
        self.voice = voice
        self._client = genai.Client(api_key=api_key)
        self._generation_config = types.GenerateContentConfig(
            response_modalities=["AUDIO"],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
                ),
            ),
        )
        info(_LOG, "client_ready", model=model, voice=voice)

    @classmethod
    def from_config(cls, model_config: ModelConfig) -> "GeminiSpeechClient":
        """
        Build a client from ModelConfig, reading the key from the environment.

        Raises:
            ConfigurationError: If the API key variable is unset or empty.
        """
        return cls(
            api_key=os.getenv(model_config.api_key_env),
            model=model_config.name,
            voice=model_config.voice,
        )

    async def synthesize(self, text: str) -> bytes:
        contents = [
            types.Content(
                role="user",
                parts=[types.Part.from_text(text=text)],
            )
        ]
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=self._generation_config,
            )
        except Exception as e:
            if is_rate_limit_error(e):
                raise RateLimitedError(f"speech model rate limited: {e}", remote=True) from e
            raise GenerationError(f"speech model request failed: {e}") from e

        pcm = _extract_audio(response)
        if not pcm:
            raise GenerationError("speech model returned no audio")

        debug(_LOG, "synthesized", chars=len(text), size=len(pcm))
        return pcm


def _extract_audio(response: Any) -> bytes:
    """Pull the inline audio payload out of a generate_content response."""
    try:
        data = response.candidates[0].content.parts[0].inline_data.data
    except (AttributeError, IndexError, TypeError):
        return b""
    if data is None:
        return b""
    if isinstance(data, str):
        return base64.b64decode(data)
    return bytes(data)
