"""
narrator: Long-form Text-to-Speech over a bounded remote model.

The remote speech model only accepts short inputs, so narrator splits long
text into model-safe chunks, generates audio for each chunk sequentially
(respecting the provider's rate limits), and stitches the raw PCM back
together into a single WAV file.

Key Features:
    - Sentence/word/raw-cut chunking bounded by a configurable size
    - Per-chunk retry with linear backoff and a fixed rate-limit cooldown
    - All-or-nothing assembly (partial audio is never returned)
    - Exact-text result cache with TTL and per-caller rate limiting
    - FastAPI service (/api/generateSpeech) and a serverless CLI

Example Usage:
    >>> import asyncio
    >>> from narrator.core.config import default_settings
    >>> from narrator.services import SpeechService
    >>>
    >>> service = SpeechService(default_settings())
    >>> result = asyncio.run(service.generate("Hello there."))
    >>> with open("output.wav", "wb") as f:
    ...     f.write(result.wav_bytes)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
