"""
SpeechService - Request-Level Orchestration.

This module provides SpeechService, the single owner of the shared state a
generation request touches. Every HTTP endpoint and the CLI go through it.

Architecture:
    Request → Validate → Rate Limit → Cache Check → Pipeline → WAV → Store → Response

Key Components:
    - Rate limiter: per-caller fixed window (RateLimiter)
    - Cache: exact-text result cache with TTL (AudioCache)
    - Pipeline: chunk, generate sequentially with retries, assemble
      (SpeechPipeline, one per request)
    - Client: remote speech model, created lazily on first generation so a
      missing API key is reported per request rather than at startup

Error Handling:
    - ValidationError: bad input (400)
    - RateLimitedError: caller over its window (429 + retry_after)
    - ConfigurationError: missing API key (500)
    - GenerationError / EmptyResultError: no audio produced (500)
    - CancelledError: caller went away; nothing is returned

Example:
    >>> service = SpeechService(default_settings())
    >>> service.check_rate_limit("203.0.113.7")
    >>> result = await service.generate("Hello there.")
    >>> result.cached, len(result.wav_bytes)
"""
from __future__ import annotations

import asyncio
import base64
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from narrator.core.config import ModelConfig, NarratorConfig, Settings
from narrator.core.logging import debug, fail, get_level_name, get_logger, info, success, verbose
from narrator.core.metrics import metrics
from narrator.services.validators import validate_text
from narrator.tts.cache import AudioCache
from narrator.tts.client import GeminiSpeechClient, SpeechModelClient
from narrator.tts.errors import (
    CancelledError,
    EmptyResultError,
    ErrorCode,
    GenerationError,
    RateLimitedError,
    SpeechError,
)
from narrator.tts.pipeline import (
    CancelCheck,
    PipelineFailure,
    ProgressCallback,
    SpeechPipeline,
)
from narrator.tts.rate_limit import RateLimiter, RateLimitDecision
from narrator.tts.retry import SleepFn
from narrator.utils.timeit import timeit
from narrator.utils.wav import encode_wav

_LOG = get_logger("narrator.service")

ClientFactory = Callable[[ModelConfig], SpeechModelClient]


@dataclass
class GenerationResult:
    """
    A finished generation.

    Attributes:
        wav_bytes: Playable WAV artifact.
        audio_base64: wav_bytes, base64-encoded (the API payload).
        cached: True when served from the result cache.
        sample_rate: Output sample rate.
        chunks: Number of chunks generated (0 on a cache hit).
        total_seconds: Time spent in generate().
        timings: Per-stage timing breakdown.
    """
    wav_bytes: bytes
    audio_base64: str
    cached: bool
    sample_rate: int
    chunks: int = 0
    total_seconds: float = 0.0
    timings: Dict[str, float] = field(default_factory=dict)


class SpeechService:
    """
    Speech generation with caching, rate limiting and metrics.

    Args:
        settings: Application settings loaded from YAML/environment.
        client_factory: Builds the remote client from ModelConfig; defaults
            to GeminiSpeechClient.from_config. Tests pass a fake.
        sleep: Awaitable sleep used by the pipeline for pacing and backoff.
    """

    def __init__(
        self,
        settings: Settings,
        client_factory: Optional[ClientFactory] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._settings = settings
        self._config = NarratorConfig.from_settings(settings)
        self._client_factory: ClientFactory = client_factory or GeminiSpeechClient.from_config
        self._client: Optional[SpeechModelClient] = None
        self._client_lock = threading.Lock()
        self._sleep = sleep

        # ─────────────────────────────────────────────────────────────────────
        # Cache: exact-text, TTL, LRU bound
        # ─────────────────────────────────────────────────────────────────────
        self._cache: Optional[AudioCache] = None
        if self._config.cache.enabled:
            self._cache = AudioCache(
                ttl_seconds=self._config.cache.ttl_ms / 1000.0,
                max_items=self._config.cache.max_items,
                sweep_probability=self._config.cache.sweep_probability,
            )

        # ─────────────────────────────────────────────────────────────────────
        # Rate limiting: per caller
        # ─────────────────────────────────────────────────────────────────────
        self._limiter = RateLimiter(
            max_requests=self._config.rate_limit.max_requests,
            window_seconds=self._config.rate_limit.window_ms / 1000.0,
        )

        self._text_preview_chars = self._config.logging.text_preview_chars

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def config(self) -> NarratorConfig:
        return self._config

    @property
    def cache(self) -> Optional[AudioCache]:
        return self._cache

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    @property
    def sample_rate(self) -> int:
        return self._config.audio.sample_rate

    # =========================================================================
    # Request steps
    # =========================================================================

    def validate(self, text: Any) -> str:
        """Validate raw request text against the configured ceiling."""
        return validate_text(text, max_length=self._config.validation.max_text_length)

    def check_rate_limit(self, identity: str) -> RateLimitDecision:
        """
        Count one request against identity's window.

        Raises:
            RateLimitedError: When the caller is over its limit; retry_after
                is set.
        """
        decision = self._limiter.check(identity)
        if not decision.allowed:
            metrics.record_rate_limited()
            raise RateLimitedError(
                "Too many requests. Please try again later.",
                retry_after=decision.retry_after,
            )
        return decision

    def _get_client(self) -> SpeechModelClient:
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    self._client = self._client_factory(self._config.model)
        return self._client

    def _lookup_cache(self, text: str) -> Optional[str]:
        if self._cache is None:
            return None
        entry = self._cache.get(text)
        metrics.record_cache("hit" if entry is not None else "miss")
        return entry.audio_base64 if entry is not None else None

    @staticmethod
    def _raise_for_failure(outcome: PipelineFailure) -> None:
        details = {"failed_chunk_index": outcome.failed_chunk_index, "last_error": outcome.last_error}
        if outcome.code == ErrorCode.CANCELLED:
            raise CancelledError(details=details)
        if outcome.code == ErrorCode.EMPTY_RESULT:
            raise EmptyResultError(details=details)
        raise GenerationError(
            f"Audio generation failed at chunk {outcome.failed_chunk_index}: {outcome.last_error}",
            details=details,
        )

    # =========================================================================
    # Public API: generate()
    # =========================================================================

    async def generate(
        self,
        text: str,
        on_progress: Optional[ProgressCallback] = None,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> GenerationResult:
        """
        Produce a WAV artifact for already-validated text.

        Pipeline:
            1. Cache lookup by exact text (hit returns immediately)
            2. Chunked generation against the remote model
            3. WAV encoding
            4. Cache store

        Raises:
            ConfigurationError: If the remote client cannot be configured.
            GenerationError, EmptyResultError, CancelledError: If the
                pipeline ends without audio.
        """
        preview = text[:self._text_preview_chars] if self._text_preview_chars > 0 else ""
        info(_LOG, "request", chars=len(text), text_preview=preview)
        debug(_LOG, "request_full", text=text)

        cache_status = "disabled" if self._cache is None else "miss"
        timings: Dict[str, float] = {}

        try:
            with timeit("request_total") as total_t:
                with timeit("cache_lookup") as t_cache:
                    cached_b64 = self._lookup_cache(text)
                timings["cache_lookup"] = t_cache.seconds

                if cached_b64 is not None:
                    cache_status = "hit"
                    wav_bytes = base64.b64decode(cached_b64)
                    audio_b64 = cached_b64
                    chunk_count = 0
                    pcm_size = 0
                else:
                    client = self._get_client()
                    pipeline = SpeechPipeline(client, self._config.pipeline, sleep=self._sleep)
                    outcome = await pipeline.run(text, on_progress=on_progress, is_cancelled=is_cancelled)
                    if isinstance(outcome, PipelineFailure):
                        self._raise_for_failure(outcome)
                    timings.update(outcome.timings_s)
                    chunk_count = len(outcome.chunks)
                    pcm_size = len(outcome.combined_bytes)

                    with timeit("encode") as t_enc:
                        audio = self._config.audio
                        wav_bytes = encode_wav(
                            outcome.combined_bytes,
                            sample_rate=audio.sample_rate,
                            channels=audio.channels,
                            bits_per_sample=audio.bits_per_sample,
                        )
                        audio_b64 = base64.b64encode(wav_bytes).decode("ascii")
                    timings["encode"] = t_enc.seconds
                    verbose(_LOG, "stage", event="encode", seconds=round(timings["encode"], 4))

                    if self._cache is not None:
                        self._cache.set(text, audio_b64)

        except SpeechError as e:
            if e.code != ErrorCode.CANCELLED:
                fail(_LOG, "request_failed", error=e.message, code=e.code)
            metrics.record_request(status="error", duration=-1, cache_status=cache_status)
            raise

        total_s = total_t.seconds
        success(_LOG, "done", cache=cache_status, chunks=chunk_count, bytes=len(wav_bytes), seconds=round(total_s, 3))
        metrics.record_request(
            status="success",
            duration=total_s,
            cache_status=cache_status,
            audio_bytes=pcm_size,
        )

        return GenerationResult(
            wav_bytes=wav_bytes,
            audio_base64=audio_b64,
            cached=(cache_status == "hit"),
            sample_rate=self.sample_rate,
            chunks=chunk_count,
            total_seconds=total_s,
            timings=timings,
        )

    # =========================================================================
    # Health
    # =========================================================================

    def get_health_info(self) -> Dict[str, Any]:
        """
        Get service status for the /health endpoint.

        Returns:
            Dictionary with configuration summary, cache and limiter stats.
        """
        pipeline = self._config.pipeline
        return {
            "ok": True,
            "status": "healthy",
            "model": self._config.model.name,
            "voice": self._config.model.voice,
            "client_ready": self._client is not None,
            "log_level": get_level_name(),
            "audio": {
                "sample_rate": self._config.audio.sample_rate,
                "channels": self._config.audio.channels,
                "bits_per_sample": self._config.audio.bits_per_sample,
            },
            "pipeline": {
                "max_chunk_size": pipeline.max_chunk_size,
                "request_delay_ms": pipeline.request_delay_ms,
                "max_retries": pipeline.max_retries,
                "retry_base_delay_ms": pipeline.retry_base_delay_ms,
                "rate_limit_cooldown_ms": pipeline.rate_limit_cooldown_ms,
            },
            "cache": self._cache.stats() if self._cache is not None else {"enabled": False},
            "rate_limit": self._limiter.stats(),
        }


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[SpeechService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> SpeechService:
    """
    Get or create the global SpeechService instance.

    Thread-safe lazy singleton. The service is created on first call
    and reused for subsequent calls.
    """
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = SpeechService(settings)
    return _service


def reset_service() -> None:
    """
    Reset the global service instance.

    Used primarily for testing to ensure clean state between tests.
    """
    global _service
    with _service_lock:
        _service = None
