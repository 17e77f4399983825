"""
Configuration Management for narrator.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration objects
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (NARRATOR_MAX_CHUNK_SIZE, NARRATOR_MODEL, etc.)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Option names follow snake_case. The camelCase names used by the browser
client (maxChunkSize, requestDelayMs, ...) are accepted as aliases
so existing configuration can be reused.

Example settings.yaml:
    pipeline:
      max_chunk_size: 800
      request_delay_ms: 1000
      max_retries: 3

    cache:
      enabled: true
      ttl_ms: 3600000

    rate_limit:
      max_requests: 10
      window_ms: 60000
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import os
import yaml


class ConfigValidationError(Exception):
    """
    Raised when configuration validation fails.

    This exception is thrown when a configuration value is outside
    acceptable bounds or of the wrong type.
    """
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Pipeline: Chunking, pacing and retry parameters
        - Cache: Exact-text result cache
        - Rate limiting: Per-caller request window
        - Validation: Input ceilings
        - Audio: Output WAV format
        - Model: Remote speech model selection
        - Logging: Log level and formatting
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Pipeline
    # ─────────────────────────────────────────────────────────────────────────
    PIPELINE_MAX_CHUNK_SIZE = 800           # Characters per remote request
    PIPELINE_REQUEST_DELAY_MS = 1000        # Pause between chunk requests
    PIPELINE_MAX_RETRIES = 3                # Attempts per chunk
    PIPELINE_RETRY_BASE_DELAY_MS = 1000     # Linear backoff unit
    PIPELINE_RATE_LIMIT_COOLDOWN_MS = 10000 # Wait after a remote 429

    # ─────────────────────────────────────────────────────────────────────────
    # Cache
    # ─────────────────────────────────────────────────────────────────────────
    CACHE_ENABLED = True
    CACHE_TTL_MS = 3600000                  # 1 hour
    CACHE_MAX_ITEMS = 256
    CACHE_SWEEP_PROBABILITY = 0.1           # Fraction of stores that sweep

    # ─────────────────────────────────────────────────────────────────────────
    # Rate Limiting
    # ─────────────────────────────────────────────────────────────────────────
    RATE_LIMIT_MAX_REQUESTS = 10            # 0 disables the limiter
    RATE_LIMIT_WINDOW_MS = 60000            # 1 minute

    # ─────────────────────────────────────────────────────────────────────────
    # Validation
    # ─────────────────────────────────────────────────────────────────────────
    VALIDATION_MAX_TEXT_LENGTH = 100000     # 100k characters

    # ─────────────────────────────────────────────────────────────────────────
    # Audio
    # ─────────────────────────────────────────────────────────────────────────
    AUDIO_SAMPLE_RATE = 24000
    AUDIO_CHANNELS = 1
    AUDIO_BITS_PER_SAMPLE = 16

    # ─────────────────────────────────────────────────────────────────────────
    # Model
    # ─────────────────────────────────────────────────────────────────────────
    MODEL_NAME = "gemini-2.5-flash-preview-tts"
    MODEL_VOICE = "Kore"
    MODEL_API_KEY_ENV = "GEMINI_API_KEY"

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 80
    LOGGING_LEVEL = 2                       # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG


@dataclass
class PipelineConfig:
    """
    Chunked generation parameters.

    The remote model rejects oversized inputs and throttles bursts, so the
    pipeline bounds chunk size and paces requests.
    """
    max_chunk_size: int = Defaults.PIPELINE_MAX_CHUNK_SIZE
    request_delay_ms: int = Defaults.PIPELINE_REQUEST_DELAY_MS
    max_retries: int = Defaults.PIPELINE_MAX_RETRIES
    retry_base_delay_ms: int = Defaults.PIPELINE_RETRY_BASE_DELAY_MS
    rate_limit_cooldown_ms: int = Defaults.PIPELINE_RATE_LIMIT_COOLDOWN_MS


@dataclass
class CacheConfig:
    """
    In-memory result cache configuration.

    Entries are keyed by the exact source text and live for ttl_ms.
    """
    enabled: bool = Defaults.CACHE_ENABLED
    ttl_ms: int = Defaults.CACHE_TTL_MS
    max_items: int = Defaults.CACHE_MAX_ITEMS
    sweep_probability: float = Defaults.CACHE_SWEEP_PROBABILITY


@dataclass
class RateLimitConfig:
    """Per-caller fixed window limiter configuration."""
    max_requests: int = Defaults.RATE_LIMIT_MAX_REQUESTS
    window_ms: int = Defaults.RATE_LIMIT_WINDOW_MS

    @property
    def enabled(self) -> bool:
        return self.max_requests > 0


@dataclass
class ValidationConfig:
    """Input validation ceilings."""
    max_text_length: int = Defaults.VALIDATION_MAX_TEXT_LENGTH


@dataclass
class AudioConfig:
    """
    Output WAV format.

    The remote model returns raw 16-bit little-endian PCM; these values
    describe it in the WAV header.
    """
    sample_rate: int = Defaults.AUDIO_SAMPLE_RATE
    channels: int = Defaults.AUDIO_CHANNELS
    bits_per_sample: int = Defaults.AUDIO_BITS_PER_SAMPLE


@dataclass
class ModelConfig:
    """Remote speech model selection."""
    name: str = Defaults.MODEL_NAME
    voice: str = Defaults.MODEL_VOICE
    api_key_env: str = Defaults.MODEL_API_KEY_ENV


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, critical errors only
        2 = NORMAL: Request lifecycle, cache status (default)
        3 = VERBOSE: Per-chunk timing, retries
        4 = DEBUG: Internal state, full tracing
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


def _pick(section: Dict[str, Any], name: str, alias: Optional[str], default: Any) -> Any:
    """Read an option by its snake_case name, then its camelCase alias."""
    if name in section:
        return section[name]
    if alias and alias in section:
        return section[alias]
    return default


@dataclass
class NarratorConfig:
    """
    Validated configuration for SpeechService.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = NarratorConfig.from_settings(settings)
        print(config.pipeline.max_chunk_size)
    """
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "NarratorConfig":
        """
        Create NarratorConfig from Settings with validation.

        Args:
            settings: Raw Settings object loaded from YAML.

        Returns:
            Validated NarratorConfig instance.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Pipeline configuration
        # ─────────────────────────────────────────────────────────────────────
        p_raw = raw.get("pipeline", {}) or {}
        pipeline = PipelineConfig(
            max_chunk_size=int(_pick(p_raw, "max_chunk_size", "maxChunkSize",
                                     Defaults.PIPELINE_MAX_CHUNK_SIZE)),
            request_delay_ms=int(_pick(p_raw, "request_delay_ms", "requestDelayMs",
                                       Defaults.PIPELINE_REQUEST_DELAY_MS)),
            max_retries=int(_pick(p_raw, "max_retries", "maxRetries",
                                  Defaults.PIPELINE_MAX_RETRIES)),
            retry_base_delay_ms=int(_pick(p_raw, "retry_base_delay_ms", "retryBaseDelayMs",
                                          Defaults.PIPELINE_RETRY_BASE_DELAY_MS)),
            rate_limit_cooldown_ms=int(_pick(p_raw, "rate_limit_cooldown_ms", "rateLimitCooldownMs",
                                             Defaults.PIPELINE_RATE_LIMIT_COOLDOWN_MS)),
        )
        cls._validate_positive("pipeline.max_chunk_size", pipeline.max_chunk_size)
        cls._validate_non_negative("pipeline.request_delay_ms", pipeline.request_delay_ms)
        cls._validate_positive("pipeline.max_retries", pipeline.max_retries)
        cls._validate_non_negative("pipeline.retry_base_delay_ms", pipeline.retry_base_delay_ms)
        cls._validate_non_negative("pipeline.rate_limit_cooldown_ms", pipeline.rate_limit_cooldown_ms)

        # ─────────────────────────────────────────────────────────────────────
        # Cache configuration
        # ─────────────────────────────────────────────────────────────────────
        c_raw = raw.get("cache", {}) or {}
        cache = CacheConfig(
            enabled=bool(_pick(c_raw, "enabled", "enableCaching", Defaults.CACHE_ENABLED)),
            ttl_ms=int(_pick(c_raw, "ttl_ms", "cacheTtlMs", Defaults.CACHE_TTL_MS)),
            max_items=int(_pick(c_raw, "max_items", None, Defaults.CACHE_MAX_ITEMS)),
            sweep_probability=float(_pick(c_raw, "sweep_probability", None,
                                          Defaults.CACHE_SWEEP_PROBABILITY)),
        )
        cls._validate_positive("cache.ttl_ms", cache.ttl_ms)
        cls._validate_positive("cache.max_items", cache.max_items)
        cls._validate_range("cache.sweep_probability", cache.sweep_probability, 0.0, 1.0)

        # ─────────────────────────────────────────────────────────────────────
        # Rate limit configuration
        # ─────────────────────────────────────────────────────────────────────
        r_raw = raw.get("rate_limit", {}) or {}
        rate_limit = RateLimitConfig(
            max_requests=int(_pick(r_raw, "max_requests", "rateLimitMaxRequests",
                                   Defaults.RATE_LIMIT_MAX_REQUESTS)),
            window_ms=int(_pick(r_raw, "window_ms", "rateLimitWindowMs",
                                Defaults.RATE_LIMIT_WINDOW_MS)),
        )
        cls._validate_non_negative("rate_limit.max_requests", rate_limit.max_requests)
        cls._validate_positive("rate_limit.window_ms", rate_limit.window_ms)

        # ─────────────────────────────────────────────────────────────────────
        # Validation configuration
        # ─────────────────────────────────────────────────────────────────────
        v_raw = raw.get("validation", {}) or {}
        validation = ValidationConfig(
            max_text_length=int(_pick(v_raw, "max_text_length", "maxTextLength",
                                      Defaults.VALIDATION_MAX_TEXT_LENGTH)),
        )
        cls._validate_positive("validation.max_text_length", validation.max_text_length)

        # ─────────────────────────────────────────────────────────────────────
        # Audio configuration
        # ─────────────────────────────────────────────────────────────────────
        a_raw = raw.get("audio", {}) or {}
        audio = AudioConfig(
            sample_rate=int(a_raw.get("sample_rate", Defaults.AUDIO_SAMPLE_RATE)),
            channels=int(a_raw.get("channels", Defaults.AUDIO_CHANNELS)),
            bits_per_sample=int(a_raw.get("bits_per_sample", Defaults.AUDIO_BITS_PER_SAMPLE)),
        )
        cls._validate_positive("audio.sample_rate", audio.sample_rate)
        cls._validate_positive("audio.channels", audio.channels)
        if audio.bits_per_sample % 8 != 0 or audio.bits_per_sample <= 0:
            raise ConfigValidationError(
                f"audio.bits_per_sample must be a positive multiple of 8, got {audio.bits_per_sample}"
            )

        # ─────────────────────────────────────────────────────────────────────
        # Model configuration
        # ─────────────────────────────────────────────────────────────────────
        m_raw = raw.get("model", {}) or {}
        model = ModelConfig(
            name=str(m_raw.get("name", Defaults.MODEL_NAME)),
            voice=str(m_raw.get("voice", Defaults.MODEL_VOICE)),
            api_key_env=str(m_raw.get("api_key_env", Defaults.MODEL_API_KEY_ENV)),
        )

        # ─────────────────────────────────────────────────────────────────────
        # Logging configuration
        # ─────────────────────────────────────────────────────────────────────
        l_raw = raw.get("logging", {}) or {}
        log_level_raw = l_raw.get("level", Defaults.LOGGING_LEVEL)

        # Handle string log levels (e.g., "INFO", "DEBUG")
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(l_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        return cls(
            pipeline=pipeline,
            cache=cache,
            rate_limit=rate_limit,
            validation=validation,
            audio=audio,
            model=model,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_config() to get a validated NarratorConfig.

    Attributes:
        raw: Dictionary of raw configuration values.
    """
    raw: Dict[str, Any]

    @property
    def model_name(self) -> str:
        """Get the remote model name."""
        return str(self.raw.get("model", {}).get("name", Defaults.MODEL_NAME))

    @property
    def sample_rate(self) -> int:
        """Get the output audio sample rate."""
        return int(self.raw.get("audio", {}).get("sample_rate", Defaults.AUDIO_SAMPLE_RATE))

    def get_config(self) -> NarratorConfig:
        """
        Get validated NarratorConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return NarratorConfig.from_settings(self)


def _apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay NARRATOR_* environment variables onto raw settings."""
    model = os.getenv("NARRATOR_MODEL")
    if model:
        raw.setdefault("model", {})["name"] = model

    int_overrides = {
        "NARRATOR_MAX_CHUNK_SIZE": "max_chunk_size",
        "NARRATOR_REQUEST_DELAY_MS": "request_delay_ms",
        "NARRATOR_MAX_RETRIES": "max_retries",
    }
    for env_name, key in int_overrides.items():
        value = os.getenv(env_name)
        if not value:
            continue
        try:
            raw.setdefault("pipeline", {})[key] = int(value)
        except ValueError:
            raise ConfigValidationError(f"{env_name} must be an integer, got {value!r}")

    return raw


def load_settings(path: str = "config/settings.yaml") -> Settings:
    """
    Load settings from a YAML configuration file.

    Environment variable overrides:
        - NARRATOR_MODEL: Override model.name
        - NARRATOR_MAX_CHUNK_SIZE, NARRATOR_REQUEST_DELAY_MS,
          NARRATOR_MAX_RETRIES: Override pipeline options

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Settings object with loaded configuration.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=_apply_env_overrides(raw))


def default_settings() -> Settings:
    """Settings built from defaults plus environment overrides only."""
    return Settings(raw=_apply_env_overrides({}))
