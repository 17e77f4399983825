"""
Request Context and Configuration State for Logging.

The request ID lives in a ContextVar so that concurrent generation
requests running on the same event loop each log under their own ID.
Level and file settings are module-level state shared by the process.

Environment Variables:
    - NARRATOR_SETTINGS: Settings file to read the logging section from
    - NARRATOR_LOG_LEVEL: Override log level (1-4 or name)
    - NARRATOR_LOG_DIR: Directory for the JSONL log file
    - NARRATOR_JSONL_FILE: JSONL filename
    - NARRATOR_LOG_ROTATE_BYTES: Max log file size
    - NARRATOR_LOG_ROTATE_BACKUP: Number of backup files
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

import yaml

from .levels import LEVEL_NAMES, LogLevel

# "-" marks log lines emitted outside a request
_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Get current request ID, or "-" if not set."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """Set the request ID for log correlation in the current context."""
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    """Current level as "MINIMAL", "NORMAL", "VERBOSE" or "DEBUG"."""
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def _int_env(name: str, cfg: Dict[str, Any], key: str) -> None:
    value = os.getenv(name)
    if not value:
        return
    try:
        cfg[key] = int(value)
    except ValueError:
        pass  # Keep the file/default value


def read_logging_config() -> Dict[str, Any]:
    """
    Read logging configuration from the settings file and environment.

    The settings file is read directly with PyYAML rather than through
    narrator.core.config so logging can be configured before any other
    module is imported. Environment variables win over the file.

    Returns:
        Dictionary with resolved logging configuration.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("NARRATOR_SETTINGS", "config/settings.yaml")
    if os.path.exists(settings_path):
        try:
            with open(settings_path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
            cfg.update(raw.get("logging", {}) or {})
        except (OSError, yaml.YAMLError, AttributeError):
            pass  # Unreadable settings fall back to defaults

    if os.getenv("NARRATOR_LOG_LEVEL"):
        cfg["level"] = os.environ["NARRATOR_LOG_LEVEL"]
    if os.getenv("NARRATOR_LOG_DIR"):
        cfg["log_dir"] = os.environ["NARRATOR_LOG_DIR"]
    if os.getenv("NARRATOR_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["NARRATOR_JSONL_FILE"]
    _int_env("NARRATOR_LOG_ROTATE_BYTES", cfg, "rotate_max_bytes")
    _int_env("NARRATOR_LOG_ROTATE_BACKUP", cfg, "rotate_backup_count")

    return cfg
