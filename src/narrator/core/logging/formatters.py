"""
Log Formatters for JSON and Console Output.

    JsonlFormatter: one JSON object per line for file output
    ColoredConsoleFormatter: human-readable colored lines for the terminal

Output Examples:
    JSONL:
        {"ts":"2026-01-15T14:30:05+03:00","level":3,"tag":"WARN","message":"chunk_retry","request_id":"abc123","extra":{"chunk":2,"attempt":1,"retry_in_s":10.0}}

    Console:
        14:30:05 [ WARN  ] (abc123) chunk_retry chunk=2 attempt=1 retry_in_s=10.0

Console field colors:
    - seconds: green < 0.5s, yellow < 5s, red otherwise
    - attempt: cyan on the first attempt, yellow after
    - retry_in_s: yellow, red once it reaches the rate-limit cooldown range
    - completed/total: magenta (progress)
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict

from .colors import Colors, colorize, get_tag_color


class JsonlFormatter(logging.Formatter):
    """
    Format log records as JSON Lines.

    Fields: ts, level (1-4), tag, message, request_id, and when present
    event, seconds and extra.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).astimezone().isoformat()

        payload: Dict[str, Any] = {
            "ts": ts,
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }

        event = getattr(record, "event", None)
        if event:
            payload["event"] = event

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Format log records with ANSI colors for console output.

    Output Format:
        HH:MM:SS [ TAG   ] (rid) message key=value 0.123s
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        rid = getattr(record, "request_id", "-")

        parts = [
            colorize(ts, Colors.DIM),
            colorize(f"[{tag:^7}]", get_tag_color(tag)),
        ]
        if rid != "-":
            parts.append(colorize(f"({rid})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        event = getattr(record, "event", None)
        if event:
            parts.append(colorize(f"event={event}", Colors.BLUE))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for k, v in extra_data.items():
                parts.append(colorize(f"{k}={v}", self._field_color(k, v)))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            if seconds < 0.5:
                time_color = Colors.GREEN
            elif seconds < 5.0:
                time_color = Colors.YELLOW
            else:
                time_color = Colors.RED
            parts.append(colorize(f"{seconds:.3f}s", time_color))

        return " ".join(parts)

    def _field_color(self, key: str, value: Any) -> str:
        """Color pipeline fields so retries and waits stand out."""
        if key == "attempt" and isinstance(value, int):
            return Colors.CYAN if value <= 1 else Colors.YELLOW

        if key == "retry_in_s" and isinstance(value, (int, float)):
            return Colors.YELLOW if value < 10 else Colors.RED

        if key in ("completed", "total", "chunk", "chunks"):
            return Colors.MAGENTA

        if key in ("error", "error_type"):
            return Colors.RED

        return Colors.DIM
