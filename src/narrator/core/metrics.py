"""
Prometheus Metrics for the narrator service.

Metrics Exposed:
    narrator_requests_total           - Requests by status and cache status
    narrator_request_duration_seconds - Request latency histogram
    narrator_chunks_total             - Chunks generated by the pipeline
    narrator_retries_total            - Chunk retries by reason
    narrator_rate_limited_total       - Requests rejected by the caller limiter
    narrator_audio_bytes_total        - PCM bytes produced
    narrator_cache_hits_total         - Result cache hits
    narrator_cache_misses_total       - Result cache misses

Usage:
    from narrator.core.metrics import metrics

    metrics.record_request(status="success", duration=4.2, cache_status="miss",
                           audio_bytes=480000)
    metrics.record_retry("rate_limited")
    content, content_type = metrics.get_metrics_response()

All metrics live on a private CollectorRegistry so that creating several
NarratorMetrics instances (tests, multiple apps) never collides with the
process-wide default registry.
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class NarratorMetrics:
    """
    Metrics collection for the generation service.

    Thread Safety:
        Prometheus metric operations are thread-safe.
    """

    def __init__(self) -> None:
        self._registry = CollectorRegistry()

        self._requests_total = Counter(
            "narrator_requests_total",
            "Total speech generation requests",
            ["status", "cache_status"],
            registry=self._registry,
        )
        self._request_duration = Histogram(
            "narrator_request_duration_seconds",
            "Speech generation request duration in seconds",
            ["cache_status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
            registry=self._registry,
        )
        self._chunks_total = Counter(
            "narrator_chunks_total",
            "Text chunks successfully converted to audio",
            registry=self._registry,
        )
        self._retries_total = Counter(
            "narrator_retries_total",
            "Chunk retries scheduled by the backoff retrier",
            ["reason"],
            registry=self._registry,
        )
        self._rate_limited_total = Counter(
            "narrator_rate_limited_total",
            "Requests rejected by the per-caller rate limiter",
            registry=self._registry,
        )
        self._audio_bytes_total = Counter(
            "narrator_audio_bytes_total",
            "Total PCM bytes produced",
            registry=self._registry,
        )
        self._cache_hits = Counter(
            "narrator_cache_hits_total",
            "Result cache hits",
            registry=self._registry,
        )
        self._cache_misses = Counter(
            "narrator_cache_misses_total",
            "Result cache misses",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_request(
        self,
        status: str,
        duration: float,
        cache_status: str = "miss",
        audio_bytes: int = 0,
    ) -> None:
        """
        Record a completed request.

        Args:
            status: "success" or "error"
            duration: Request duration in seconds (negative values are not observed)
            cache_status: "hit", "miss" or "disabled"
            audio_bytes: Size of the produced PCM payload
        """
        self._requests_total.labels(status=status, cache_status=cache_status).inc()
        if duration >= 0:
            self._request_duration.labels(cache_status=cache_status).observe(duration)
        if audio_bytes > 0:
            self._audio_bytes_total.inc(audio_bytes)

    def record_chunk(self) -> None:
        self._chunks_total.inc()

    def record_retry(self, reason: str) -> None:
        """Record a scheduled retry ("rate_limited" or "generic")."""
        self._retries_total.labels(reason=reason).inc()

    def record_rate_limited(self) -> None:
        self._rate_limited_total.inc()

    def record_cache(self, result: str) -> None:
        """Record a cache "hit" or "miss"."""
        if result == "hit":
            self._cache_hits.inc()
        else:
            self._cache_misses.inc()

    def get_metrics_response(self) -> tuple[bytes, str]:
        """
        Get metrics in Prometheus text format.

        Returns:
            Tuple of (content_bytes, content_type)
        """
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Global singleton: from narrator.core.metrics import metrics
metrics = NarratorMetrics()
