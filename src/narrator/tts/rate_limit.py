"""
Per-Caller Request Rate Limiting.

Each caller identity (client IP) gets a fixed window: the first request
opens a window of window_seconds, every admitted request increments its
count, and once the count reaches max_requests further requests are rejected
until the window expires. Rejections carry retry_after, the remaining window
time rounded up to whole seconds (never less than 1).

Windows whose expiry has passed are pruned on the checks that follow, so the
map does not grow without bound across many distinct callers.

Usage:
    limiter = RateLimiter(max_requests=10, window_seconds=60)

    decision = limiter.check("203.0.113.7")
    if not decision.allowed:
        return 429, {"retryAfter": decision.retry_after}
"""
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from narrator.core.config import Defaults
from narrator.core.logging import get_logger, debug, warn

_LOG = get_logger("narrator.rate_limit")


@dataclass
class RateLimitWindow:
    """Request count for one caller within the current window."""
    identity: str
    count: int
    window_reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Outcome of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        retry_after: Seconds until the caller's window resets (rejections only).
        remaining: Requests left in the current window.
    """
    allowed: bool
    retry_after: Optional[int] = None
    remaining: int = 0


class RateLimiter:
    """
    Thread-safe fixed-window rate limiter keyed by caller identity.

    max_requests=0 disables limiting: every check is allowed and no state
    is kept.
    """

    def __init__(
        self,
        max_requests: int = Defaults.RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = Defaults.RATE_LIMIT_WINDOW_MS / 1000.0,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = int(max_requests)
        self.window_seconds = float(window_seconds)
        self._clock = clock

        self._windows: Dict[str, RateLimitWindow] = {}
        self._lock = threading.Lock()

        self._total_allowed = 0
        self._total_rejected = 0

    @property
    def enabled(self) -> bool:
        return self.max_requests > 0

    def check(self, identity: str) -> RateLimitDecision:
        """
        Admit or reject one request from identity.

        Admitted requests are counted against the caller's window; rejected
        requests are not.
        """
        if not self.enabled:
            return RateLimitDecision(allowed=True, remaining=0)

        now = self._clock()

        with self._lock:
            self._prune(now)

            window = self._windows.get(identity)
            if window is None or now >= window.window_reset_at:
                window = RateLimitWindow(
                    identity=identity,
                    count=0,
                    window_reset_at=now + self.window_seconds,
                )
                self._windows[identity] = window

            if window.count >= self.max_requests:
                self._total_rejected += 1
                retry_after = max(1, math.ceil(window.window_reset_at - now))
                decision = RateLimitDecision(allowed=False, retry_after=retry_after, remaining=0)
            else:
                window.count += 1
                self._total_allowed += 1
                decision = RateLimitDecision(
                    allowed=True,
                    remaining=self.max_requests - window.count,
                )

        if decision.allowed:
            debug(_LOG, "rate_limit_ok", identity=identity, remaining=decision.remaining)
        else:
            warn(_LOG, "rate_limited", identity=identity, retry_after=decision.retry_after)
        return decision

    def _prune(self, now: float) -> None:
        # Caller holds self._lock
        stale = [k for k, w in self._windows.items() if now >= w.window_reset_at]
        for k in stale:
            del self._windows[k]

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def stats(self) -> Dict[str, float]:
        """Get limiter statistics for the health endpoint."""
        with self._lock:
            return {
                "enabled": self.enabled,
                "max_requests": self.max_requests,
                "window_seconds": self.window_seconds,
                "tracked_callers": len(self._windows),
                "total_allowed": self._total_allowed,
                "total_rejected": self._total_rejected,
            }
