"""
Backoff Retry for Per-Chunk Generation.

Each chunk is one remote call. When the call fails, the retrier waits and
tries the whole call again, up to max_retries attempts in total:

    - RateLimitedError (remote 429 / RESOURCE_EXHAUSTED): wait the fixed
      rate_limit_cooldown_s before the next attempt
    - any other exception: wait base_delay_s * attempt_number (linear)

No wait follows the last attempt; the chunk fails at once with a
GenerationError carrying chunk_index, attempts and last_error.

State machine per chunk (recorded on ``history``):

    PENDING -> ATTEMPTING -> SUCCEEDED
                   |
                   +-> BACKOFF_WAITING -> ATTEMPTING -> ...
                   |
                   +-> FAILED (after the last attempt)

Usage:
    retrier = BackoffRetrier(max_retries=3, base_delay_s=1.0,
                             rate_limit_cooldown_s=10.0)
    outcome = await retrier.attempt(lambda: client.synthesize(text), chunk_index=2)
    print(outcome.attempts, len(outcome.pcm_bytes))
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from narrator.core.config import Defaults
from narrator.core.logging import get_logger, fail, verbose, warn
from narrator.core.metrics import metrics
from narrator.tts.errors import GenerationError, RateLimitedError

_LOG = get_logger("narrator.retry")

SleepFn = Callable[[float], Awaitable[None]]


class ChunkState(str, Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    BACKOFF_WAITING = "backoff_waiting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class StateTransition:
    """One recorded state change of a chunk."""
    chunk_index: int
    state: ChunkState
    attempt: int
    delay_s: Optional[float] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class RetryOutcome:
    """
    Successful chunk generation.

    Attributes:
        pcm_bytes: Raw audio returned by the final attempt.
        attempts: Number of attempts it took (1 = first try).
    """
    pcm_bytes: bytes
    attempts: int


class BackoffRetrier:
    """
    Retries a chunk operation with linear backoff and a fixed cooldown for
    remote rate limiting.

    Args:
        max_retries: Total attempts per chunk (>= 1).
        base_delay_s: Linear backoff unit for generic failures.
        rate_limit_cooldown_s: Fixed wait after a remote rate-limit error.
        sleep: Awaitable sleep function; tests inject a recorder.
    """

    def __init__(
        self,
        max_retries: int = Defaults.PIPELINE_MAX_RETRIES,
        base_delay_s: float = Defaults.PIPELINE_RETRY_BASE_DELAY_MS / 1000.0,
        rate_limit_cooldown_s: float = Defaults.PIPELINE_RATE_LIMIT_COOLDOWN_MS / 1000.0,
        sleep: SleepFn = asyncio.sleep,
    ):
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        self.max_retries = int(max_retries)
        self.base_delay_s = float(base_delay_s)
        self.rate_limit_cooldown_s = float(rate_limit_cooldown_s)
        self._sleep = sleep
        self.history: List[StateTransition] = []

    def delay_for(self, attempt: int, exc: BaseException) -> float:
        """Wait before the attempt that follows failed attempt number `attempt`."""
        if isinstance(exc, RateLimitedError):
            return self.rate_limit_cooldown_s
        return self.base_delay_s * attempt

    def states_for(self, chunk_index: int) -> List[ChunkState]:
        """States chunk_index went through, in order."""
        return [t.state for t in self.history if t.chunk_index == chunk_index]

    def _record(self, chunk_index: int, state: ChunkState, attempt: int, **kwargs) -> None:
        self.history.append(StateTransition(chunk_index=chunk_index, state=state, attempt=attempt, **kwargs))

    async def attempt(
        self,
        operation: Callable[[], Awaitable[bytes]],
        chunk_index: int = 0,
    ) -> RetryOutcome:
        """
        Run operation until it succeeds or max_retries attempts have failed.

        Raises:
            GenerationError: When every attempt failed.
        """
        self._record(chunk_index, ChunkState.PENDING, 0)
        last_exc: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            self._record(chunk_index, ChunkState.ATTEMPTING, attempt)
            try:
                pcm = await operation()
            except Exception as e:
                last_exc = e
                if attempt >= self.max_retries:
                    break

                delay = self.delay_for(attempt, e)
                reason = "rate_limited" if isinstance(e, RateLimitedError) else "generic"
                self._record(chunk_index, ChunkState.BACKOFF_WAITING, attempt, delay_s=delay, error=str(e))
                metrics.record_retry(reason)
                warn(
                    _LOG, "chunk_retry",
                    chunk=chunk_index,
                    attempt=attempt,
                    reason=reason,
                    retry_in_s=delay,
                    error=str(e),
                )
                await self._sleep(delay)
                continue

            self._record(chunk_index, ChunkState.SUCCEEDED, attempt)
            verbose(_LOG, "chunk_ok", chunk=chunk_index, attempt=attempt, size=len(pcm))
            return RetryOutcome(pcm_bytes=pcm, attempts=attempt)

        last_error = str(last_exc) if last_exc is not None else "unknown error"
        self._record(chunk_index, ChunkState.FAILED, self.max_retries, error=last_error)
        fail(_LOG, "chunk_failed", chunk=chunk_index, attempts=self.max_retries, error=last_error)
        raise GenerationError(
            f"chunk {chunk_index} failed after {self.max_retries} attempts: {last_error}",
            details={
                "chunk_index": chunk_index,
                "attempts": self.max_retries,
                "last_error": last_error,
            },
        ) from last_exc
