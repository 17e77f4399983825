"""
Tests for BackoffRetrier.

Tests cover:
- Linear backoff between generic failures
- Fixed cooldown after remote rate limiting
- No wait after the final attempt
- GenerationError details on exhaustion
- Recorded state transitions
"""
import asyncio

import pytest

from narrator.tts.errors import GenerationError, RateLimitedError
from narrator.tts.retry import BackoffRetrier, ChunkState


def _flaky(failures, result=b"pcm"):
    """Operation that raises each exception in failures once, then returns result."""
    pending = list(failures)
    calls = []

    async def op():
        calls.append(len(calls) + 1)
        if pending:
            raise pending.pop(0)
        return result

    return op, calls


class TestBackoff:
    """Delay selection and sleeping."""

    def test_success_first_try_no_sleep(self, sleep_recorder):
        retrier = BackoffRetrier(max_retries=3, sleep=sleep_recorder)
        op, calls = _flaky([])

        outcome = asyncio.run(retrier.attempt(op))

        assert outcome.pcm_bytes == b"pcm"
        assert outcome.attempts == 1
        assert calls == [1]
        assert sleep_recorder.calls == []

    def test_linear_backoff(self, sleep_recorder):
        retrier = BackoffRetrier(max_retries=3, base_delay_s=1.0, sleep=sleep_recorder)
        op, calls = _flaky([RuntimeError("a"), RuntimeError("b")])

        outcome = asyncio.run(retrier.attempt(op))

        assert outcome.attempts == 3
        assert len(calls) == 3
        assert sleep_recorder.calls == [1.0, 2.0]

    def test_rate_limit_cooldown(self, sleep_recorder):
        retrier = BackoffRetrier(
            max_retries=3, base_delay_s=1.0, rate_limit_cooldown_s=10.0, sleep=sleep_recorder
        )
        op, _ = _flaky([RateLimitedError("RESOURCE_EXHAUSTED", remote=True)])

        asyncio.run(retrier.attempt(op))

        assert sleep_recorder.calls == [10.0]

    def test_mixed_failures(self, sleep_recorder):
        retrier = BackoffRetrier(
            max_retries=3, base_delay_s=1.0, rate_limit_cooldown_s=10.0, sleep=sleep_recorder
        )
        op, _ = _flaky([RuntimeError("x"), RateLimitedError("quota", remote=True)])

        asyncio.run(retrier.attempt(op))

        assert sleep_recorder.calls == [1.0, 10.0]

    def test_delay_for(self):
        retrier = BackoffRetrier(base_delay_s=0.5, rate_limit_cooldown_s=7.0)
        assert retrier.delay_for(1, RuntimeError()) == 0.5
        assert retrier.delay_for(3, RuntimeError()) == 1.5
        assert retrier.delay_for(2, RateLimitedError("slow down")) == 7.0


class TestExhaustion:
    """Behavior once every attempt has failed."""

    def test_raises_generation_error_without_final_sleep(self, sleep_recorder):
        retrier = BackoffRetrier(max_retries=3, base_delay_s=1.0, sleep=sleep_recorder)
        op, calls = _flaky([RuntimeError("one"), RuntimeError("two"), RuntimeError("three")])

        with pytest.raises(GenerationError) as exc_info:
            asyncio.run(retrier.attempt(op, chunk_index=4))

        err = exc_info.value
        assert len(calls) == 3
        assert sleep_recorder.calls == [1.0, 2.0]
        assert err.details["chunk_index"] == 4
        assert err.details["attempts"] == 3
        assert err.details["last_error"] == "three"
        assert isinstance(err.__cause__, RuntimeError)

    def test_single_attempt_never_sleeps(self, sleep_recorder):
        retrier = BackoffRetrier(max_retries=1, sleep=sleep_recorder)
        op, _ = _flaky([RuntimeError("nope")])

        with pytest.raises(GenerationError):
            asyncio.run(retrier.attempt(op))

        assert sleep_recorder.calls == []

    def test_invalid_max_retries(self):
        with pytest.raises(ValueError):
            BackoffRetrier(max_retries=0)


class TestStateHistory:
    """Recorded per-chunk state transitions."""

    def test_retry_then_success(self, sleep_recorder):
        retrier = BackoffRetrier(max_retries=3, sleep=sleep_recorder)
        op, _ = _flaky([RuntimeError("flaky")])

        asyncio.run(retrier.attempt(op, chunk_index=2))

        assert retrier.states_for(2) == [
            ChunkState.PENDING,
            ChunkState.ATTEMPTING,
            ChunkState.BACKOFF_WAITING,
            ChunkState.ATTEMPTING,
            ChunkState.SUCCEEDED,
        ]

    def test_failure_ends_in_failed(self, sleep_recorder):
        retrier = BackoffRetrier(max_retries=2, sleep=sleep_recorder)
        op, _ = _flaky([RuntimeError("a"), RuntimeError("b")])

        with pytest.raises(GenerationError):
            asyncio.run(retrier.attempt(op, chunk_index=0))

        states = retrier.states_for(0)
        assert states[-1] == ChunkState.FAILED
        assert ChunkState.SUCCEEDED not in states
        assert states.count(ChunkState.ATTEMPTING) == 2

    def test_backoff_transition_records_delay(self, sleep_recorder):
        retrier = BackoffRetrier(max_retries=2, base_delay_s=1.0, sleep=sleep_recorder)
        op, _ = _flaky([RuntimeError("flaky")])

        asyncio.run(retrier.attempt(op))

        waiting = [t for t in retrier.history if t.state == ChunkState.BACKOFF_WAITING]
        assert len(waiting) == 1
        assert waiting[0].delay_s == 1.0
        assert waiting[0].error == "flaky"
