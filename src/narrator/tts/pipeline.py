"""
Sequential Chunked Generation Pipeline.

Drives one generation request end to end:

    text -> split_text -> [chunk 0, chunk 1, ...]
         -> for each chunk, in order:
                pause request_delay (not before the first chunk)
                stop if the caller has cancelled
                BackoffRetrier.attempt(client.synthesize(chunk))
         -> combine() -> one PCM buffer

Chunks run strictly one at a time; the remote model throttles bursts, so
the pause between chunks and the retrier's backoff are the pipeline's only
pacing. A chunk that exhausts its retries aborts the whole run: the result
is all-or-nothing and partial audio is never returned.

Progress is reported as ProgressEvent(completed, total): once after
chunking (completed=0) and once after every finished chunk. An observer
that raises is logged and otherwise ignored.

Usage:
    pipeline = SpeechPipeline(client, config.pipeline)
    outcome = await pipeline.run(text, on_progress=print)
    if outcome.ok:
        wav = encode_wav(outcome.combined_bytes, 24000, 1)
"""
from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from narrator.core.config import PipelineConfig
from narrator.core.logging import get_logger, info, success, verbose, warn, fail
from narrator.core.metrics import metrics
from narrator.tts.assembler import combine
from narrator.tts.chunker import TextChunk, chunk_text
from narrator.tts.client import SpeechModelClient
from narrator.tts.errors import ErrorCode, GenerationError
from narrator.tts.retry import BackoffRetrier, SleepFn
from narrator.utils.timeit import timeit

_LOG = get_logger("narrator.pipeline")

EMPTY_RESULT_MESSAGE = "no audio produced"
CANCELLED_MESSAGE = "generation cancelled"


@dataclass(frozen=True)
class ProgressEvent:
    """Chunks completed so far out of the total for this run."""
    completed: int
    total: int


@dataclass(frozen=True)
class ChunkResult:
    """Audio produced for one chunk."""
    index: int
    pcm_bytes: bytes
    attempts: int


@dataclass
class PipelineSuccess:
    """
    Every chunk produced audio.

    Attributes:
        combined_bytes: All chunk audio joined in order.
        results: Per-chunk results, index order.
        chunks: The chunks the text was split into.
        timings_s: Stage timings in seconds.
    """
    combined_bytes: bytes
    results: List[ChunkResult]
    chunks: List[TextChunk]
    timings_s: Dict[str, float] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True


@dataclass
class PipelineFailure:
    """
    The run ended without audio.

    Attributes:
        failed_chunk_index: Chunk that failed or was next when cancelled;
            None when there was nothing to generate.
        last_error: Human-readable reason.
        code: ErrorCode.GENERATION_FAILED, EMPTY_RESULT or CANCELLED.
    """
    failed_chunk_index: Optional[int]
    last_error: str
    code: str = ErrorCode.GENERATION_FAILED

    @property
    def ok(self) -> bool:
        return False


PipelineOutcome = Union[PipelineSuccess, PipelineFailure]
ProgressCallback = Callable[[ProgressEvent], Any]
CancelCheck = Callable[[], Union[bool, Awaitable[bool]]]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class SpeechPipeline:
    """
    Chunk, generate sequentially with retries, and assemble.

    Args:
        client: Remote speech model.
        config: Chunk size, pacing and retry parameters.
        retrier: Optional pre-built retrier; built from config when omitted.
        sleep: Awaitable sleep used for the inter-chunk pause (and the
            default retrier's backoff).
    """

    def __init__(
        self,
        client: SpeechModelClient,
        config: PipelineConfig,
        retrier: Optional[BackoffRetrier] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.client = client
        self.config = config
        self._sleep = sleep
        self.retrier = retrier or BackoffRetrier(
            max_retries=config.max_retries,
            base_delay_s=config.retry_base_delay_ms / 1000.0,
            rate_limit_cooldown_s=config.rate_limit_cooldown_ms / 1000.0,
            sleep=sleep,
        )

    async def _emit(self, on_progress: Optional[ProgressCallback], event: ProgressEvent) -> None:
        if on_progress is None:
            return
        try:
            await _maybe_await(on_progress(event))
        except Exception as e:
            warn(_LOG, "progress_observer_failed", error=str(e), completed=event.completed, total=event.total)

    async def run(
        self,
        text: str,
        on_progress: Optional[ProgressCallback] = None,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> PipelineOutcome:
        """
        Generate audio for text.

        Args:
            text: Source text of any length.
            on_progress: Called (sync or async) with each ProgressEvent.
            is_cancelled: Checked (sync or async) before each chunk starts.

        Returns:
            PipelineSuccess, or PipelineFailure describing why no audio was
            produced.
        """
        timings: Dict[str, float] = {}

        chunking = chunk_text(text, self.config.max_chunk_size)
        chunks = chunking.chunks
        timings.update(chunking.timings_s)
        total = len(chunks)

        if total == 0:
            warn(_LOG, "nothing_to_generate", chars=len(text))
            return PipelineFailure(
                failed_chunk_index=None,
                last_error=EMPTY_RESULT_MESSAGE,
                code=ErrorCode.EMPTY_RESULT,
            )

        info(_LOG, "pipeline_start", chars=len(text), chunks=total)
        await self._emit(on_progress, ProgressEvent(completed=0, total=total))

        results: List[ChunkResult] = []
        delay_s = self.config.request_delay_ms / 1000.0

        with timeit("generate") as t_gen:
            for chunk in chunks:
                if chunk.index > 0 and delay_s > 0:
                    await self._sleep(delay_s)

                if is_cancelled is not None and await _maybe_await(is_cancelled()):
                    warn(_LOG, "pipeline_cancelled", chunk=chunk.index, completed=len(results), total=total)
                    return PipelineFailure(
                        failed_chunk_index=chunk.index,
                        last_error=CANCELLED_MESSAGE,
                        code=ErrorCode.CANCELLED,
                    )

                verbose(_LOG, "chunk_start", chunk=chunk.index, total=total, chars=len(chunk.content))
                try:
                    with timeit("chunk") as t_chunk:
                        outcome = await self.retrier.attempt(
                            lambda content=chunk.content: self.client.synthesize(content),
                            chunk_index=chunk.index,
                        )
                except GenerationError as e:
                    fail(_LOG, "pipeline_aborted", chunk=chunk.index, total=total, error=e.details.get("last_error", e.message))
                    return PipelineFailure(
                        failed_chunk_index=chunk.index,
                        last_error=str(e.details.get("last_error", e.message)),
                        code=ErrorCode.GENERATION_FAILED,
                    )

                results.append(ChunkResult(index=chunk.index, pcm_bytes=outcome.pcm_bytes, attempts=outcome.attempts))
                metrics.record_chunk()
                verbose(
                    _LOG, "chunk_done",
                    chunk=chunk.index,
                    completed=len(results),
                    total=total,
                    attempt=outcome.attempts,
                    seconds=round(t_chunk.seconds, 3),
                )
                await self._emit(on_progress, ProgressEvent(completed=len(results), total=total))

        timings["generate"] = t_gen.seconds

        with timeit("assemble") as t_asm:
            combined = combine(results)
        timings["assemble"] = t_asm.seconds

        if not combined:
            warn(_LOG, "empty_audio", chunks=total)
            return PipelineFailure(
                failed_chunk_index=None,
                last_error=EMPTY_RESULT_MESSAGE,
                code=ErrorCode.EMPTY_RESULT,
            )

        success(
            _LOG, "pipeline_done",
            chunks=total,
            size=len(combined),
            seconds=round(timings["generate"] + timings["assemble"], 3),
        )
        return PipelineSuccess(
            combined_bytes=combined,
            results=results,
            chunks=chunks,
            timings_s=timings,
        )
