"""
Speech API Routes.

All endpoints use the shared SpeechService for consistent validation, rate
limiting and caching.

Endpoints:
    POST /api/generateSpeech         - JSON in, base64 WAV out
    POST /api/generateSpeech/stream  - Server-Sent Events with chunk progress
    POST /v1/tts                     - JSON in, raw audio/wav out
    GET  /health                     - Health check for load balancers and probes
    GET  /metrics                    - Prometheus metrics

Request Flow:
    1. Generate unique request ID for tracing
    2. Validate text (400)
    3. Count the request against the caller's window (429)
    4. SpeechService.generate(): cache, pipeline, WAV encoding
    5. Return audio, or a single human-readable error

/api/generateSpeech responses:
    200 {"audio": "<base64 WAV>", "cached": false}
    400 {"error": "Text is required and must be a string."}
    429 {"error": "...", "retryAfter": 42}  + Retry-After header
    500 {"error": "..."}
    405 {"error": "Method not allowed. Use POST."} for any other method

Caller identity is the first X-Forwarded-For address when present,
otherwise the socket peer address.

Example Usage:
    >>> import requests
    >>> r = requests.post("http://localhost:8000/api/generateSpeech",
    ...                   json={"text": "Hello there."})
    >>> wav = base64.b64decode(r.json()["audio"])
"""
from __future__ import annotations

import asyncio
import json
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from narrator.api.dependencies import get_speech_service
from narrator.api.schemas import ErrorResponse, GenerateSpeechRequest, GenerateSpeechResponse
from narrator.core.logging import error, get_logger, info, set_request_id, warn
from narrator.core.metrics import metrics
from narrator.services.speech_service import SpeechService
from narrator.services.validators import ValidationError
from narrator.tts.errors import ErrorCode, RateLimitedError, SpeechError
from narrator.tts.pipeline import ProgressEvent

router = APIRouter()

_LOG = get_logger("narrator.api")

METHOD_NOT_ALLOWED_MESSAGE = "Method not allowed. Use POST."
INTERNAL_ERROR_MESSAGE = "Internal server error"

# Client closed the connection before a response was produced
CLIENT_CLOSED_STATUS = 499

_STATUS_BY_CODE = {
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.CONFIGURATION_ERROR: 500,
    ErrorCode.GENERATION_FAILED: 500,
    ErrorCode.EMPTY_RESULT: 500,
    ErrorCode.CANCELLED: CLIENT_CLOSED_STATUS,
    ErrorCode.INTERNAL_ERROR: 500,
}


def _new_request_id() -> str:
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)
    return rid


def client_identity(request: Request) -> str:
    """Caller identity used for rate limiting."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def _error_json(status_code: int, message: str, retry_after: Optional[int] = None) -> JSONResponse:
    """Build a {"error": ...} response, adding retryAfter and Retry-After for 429s."""
    content = {"error": message}
    headers = None
    if retry_after is not None:
        content["retryAfter"] = retry_after
        headers = {"Retry-After": str(retry_after)}
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _speech_error_json(e: SpeechError) -> JSONResponse:
    status_code = _STATUS_BY_CODE.get(e.code, 500)
    retry_after = e.retry_after if isinstance(e, RateLimitedError) else None
    return _error_json(status_code, e.message, retry_after=retry_after)


def _sse(event: str, payload: dict) -> str:
    """Format a Server-Sent Event message."""
    return f"event: {event}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


# =============================================================================
# /api/generateSpeech
# =============================================================================

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@router.post("/api/generateSpeech", response_model=GenerateSpeechResponse, responses=_ERROR_RESPONSES)
async def generate_speech(
    req: GenerateSpeechRequest,
    request: Request,
    service: SpeechService = Depends(get_speech_service),
):
    """
    Generate speech for arbitrarily long text.

    The text is chunked, each chunk is generated in order with pacing and
    retries, and the result is returned as one base64-encoded WAV file.
    Repeating the exact same text within the cache TTL returns the stored
    audio with cached=true.

    Example:
        curl -X POST http://localhost:8000/api/generateSpeech \\
            -H "Content-Type: application/json" \\
            -d '{"text": "Hello there."}'
    """
    rid = _new_request_id()

    try:
        text = service.validate(req.text)
        service.check_rate_limit(client_identity(request))
        result = await service.generate(text, is_cancelled=request.is_disconnected)
    except ValidationError as e:
        warn(_LOG, "invalid_request", code=e.code)
        return _error_json(400, e.message)
    except SpeechError as e:
        if e.code == ErrorCode.CANCELLED:
            info(_LOG, "client_disconnected")
            return Response(status_code=CLIENT_CLOSED_STATUS)
        return _speech_error_json(e)
    except Exception as e:
        error(_LOG, "unexpected_error", error=str(e), error_type=type(e).__name__)
        metrics.record_request(status="error", duration=-1, cache_status="miss")
        return _error_json(500, INTERNAL_ERROR_MESSAGE)

    return JSONResponse(
        status_code=200,
        content={"audio": result.audio_base64, "cached": result.cached},
        headers={"X-Request-Id": rid},
    )


@router.api_route(
    "/api/generateSpeech",
    methods=["GET", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
async def generate_speech_wrong_method():
    return _error_json(405, METHOD_NOT_ALLOWED_MESSAGE)


@router.post("/api/generateSpeech/stream")
async def generate_speech_stream(
    req: GenerateSpeechRequest,
    request: Request,
    service: SpeechService = Depends(get_speech_service),
):
    """
    Server-Sent Events variant of /api/generateSpeech.

    Validation and rate limiting happen before the stream opens and fail
    with the same JSON errors as the plain endpoint.

    Events:
        meta:     {request_id, sample_rate}
        progress: {completed, total} once after chunking, then per chunk
        done:     {audio, cached}
        error:    {code, message}
    """
    rid = _new_request_id()

    try:
        text = service.validate(req.text)
        service.check_rate_limit(client_identity(request))
    except ValidationError as e:
        return _error_json(400, e.message)
    except SpeechError as e:
        return _speech_error_json(e)

    async def gen():
        set_request_id(rid)
        yield _sse("meta", {"request_id": rid, "sample_rate": service.sample_rate})

        queue: "asyncio.Queue[Optional[ProgressEvent]]" = asyncio.Queue()
        task = asyncio.create_task(
            service.generate(text, on_progress=queue.put_nowait, is_cancelled=request.is_disconnected)
        )
        task.add_done_callback(lambda _t: queue.put_nowait(None))

        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield _sse("progress", {"completed": event.completed, "total": event.total})

            result = task.result()
            yield _sse("done", {"audio": result.audio_base64, "cached": result.cached})

        except SpeechError as e:
            yield _sse("error", {"code": e.code, "message": e.message})

        except Exception as e:
            error(_LOG, "stream_failed", error=str(e), error_type=type(e).__name__)
            yield _sse("error", {"code": ErrorCode.INTERNAL_ERROR, "message": INTERNAL_ERROR_MESSAGE})

        finally:
            if not task.done():
                task.cancel()

    return StreamingResponse(gen(), media_type="text/event-stream", headers={"X-Request-Id": rid})


# =============================================================================
# /v1/tts
# =============================================================================

@router.post("/v1/tts", response_class=Response)
async def tts_v1(
    req: GenerateSpeechRequest,
    request: Request,
    service: SpeechService = Depends(get_speech_service),
):
    """
    Generate speech and return the WAV bytes directly.

    Response headers:
        X-Request-Id: Unique request identifier for tracing
        X-Sample-Rate: Audio sample rate
        X-Cache: "hit" or "miss"

    Errors use the structured {"ok": false, "error": CODE, "message": ...}
    format.

    Example:
        curl -X POST http://localhost:8000/v1/tts \\
            -H "Content-Type: application/json" \\
            -d '{"text": "Hello there."}' --output speech.wav
    """
    rid = _new_request_id()

    try:
        text = service.validate(req.text)
        service.check_rate_limit(client_identity(request))
        result = await service.generate(text, is_cancelled=request.is_disconnected)

    except ValidationError as e:
        return JSONResponse(status_code=400, content=e.to_dict(), headers={"X-Request-Id": rid})

    except SpeechError as e:
        headers = {"X-Request-Id": rid}
        if isinstance(e, RateLimitedError) and e.retry_after is not None:
            headers["Retry-After"] = str(e.retry_after)
        return JSONResponse(status_code=_STATUS_BY_CODE.get(e.code, 500), content=e.to_dict(), headers=headers)

    except Exception as e:
        error(_LOG, "unexpected_error", error=str(e), error_type=type(e).__name__)
        return JSONResponse(
            status_code=500,
            content={
                "ok": False,
                "error": ErrorCode.INTERNAL_ERROR,
                "message": INTERNAL_ERROR_MESSAGE,
                "request_id": rid,
            },
        )

    headers = {
        "X-Request-Id": rid,
        "X-Sample-Rate": str(result.sample_rate),
        "X-Cache": "hit" if result.cached else "miss",
        "X-Bytes": str(len(result.wav_bytes)),
    }
    return Response(content=result.wav_bytes, media_type="audio/wav", headers=headers)


# =============================================================================
# Operations
# =============================================================================

@router.get("/health")
def health(service: SpeechService = Depends(get_speech_service)):
    """Health check with configuration summary, cache and limiter stats."""
    return service.get_health_info()


@router.get("/metrics")
def prometheus_metrics():
    """Prometheus metrics in text exposition format."""
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
