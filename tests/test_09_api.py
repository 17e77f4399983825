"""
Tests for the HTTP API.

Tests cover:
- POST /api/generateSpeech success, cache and error bodies
- 405 for other methods
- 429 with retryAfter and Retry-After
- Caller identity from X-Forwarded-For
- POST /v1/tts raw WAV responses
- SSE stream events
- /health and /metrics
"""
import base64
import json

import pytest
from fastapi.testclient import TestClient

from narrator.api.dependencies import get_speech_service
from narrator.core.config import Settings
from narrator.main import app
from narrator.services.speech_service import SpeechService
from narrator.utils.wav import parse_wav

from conftest import FakeSpeechClient, SleepRecorder, fake_pcm

URL = "/api/generateSpeech"


def _settings(**sections):
    raw = {
        "pipeline": {"request_delay_ms": 0, "max_chunk_size": 50},
        "rate_limit": {"max_requests": 3},
        "validation": {"max_text_length": 200},
    }
    for name, values in sections.items():
        raw.setdefault(name, {}).update(values)
    return Settings(raw=raw)


@pytest.fixture
def make_client():
    """Build a TestClient whose SpeechService uses the given fake model."""
    def _make(fake=None, client_factory=None, **sections):
        fake = fake or FakeSpeechClient()
        service = SpeechService(
            _settings(**sections),
            client_factory=client_factory or (lambda cfg: fake),
            sleep=SleepRecorder(),
        )
        app.dependency_overrides[get_speech_service] = lambda: service
        return TestClient(app), fake

    yield _make
    app.dependency_overrides.clear()


class TestGenerateSpeech:
    """POST /api/generateSpeech."""

    def test_success(self, make_client):
        client, fake = make_client()

        r = client.post(URL, json={"text": "Hello there."})

        assert r.status_code == 200
        body = r.json()
        assert body["cached"] is False
        wav = base64.b64decode(body["audio"])
        assert wav[:4] == b"RIFF"
        assert parse_wav(wav).pcm == fake_pcm("Hello there.")
        assert "X-Request-Id" in r.headers

    def test_long_text_chunked(self, make_client):
        client, fake = make_client()
        text = "This is the first sentence here. And this is the second one. Third."

        r = client.post(URL, json={"text": text})

        assert r.status_code == 200
        assert len(fake.calls) > 1
        pcm = parse_wav(base64.b64decode(r.json()["audio"])).pcm
        assert pcm == b"".join(fake_pcm(c) for c in fake.calls)

    def test_repeat_is_cached(self, make_client):
        client, fake = make_client()

        first = client.post(URL, json={"text": "Same text."})
        second = client.post(URL, json={"text": "Same text."})

        assert first.json()["cached"] is False
        assert second.json()["cached"] is True
        assert second.json()["audio"] == first.json()["audio"]
        assert fake.calls == ["Same text."]

    def test_cache_disabled(self, make_client):
        client, fake = make_client(cache={"enabled": False})

        client.post(URL, json={"text": "Same text."})
        second = client.post(URL, json={"text": "Same text."})

        assert second.json()["cached"] is False
        assert len(fake.calls) == 2

    def test_extra_fields_ignored(self, make_client):
        client, _ = make_client()
        r = client.post(URL, json={"text": "Hi.", "voice": "other"})
        assert r.status_code == 200


class TestBadRequests:
    """400 responses."""

    @pytest.mark.parametrize("body", [
        {},
        {"text": None},
        {"text": ""},
        {"text": "   \n "},
        {"text": 42},
        {"text": ["a", "b"]},
    ])
    def test_missing_or_invalid_text(self, make_client, body):
        client, fake = make_client()

        r = client.post(URL, json=body)

        assert r.status_code == 400
        assert r.json() == {"error": "Text is required and must be a string."}
        assert fake.calls == []

    def test_text_too_long(self, make_client):
        client, _ = make_client()

        r = client.post(URL, json={"text": "a" * 201})

        assert r.status_code == 400
        assert "maximum length" in r.json()["error"]

    def test_malformed_json(self, make_client):
        client, _ = make_client()

        r = client.post(URL, content=b"{not json", headers={"Content-Type": "application/json"})

        assert r.status_code == 400
        assert "error" in r.json()

    def test_non_object_body(self, make_client):
        client, _ = make_client()
        r = client.post(URL, json=["Hello"])
        assert r.status_code == 400


class TestMethodNotAllowed:
    """Any method other than POST."""

    @pytest.mark.parametrize("method", ["GET", "PUT", "PATCH", "DELETE"])
    def test_wrong_method(self, make_client, method):
        client, _ = make_client()

        r = client.request(method, URL)

        assert r.status_code == 405
        assert r.json() == {"error": "Method not allowed. Use POST."}


class TestRateLimit:
    """429 responses."""

    def test_over_limit(self, make_client):
        client, fake = make_client()

        for n in range(3):
            assert client.post(URL, json={"text": f"Request {n}."}).status_code == 200

        r = client.post(URL, json={"text": "One more."})

        assert r.status_code == 429
        body = r.json()
        assert body["error"] == "Too many requests. Please try again later."
        assert 1 <= body["retryAfter"] <= 60
        assert r.headers["Retry-After"] == str(body["retryAfter"])
        assert "One more." not in fake.calls

    def test_cache_hits_count_against_limit(self, make_client):
        client, _ = make_client()

        for _ in range(3):
            client.post(URL, json={"text": "Same."})

        assert client.post(URL, json={"text": "Same."}).status_code == 429

    def test_invalid_requests_not_counted(self, make_client):
        client, _ = make_client()

        for _ in range(5):
            client.post(URL, json={"text": ""})

        assert client.post(URL, json={"text": "Valid."}).status_code == 200

    def test_forwarded_for_identifies_caller(self, make_client):
        client, _ = make_client(rate_limit={"max_requests": 1})

        a = {"X-Forwarded-For": "203.0.113.1, 10.0.0.1"}
        b = {"X-Forwarded-For": "203.0.113.2"}

        assert client.post(URL, json={"text": "A."}, headers=a).status_code == 200
        assert client.post(URL, json={"text": "B."}, headers=b).status_code == 200
        assert client.post(URL, json={"text": "A2."}, headers=a).status_code == 429

    def test_disabled_limiter(self, make_client):
        client, _ = make_client(rate_limit={"max_requests": 0})

        codes = {client.post(URL, json={"text": f"N{n}."}).status_code for n in range(6)}

        assert codes == {200}


class TestServerErrors:
    """500 responses."""

    def test_missing_api_key(self, make_client, monkeypatch):
        from narrator.tts.client import GeminiSpeechClient

        monkeypatch.delenv("NARRATOR_TEST_UNSET_KEY", raising=False)
        client, _ = make_client(
            client_factory=GeminiSpeechClient.from_config,
            model={"api_key_env": "NARRATOR_TEST_UNSET_KEY"},
        )

        r = client.post(URL, json={"text": "Hello."})

        assert r.status_code == 500
        assert r.json() == {"error": "API key not configured on server."}

    def test_generation_failure(self, make_client):
        fake = FakeSpeechClient(always_fail=["Hello."])
        client, _ = make_client(fake=fake)

        r = client.post(URL, json={"text": "Hello."})

        assert r.status_code == 500
        assert r.json()["error"] == "Audio generation failed at chunk 0: boom: Hello."
        assert len(fake.calls) == 3

    def test_failure_not_cached(self, make_client):
        fake = FakeSpeechClient(failures={"Hello.": [RuntimeError("x")] * 3})
        client, _ = make_client(fake=fake)

        assert client.post(URL, json={"text": "Hello."}).status_code == 500
        r = client.post(URL, json={"text": "Hello."})

        assert r.status_code == 200
        assert r.json()["cached"] is False


class TestV1Tts:
    """POST /v1/tts."""

    def test_returns_wav(self, make_client):
        client, _ = make_client()

        r = client.post("/v1/tts", json={"text": "Hello there."})

        assert r.status_code == 200
        assert r.headers["content-type"].startswith("audio/wav")
        assert r.content[:4] == b"RIFF"
        assert r.content[8:12] == b"WAVE"
        assert r.headers["X-Sample-Rate"] == "24000"
        assert r.headers["X-Cache"] == "miss"
        assert r.headers["X-Bytes"] == str(len(r.content))

        again = client.post("/v1/tts", json={"text": "Hello there."})
        assert again.headers["X-Cache"] == "hit"

    def test_structured_error(self, make_client):
        client, _ = make_client()

        r = client.post("/v1/tts", json={"text": ""})

        assert r.status_code == 400
        body = r.json()
        assert body["ok"] is False
        assert body["error"] == "TEXT_REQUIRED"


def _parse_sse(text):
    events = []
    for block in text.strip().split("\n\n"):
        lines = block.splitlines()
        name = lines[0][len("event: "):]
        data = json.loads(lines[1][len("data: "):])
        events.append((name, data))
    return events


class TestStream:
    """POST /api/generateSpeech/stream."""

    def test_events(self, make_client):
        client, fake = make_client()
        text = "First sentence is right here. Second sentence follows it."

        r = client.post(URL + "/stream", json={"text": text})

        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/event-stream")
        events = _parse_sse(r.text)
        names = [name for name, _ in events]
        assert names[0] == "meta"
        assert names[-1] == "done"

        progress = [(d["completed"], d["total"]) for name, d in events if name == "progress"]
        total = len(fake.calls)
        assert progress == [(n, total) for n in range(total + 1)]

        done = events[-1][1]
        assert done["cached"] is False
        assert base64.b64decode(done["audio"])[:4] == b"RIFF"

    def test_error_event(self, make_client):
        client, _ = make_client(fake=FakeSpeechClient(always_fail=["Doomed."]))

        events = _parse_sse(client.post(URL + "/stream", json={"text": "Doomed."}).text)

        assert events[-1][0] == "error"
        assert events[-1][1]["code"] == "GENERATION_FAILED"

    def test_validation_before_stream(self, make_client):
        client, _ = make_client()

        r = client.post(URL + "/stream", json={"text": 5})

        assert r.status_code == 400
        assert r.json() == {"error": "Text is required and must be a string."}


class TestOperations:
    """GET /health and GET /metrics."""

    def test_health(self, make_client):
        client, _ = make_client()

        body = client.get("/health").json()

        assert body["ok"] is True
        assert body["pipeline"]["max_chunk_size"] == 50
        assert body["rate_limit"]["max_requests"] == 3
        assert body["client_ready"] is False

    def test_metrics(self, make_client):
        client, _ = make_client()
        client.post(URL, json={"text": "Count me."})

        r = client.get("/metrics")

        assert r.status_code == 200
        assert "narrator_requests_total" in r.text
        assert "narrator_chunks_total" in r.text
