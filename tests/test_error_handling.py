"""
Tests for error classes.

Tests cover:
- ErrorCode values
- SpeechError serialization (to_dict)
- Subclass codes and defaults
- RateLimitedError retry_after handling
"""
import pytest

from narrator.tts.errors import (
    CancelledError,
    ConfigurationError,
    EmptyResultError,
    ErrorCode,
    GenerationError,
    RateLimitedError,
    SpeechError,
)


class TestSpeechError:
    """Tests for the base class."""

    def test_defaults(self):
        err = SpeechError("something broke")
        assert err.code == ErrorCode.INTERNAL_ERROR
        assert err.details == {}
        assert str(err) == "something broke"

    def test_to_dict_without_details(self):
        assert SpeechError("x", ErrorCode.GENERATION_FAILED).to_dict() == {
            "ok": False,
            "error": "GENERATION_FAILED",
            "message": "x",
        }

    def test_to_dict_with_details(self):
        err = SpeechError("x", details={"chunk_index": 3})
        assert err.to_dict()["details"] == {"chunk_index": 3}


class TestSubclasses:
    """Codes carried by each subclass."""

    @pytest.mark.parametrize("err,code", [
        (ConfigurationError("no key"), ErrorCode.CONFIGURATION_ERROR),
        (RateLimitedError("slow down"), ErrorCode.RATE_LIMITED),
        (GenerationError("failed"), ErrorCode.GENERATION_FAILED),
        (EmptyResultError(), ErrorCode.EMPTY_RESULT),
        (CancelledError(), ErrorCode.CANCELLED),
    ])
    def test_codes(self, err, code):
        assert err.code == code
        assert isinstance(err, SpeechError)

    def test_default_messages(self):
        assert EmptyResultError().message == "no audio produced"
        assert CancelledError().message == "generation cancelled"


class TestRateLimitedError:
    """retry_after and remote flag."""

    def test_retry_after_in_details(self):
        err = RateLimitedError("Too many requests.", retry_after=42)
        assert err.retry_after == 42
        assert err.remote is False
        assert err.to_dict()["details"] == {"retry_after": 42}

    def test_remote_without_retry_after(self):
        err = RateLimitedError("quota", remote=True)
        assert err.remote is True
        assert err.retry_after is None
        assert "details" not in err.to_dict()
