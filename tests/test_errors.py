"""
Test error classification for heliumai.
Provider exceptions are classified into BackendError subtypes from their message text.
"""

import pytest

from heliumai.errors import (
    APIConnectionError,
    AuthenticationError,
    BackendError,
    HeliumError,
    InvalidRequestError,
    RateLimitError,
    StreamInterruptedError,
    TokenLimitError,
    classify_backend_error,
    should_retry_error,
)


class TestErrorClassification:
    """Test error classification logic."""

    @pytest.mark.parametrize(
        "message",
        ["context length exceeded", "maximum context length is 4096", "too many tokens in request"],
    )
    def test_token_limit(self, message):
        assert isinstance(classify_backend_error(Exception(message)), TokenLimitError)

    @pytest.mark.parametrize("message", ["rate limit exceeded", "429 Too Many Requests", "quota exceeded"])
    def test_rate_limit(self, message):
        assert isinstance(classify_backend_error(Exception(message)), RateLimitError)

    @pytest.mark.parametrize("message", ["connection refused", "503 service unavailable", "network unreachable"])
    def test_connection(self, message):
        assert isinstance(classify_backend_error(Exception(message)), APIConnectionError)

    def test_builtin_connection_errors(self):
        assert isinstance(classify_backend_error(ConnectionRefusedError("nope")), APIConnectionError)
        assert isinstance(classify_backend_error(TimeoutError()), APIConnectionError)

    @pytest.mark.parametrize("message", ["401 Unauthorized", "invalid api key provided"])
    def test_authentication(self, message):
        assert isinstance(classify_backend_error(Exception(message)), AuthenticationError)

    @pytest.mark.parametrize("message", ["model 'foo' not found", "400 bad request"])
    def test_invalid_request(self, message):
        assert isinstance(classify_backend_error(Exception(message)), InvalidRequestError)

    def test_unknown_error_is_generic(self):
        classified = classify_backend_error(ValueError("something odd"))

        assert type(classified) is BackendError
        assert "ValueError" in str(classified)

    def test_already_classified_is_returned_as_is(self):
        error = RateLimitError("slow down")

        assert classify_backend_error(error) is error


def test_only_transient_errors_are_retried():
    assert should_retry_error(RateLimitError("x"))
    assert should_retry_error(APIConnectionError("x"))
    assert not should_retry_error(AuthenticationError("x"))
    assert not should_retry_error(TokenLimitError("x"))
    assert not should_retry_error(ValueError("x"))


def test_stream_interrupted_keeps_partial_content():
    error = StreamInterruptedError("reset", partial_content="Hel")

    assert isinstance(error, HeliumError)
    assert error.partial_content == "Hel"
