"""
Tests for provider failure classification.
"""

import asyncio

import httpx
import pytest

from promptline.errors import (
    RETRYABLE_KINDS,
    CircuitOpenError,
    ErrorKind,
    ProviderError,
    classify_error,
    classify_message,
    classify_status,
)


class TestClassifyMessage:
    @pytest.mark.parametrize(
        "message,kind",
        [
            ("Rate limit exceeded", ErrorKind.RATE_LIMIT),
            ("HTTP 429 from upstream", ErrorKind.RATE_LIMIT),
            ("Monthly quota reached", ErrorKind.QUOTA_EXCEEDED),
            ("401 Unauthorized", ErrorKind.API_KEY_INVALID),
            ("Invalid API key provided", ErrorKind.API_KEY_INVALID),
            ("Blocked by content policy", ErrorKind.CONTENT_FILTERED),
            ("Request timed out", ErrorKind.TIMEOUT),
            ("The operation was aborted", ErrorKind.TIMEOUT),
            ("fetch failed", ErrorKind.NETWORK_ERROR),
            ("Connection refused", ErrorKind.NETWORK_ERROR),
            ("Model is overloaded", ErrorKind.MODEL_UNAVAILABLE),
            ("503 Service Unavailable", ErrorKind.MODEL_UNAVAILABLE),
            ("Something odd happened", ErrorKind.UNKNOWN),
        ],
    )
    def test_rules(self, message, kind):
        assert classify_message(message) is kind

    def test_first_matching_rule_wins(self):
        assert classify_message("rate limit reached for model") is ErrorKind.RATE_LIMIT
        assert classify_message("connection timeout") is ErrorKind.TIMEOUT


class TestClassifyStatus:
    @pytest.mark.parametrize(
        "status,body,kind",
        [
            (429, "", ErrorKind.RATE_LIMIT),
            (429, "You exceeded your current quota", ErrorKind.QUOTA_EXCEEDED),
            (402, "", ErrorKind.QUOTA_EXCEEDED),
            (401, "", ErrorKind.API_KEY_INVALID),
            (403, "output filtered by moderation", ErrorKind.CONTENT_FILTERED),
            (408, "", ErrorKind.TIMEOUT),
            (400, "bad field", ErrorKind.INVALID_REQUEST),
            (422, "violates content policy", ErrorKind.CONTENT_FILTERED),
            (500, "", ErrorKind.MODEL_UNAVAILABLE),
            (503, "", ErrorKind.MODEL_UNAVAILABLE),
            (418, "", ErrorKind.UNKNOWN),
        ],
    )
    def test_status_codes(self, status, body, kind):
        assert classify_status(status, body) is kind


class TestClassifyError:
    def test_provider_errors_keep_their_kind(self):
        assert classify_error(ProviderError("x", ErrorKind.QUOTA_EXCEEDED)) is ErrorKind.QUOTA_EXCEEDED

    def test_transport_failures(self):
        assert classify_error(httpx.ReadTimeout("slow")) is ErrorKind.TIMEOUT
        assert classify_error(asyncio.TimeoutError()) is ErrorKind.TIMEOUT
        assert classify_error(httpx.ConnectError("refused")) is ErrorKind.NETWORK_ERROR
        assert classify_error(ConnectionResetError()) is ErrorKind.NETWORK_ERROR

    def test_http_status_errors_use_the_response(self):
        request = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")
        response = httpx.Response(401, request=request, text="bad key")
        error = httpx.HTTPStatusError("401", request=request, response=response)

        assert classify_error(error) is ErrorKind.API_KEY_INVALID

    def test_open_circuit_means_unavailable(self):
        assert classify_error(CircuitOpenError("openai")) is ErrorKind.MODEL_UNAVAILABLE

    def test_anything_else_falls_back_to_the_message(self):
        assert classify_error(RuntimeError("quota exhausted")) is ErrorKind.QUOTA_EXCEEDED
        assert classify_error(RuntimeError("kaboom")) is ErrorKind.UNKNOWN


class TestRetryability:
    def test_retryable_kinds(self):
        assert RETRYABLE_KINDS == {
            ErrorKind.RATE_LIMIT,
            ErrorKind.TIMEOUT,
            ErrorKind.NETWORK_ERROR,
            ErrorKind.MODEL_UNAVAILABLE,
            ErrorKind.UNKNOWN,
        }

    @pytest.mark.parametrize(
        "kind",
        [
            ErrorKind.QUOTA_EXCEEDED,
            ErrorKind.INVALID_REQUEST,
            ErrorKind.API_KEY_INVALID,
            ErrorKind.CONTENT_FILTERED,
        ],
    )
    def test_terminal_kinds(self, kind):
        assert not kind.retryable
        assert not ProviderError("nope", kind).retryable
