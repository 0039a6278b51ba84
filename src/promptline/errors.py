"""
Exception hierarchy and provider failure classification.

Interpolation and routing problems are reported as values on
``ExecutionResult``; the exceptions here are raised by adapters, chat
services and storage backends and are converted at the engine, resilience
and store boundaries.
"""

import asyncio
from enum import Enum

import httpx


class ErrorKind(str, Enum):
    """Classified cause of a provider failure."""

    RATE_LIMIT = "rate_limit"
    QUOTA_EXCEEDED = "quota_exceeded"
    MODEL_UNAVAILABLE = "model_unavailable"
    INVALID_REQUEST = "invalid_request"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    API_KEY_INVALID = "api_key_invalid"
    CONTENT_FILTERED = "content_filtered"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in RETRYABLE_KINDS


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.RATE_LIMIT,
        ErrorKind.TIMEOUT,
        ErrorKind.NETWORK_ERROR,
        ErrorKind.MODEL_UNAVAILABLE,
        ErrorKind.UNKNOWN,
    }
)


class PromptlineError(Exception):
    """Base class for all promptline errors."""


class ProviderError(PromptlineError):
    """A backend call failed; ``kind`` decides whether it is worth retrying."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        provider: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.provider = provider
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


class CircuitOpenError(PromptlineError):
    """Raised when a circuit breaker refuses a call."""

    def __init__(self, service: str):
        super().__init__(f"Circuit breaker is open for service: {service}")
        self.service = service


class StoreError(PromptlineError):
    """A keyed record store could not complete a read or write."""


class PipelineError(PromptlineError):
    """A pipeline could not be built or a step's template could not be resolved."""


# Ordered: the first matching rule wins.
_MESSAGE_RULES: tuple[tuple[tuple[str, ...], ErrorKind], ...] = (
    (("rate limit", "429"), ErrorKind.RATE_LIMIT),
    (("quota", "usage limit"), ErrorKind.QUOTA_EXCEEDED),
    (("unauthorized", "401", "api key"), ErrorKind.API_KEY_INVALID),
    (("content policy", "filtered"), ErrorKind.CONTENT_FILTERED),
    (("timeout", "timed out", "aborted"), ErrorKind.TIMEOUT),
    (("network", "connection", "fetch failed"), ErrorKind.NETWORK_ERROR),
    (("model", "503"), ErrorKind.MODEL_UNAVAILABLE),
)


def classify_message(message: str) -> ErrorKind:
    """Heuristic classification from an error message."""
    lowered = message.lower()
    for needles, kind in _MESSAGE_RULES:
        if any(needle in lowered for needle in needles):
            return kind
    return ErrorKind.UNKNOWN


def classify_status(status_code: int, body: str = "") -> ErrorKind:
    """Classify an HTTP error status, refined by the response body."""
    hint = classify_message(body) if body else ErrorKind.UNKNOWN

    if status_code == 429:
        return ErrorKind.QUOTA_EXCEEDED if hint is ErrorKind.QUOTA_EXCEEDED else ErrorKind.RATE_LIMIT
    if status_code == 402:
        return ErrorKind.QUOTA_EXCEEDED
    if status_code in (401, 403):
        return ErrorKind.CONTENT_FILTERED if hint is ErrorKind.CONTENT_FILTERED else ErrorKind.API_KEY_INVALID
    if status_code == 408:
        return ErrorKind.TIMEOUT
    if status_code in (400, 404, 413, 422):
        return ErrorKind.CONTENT_FILTERED if hint is ErrorKind.CONTENT_FILTERED else ErrorKind.INVALID_REQUEST
    if status_code >= 500:
        return ErrorKind.MODEL_UNAVAILABLE
    return hint


def classify_error(error: BaseException) -> ErrorKind:
    """Map any exception raised by a provider call to an ``ErrorKind``."""
    if isinstance(error, ProviderError):
        return error.kind
    if isinstance(error, CircuitOpenError):
        return ErrorKind.MODEL_UNAVAILABLE
    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(error, httpx.HTTPStatusError):
        return classify_status(error.response.status_code, error.response.text)
    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return ErrorKind.NETWORK_ERROR
    return classify_message(str(error))
