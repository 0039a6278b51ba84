"""
Prioritized multi-service chat completion with circuit breaking and fallback.

``generate_response`` never raises: when every service is open or has
failed, a scripted, context-aware fallback response is returned instead.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..config.settings import Settings
from ..errors import CircuitOpenError, ErrorKind, classify_error
from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector
from ..observability.tracing import trace_span
from .circuit_breaker import CircuitBreaker
from .services import AIResponse, ChatService, ResponseChoice, create_chat_service

logger = get_logger(__name__)

FALLBACK_MODEL = "fallback"
FALLBACK_SERVICE = "emergency-fallback"

FALLBACK_CHOICES = (
    ResponseChoice(
        id="manual_continue",
        title="Continue Manually",
        description="Proceed with manual input instead of AI assistance",
        type="manual",
    ),
    ResponseChoice(
        id="retry_later",
        title="Try Again Later",
        description="Wait a few minutes and retry the AI request",
        type="alternative",
    ),
    ResponseChoice(
        id="upload_files",
        title="Upload Reference Files",
        description="Upload images or documents to help with your project",
        type="alternative",
    ),
)


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, CircuitOpenError):
        return False
    return classify_error(error).retryable


def fallback_content(messages: list[dict[str, Any]]) -> str:
    last_user = next(
        (str(m.get("content", "")) for m in reversed(messages) if m.get("role") == "user"), ""
    ).lower()

    content = "I'm experiencing technical difficulties with my AI services right now. "
    if "help" in last_user:
        content += (
            "I'd love to help you with your project! While my AI processing is temporarily "
            "unavailable, you can continue by selecting one of the manual options or try again "
            "in a few minutes."
        )
    elif "choice" in last_user:
        content += (
            "I'm having trouble generating response choices at the moment. Please try again in "
            "a few minutes, or feel free to describe what you'd like to do next in your own words."
        )
    else:
        content += (
            "Please try your request again in a few minutes. In the meantime, you can continue "
            "working on your project manually or explore the media upload features."
        )
    return content


class AIServiceManager:
    """Tries chat services in ascending priority, one circuit breaker each."""

    def __init__(
        self,
        services: list[ChatService],
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_retry_delay: float = 10.0,
    ):
        self.services = sorted(services, key=lambda s: s.priority)
        self.breakers = {
            s.name: CircuitBreaker(s.name, failure_threshold, reset_timeout, clock)
            for s in self.services
        }
        self._sleep = sleep
        self._max_retry_delay = max_retry_delay

        logger.info(
            "AI services initialized",
            service_count=len(self.services),
            services=",".join(f"{s.name}:{s.priority}" for s in self.services),
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: httpx.AsyncClient | None = None
    ) -> "AIServiceManager":
        services = [create_chat_service(e, http_client) for e in settings.resilience_services()]
        return cls(
            services,
            failure_threshold=settings.resilience.failure_threshold,
            reset_timeout=settings.resilience.reset_timeout,
        )

    def _ordered(self, preferred: str | None) -> list[ChatService]:
        ordered = list(self.services)
        if preferred:
            match = next((s for s in ordered if s.name == preferred), None)
            if match is not None:
                ordered.remove(match)
                ordered.insert(0, match)
        return ordered

    async def _call_with_retries(
        self,
        service: ChatService,
        messages: list[dict[str, Any]],
        context: dict[str, Any],
        options: dict[str, Any],
    ) -> AIResponse:
        breaker = self.breakers[service.name]
        endpoint = service.endpoint
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(endpoint.max_retries),
            wait=wait_exponential(multiplier=endpoint.retry_delay, max=self._max_retry_delay),
            retry=retry_if_exception(_is_retryable),
            sleep=self._sleep,
            reraise=True,
        ):
            with attempt:
                return await breaker.call(lambda: service.complete(messages, context, options))

        # Unreachable with reraise=True, kept for the type checker
        raise RuntimeError("Retry loop completed without result")

    @trace_span("resilience.generate_response")
    async def generate_response(
        self,
        messages: list[dict[str, Any]],
        context: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> AIResponse:
        context = context or {}
        options = options or {}
        start = time.perf_counter()
        last_kind: ErrorKind | None = None
        attempted = False

        for service in self._ordered(options.get("preferred_service")):
            if not self.breakers[service.name].is_available():
                logger.debug("Skipping service with open circuit", service=service.name)
                continue

            attempted = True
            try:
                response = await self._call_with_retries(service, messages, context, options)
            except CircuitOpenError:
                logger.debug("Circuit opened during retries", service=service.name)
                continue
            except Exception as e:
                last_kind = classify_error(e)
                logger.warning(
                    "AI service failed, trying fallback",
                    service=service.name,
                    error=str(e),
                    error_kind=last_kind.value,
                    retryable=last_kind.retryable,
                )
                continue

            logger.info(
                "AI response generated successfully",
                service=service.name,
                model=response.model,
                duration_ms=round((time.perf_counter() - start) * 1000, 1),
            )
            return response

        reason = (
            "AI services temporarily unavailable"
            if not attempted or last_kind is None or last_kind.retryable
            else "AI services rejected the request"
        )
        return self.emergency_fallback(messages, reason, last_kind)

    def emergency_fallback(
        self,
        messages: list[dict[str, Any]],
        reason: str = "AI services temporarily unavailable",
        error_kind: ErrorKind | None = None,
    ) -> AIResponse:
        logger.warning("Using emergency fallback response", reason=reason)
        get_metrics_collector().record_fallback(reason)
        return AIResponse(
            content=fallback_content(messages),
            model=FALLBACK_MODEL,
            service=FALLBACK_SERVICE,
            choices=list(FALLBACK_CHOICES),
            metadata={
                "is_fallback": True,
                "fallback_reason": reason,
                "error_kind": error_kind.value if error_kind else None,
            },
        )

    def get_service_health(self) -> dict[str, dict[str, Any]]:
        return {
            service.name: {
                "available": self.breakers[service.name].is_available(),
                "priority": service.priority,
                "stats": self.breakers[service.name].stats(),
            }
            for service in self.services
        }

    async def aclose(self) -> None:
        for service in self.services:
            await service.aclose()
