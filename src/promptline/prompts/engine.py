"""
Prompt execution engine.

Per call::

    interpolate --(errors)--> fail fast (provider_used="none")
        |
      route ----(no adapter)--> fail fast (provider_used="none")
        |
    execute with bounded retries and exponential backoff --> ExecutionResult

``execute`` never raises; every outcome is an ``ExecutionResult``.
"""

import asyncio
import dataclasses
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config.settings import ExecutionConfig, Settings, get_settings
from ..errors import ErrorKind, ProviderError, classify_error, classify_message
from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector
from ..observability.tracing import trace_span
from ..resilience.manager import AIServiceManager
from ..resilience.services import AIResponse
from .interpolation import VariableInterpolator
from .models import ExecutionMetrics, ExecutionResult, VariableContext, VariableDefinition
from .providers.base import ProviderAdapter
from .providers.router import CredentialAdapterFactory, ProviderRouter

logger = get_logger(__name__)


def _is_retryable(error: BaseException) -> bool:
    return classify_error(error).retryable


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Execution attempt failed, retrying",
        attempt=retry_state.attempt_number,
        error=str(error),
        backoff=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
    )


class PromptExecutionEngine:
    """Single entry point for interpolation, routing and resilient execution."""

    def __init__(
        self,
        router: ProviderRouter,
        config: ExecutionConfig | None = None,
        interpolator: VariableInterpolator | None = None,
        resilience: AIServiceManager | None = None,
        api_keys: dict[str, bool] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.router = router
        self.config = config or ExecutionConfig()
        self.interpolator = interpolator or VariableInterpolator()
        self.resilience = resilience or AIServiceManager([])
        self.api_keys = dict(api_keys or {})
        self._sleep = sleep

        logger.info(
            "Prompt execution engine initialized",
            mock_mode=self.router.mock_mode,
            available_models=",".join(self.router.get_available_models()),
        )

    @trace_span("engine.execute")
    async def execute(
        self,
        template: str,
        context: VariableContext,
        model: str,
        options: dict[str, Any] | None = None,
    ) -> ExecutionResult:
        start = time.perf_counter()
        try:
            result = await self._execute(template, context, model, options or {}, start)
        except Exception as e:
            logger.exception("Prompt execution failed", model=model, error=str(e))
            result = ExecutionResult.failure(
                str(e) or "Unknown execution error",
                model=model,
                provider_used="unknown",
                execution_time=time.perf_counter() - start,
                error_kind=classify_error(e),
            )

        get_metrics_collector().record_execution(
            model,
            result.provider_used,
            result.status.value,
            result.execution_time,
            result.metrics.retry_count,
        )
        return result

    async def _execute(
        self,
        template: str,
        context: VariableContext,
        model: str,
        options: dict[str, Any],
        start: float,
    ) -> ExecutionResult:
        logger.info(
            "Starting prompt execution",
            model=model,
            template_length=len(template),
            variable_count=len(context.variable_defs),
        )

        interpolation = self.interpolator.interpolate(template, context)
        if interpolation.errors:
            message = f"Variable interpolation failed: {', '.join(interpolation.errors)}"
            logger.error(message, model=model)
            return ExecutionResult.failure(
                message,
                model=model,
                provider_used="none",
                execution_time=time.perf_counter() - start,
                resolved_prompt=interpolation.resolved_prompt,
            )

        provider = self.router.get_provider(model)
        if provider is None:
            message = f"No provider available for model: {model}"
            logger.error(message, reason=self.router.last_error)
            return ExecutionResult.failure(
                message,
                model=model,
                provider_used="none",
                execution_time=time.perf_counter() - start,
                resolved_prompt=interpolation.resolved_prompt,
            )

        result = await self._execute_with_retry(
            provider, interpolation.resolved_prompt, model, options, start
        )
        logger.info(
            "Prompt execution completed",
            status=result.status.value,
            provider=result.provider_used,
            execution_time=round(result.execution_time, 3),
            retries=result.metrics.retry_count,
        )
        return result

    async def _attempt(
        self, provider: ProviderAdapter, prompt: str, model: str, options: dict[str, Any]
    ) -> ExecutionResult:
        try:
            result = await asyncio.wait_for(
                provider.execute(prompt, model, options), timeout=self.config.timeout
            )
        except TimeoutError as e:
            raise ProviderError(
                f"{provider.name} request timeout after {self.config.timeout}s",
                ErrorKind.TIMEOUT,
                provider=provider.name,
            ) from e

        if not result.succeeded:
            message = result.error_message or "Provider execution failed"
            raise ProviderError(
                message, result.error_kind or classify_message(message), provider=provider.name
            )
        return result

    async def _execute_with_retry(
        self,
        provider: ProviderAdapter,
        prompt: str,
        model: str,
        options: dict[str, Any],
        start: float,
    ) -> ExecutionResult:
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.retry_attempts),
                wait=wait_exponential(multiplier=self.config.backoff_base, max=self.config.backoff_max),
                retry=retry_if_exception(_is_retryable),
                before_sleep=_log_retry,
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    logger.debug(
                        "Execution attempt",
                        attempt=attempts,
                        max_attempts=self.config.retry_attempts,
                        provider=provider.name,
                    )
                    result = await self._attempt(provider, prompt, model, options)
        except Exception as e:
            elapsed = time.perf_counter() - start
            message = e.message if isinstance(e, ProviderError) else (str(e) or type(e).__name__)
            return ExecutionResult.failure(
                message,
                model=model,
                provider_used=provider.name,
                execution_time=elapsed,
                error_kind=classify_error(e),
                metrics=ExecutionMetrics(latency=elapsed, retry_count=max(attempts - 1, 0)),
                resolved_prompt=prompt,
            )

        return dataclasses.replace(
            result,
            execution_time=time.perf_counter() - start,
            metrics=dataclasses.replace(result.metrics, retry_count=attempts - 1),
            resolved_prompt=prompt,
        )

    @trace_span("engine.generate_response")
    async def generate_response(
        self,
        messages: list[dict[str, Any]],
        context: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> AIResponse:
        """Chat completion across prioritized services; never raises."""
        return await self.resilience.generate_response(messages, context, options)

    def get_available_models(self) -> list[str]:
        return self.router.get_available_models()

    def set_mock_mode(self, enabled: bool) -> None:
        self.router.set_mock_mode(enabled)

    def validate_template(
        self, template: str, variable_defs: Iterable[VariableDefinition]
    ) -> list[str]:
        return self.interpolator.validate_template(template, variable_defs)

    async def test_providers(self) -> dict[str, Any]:
        return {
            "providers": await self.router.test_all_providers(),
            "services": self.resilience.get_service_health(),
        }

    def get_status(self) -> dict[str, Any]:
        return {
            "mock_mode": self.router.mock_mode,
            "api_keys": dict(self.api_keys),
            "available_models": self.get_available_models(),
            "retry_attempts": self.config.retry_attempts,
            "timeout": self.config.timeout,
        }

    async def aclose(self) -> None:
        await self.router.aclose()
        await self.resilience.aclose()


def create_execution_engine(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    *,
    mock_mode: bool | None = None,
    **config_overrides: Any,
) -> PromptExecutionEngine:
    """Compose an engine from settings; keyword overrides patch ``ExecutionConfig``."""
    settings = settings or get_settings()
    config = settings.execution.model_copy(update=config_overrides)
    router = ProviderRouter(
        CredentialAdapterFactory.from_settings(settings, http_client),
        mock_mode=settings.mock_mode_enabled() if mock_mode is None else mock_mode,
    )
    return PromptExecutionEngine(
        router,
        config,
        resilience=AIServiceManager.from_settings(settings, http_client),
        api_keys=settings.api_key_presence(),
    )
