"""OpenRouter chat-completions adapter for the text family."""

import time
from typing import Any

import httpx

from ...config.settings import OpenRouterConfig
from ...errors import ErrorKind, ProviderError
from ...observability.logging import get_logger
from ..models import ExecutionMetrics, ExecutionResult, ExecutionStatus
from .base import CLAUDE_SONNET_4, QWEN3_VL, CapabilityFamily, HttpProviderAdapter, elapsed_since

logger = get_logger(__name__)


class OpenRouterAdapter(HttpProviderAdapter):
    name = "openrouter"
    display_name = "OpenRouter"
    family = CapabilityFamily.TEXT

    def __init__(
        self,
        api_key: str | None,
        config: OpenRouterConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        supported_models: tuple[str, ...] = (CLAUDE_SONNET_4, QWEN3_VL),
    ):
        self.config = config or OpenRouterConfig()
        super().__init__(api_key, supported_models, self.config.timeout, http_client)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.config.site_url,
            "X-Title": self.config.app_title,
        }

    def build_request(self, prompt: str, model: str, options: dict[str, Any]) -> dict[str, Any]:
        content: Any = prompt
        image_url = options.get("image_url")
        if "vl" in model and image_url:
            content = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image_url}},
            ]

        return {
            "model": model,
            "messages": [{"role": "user", "content": content}],
            "max_tokens": options.get("max_tokens", self.config.max_tokens),
            "temperature": options.get("temperature", self.config.temperature),
            "top_p": options.get("top_p", self.config.top_p),
        }

    async def execute(
        self, prompt: str, model: str, options: dict[str, Any] | None = None
    ) -> ExecutionResult:
        self._check_request(model)
        start = time.perf_counter()

        logger.info("Executing prompt with OpenRouter", model=model, prompt_length=len(prompt))
        data = await self._request_json(
            "POST",
            f"{self.config.base_url}/chat/completions",
            self._headers(),
            self.build_request(prompt, model, options or {}),
        )

        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(
                "No response choices received from OpenRouter", ErrorKind.UNKNOWN, provider=self.name
            )

        execution_time = elapsed_since(start)
        usage = data.get("usage") or {}
        logger.info(
            "OpenRouter execution completed",
            model=model,
            execution_time=round(execution_time, 3),
            tokens_used=usage.get("total_tokens"),
        )

        return ExecutionResult(
            output=choices[0].get("message", {}).get("content"),
            status=ExecutionStatus.SUCCESS,
            provider_used=self.name,
            model=model,
            execution_time=execution_time,
            metrics=ExecutionMetrics(
                latency=execution_time,
                token_count=usage.get("total_tokens"),
                prompt_tokens=usage.get("prompt_tokens"),
                completion_tokens=usage.get("completion_tokens"),
                cost=usage.get("cost"),
            ),
            extra={
                k: v
                for k, v in {
                    "id": data.get("id"),
                    "finish_reason": choices[0].get("finish_reason"),
                }.items()
                if v is not None
            },
        )

    async def test_connection(self) -> bool:
        try:
            result = await self.execute("Hello", self.supported_models[0], {"max_tokens": 10})
        except ProviderError as e:
            logger.warning("OpenRouter connection test failed", error=str(e))
            return False
        return result.succeeded
