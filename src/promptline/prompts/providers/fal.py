"""FAL queue adapter for the image family: submit a job, then poll its status."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from ...config.settings import FalConfig
from ...errors import ErrorKind, ProviderError, classify_message
from ...observability.logging import get_logger
from ..models import ExecutionMetrics, ExecutionResult, ExecutionStatus
from .base import NANO_BANANA, NANO_BANANA_EDIT, CapabilityFamily, HttpProviderAdapter, elapsed_since

logger = get_logger(__name__)

MODEL_ENDPOINTS = {
    NANO_BANANA: "/nano-banana",
    NANO_BANANA_EDIT: "/nano-banana/edit",
}

TERMINAL_STATUSES = frozenset({"COMPLETED", "FAILED"})


class FalAdapter(HttpProviderAdapter):
    name = "fal"
    display_name = "FAL"
    family = CapabilityFamily.IMAGE

    def __init__(
        self,
        api_key: str | None,
        config: FalConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        supported_models: tuple[str, ...] = (NANO_BANANA, NANO_BANANA_EDIT),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or FalConfig()
        super().__init__(api_key, supported_models, self.config.timeout, http_client)
        self._sleep = sleep

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Key {self.api_key}", "Content-Type": "application/json"}

    def build_request(self, prompt: str, model: str, options: dict[str, Any]) -> dict[str, Any]:
        body: dict[str, Any] = {
            "prompt": prompt,
            "image_size": options.get("image_size", "1024x1024"),
            "num_images": options.get("num_images", 1),
            "guidance_scale": options.get("guidance_scale", 7.5),
            "num_inference_steps": options.get("num_inference_steps", 50),
        }
        if options.get("seed") is not None:
            body["seed"] = options["seed"]
        if model.endswith("/edit") and options.get("image_url"):
            body["image_url"] = options["image_url"]
        return body

    async def execute(
        self, prompt: str, model: str, options: dict[str, Any] | None = None
    ) -> ExecutionResult:
        self._check_request(model)
        endpoint = MODEL_ENDPOINTS.get(model)
        if endpoint is None:
            raise ProviderError(f"Unknown FAL model: {model}", ErrorKind.INVALID_REQUEST, self.name)

        start = time.perf_counter()
        logger.info("Executing image generation with FAL", model=model, prompt_length=len(prompt))

        submitted = await self._request_json(
            "POST",
            f"{self.config.base_url}{endpoint}",
            self._headers(),
            self.build_request(prompt, model, options or {}),
        )
        job_id = submitted.get("request_id")
        if not job_id:
            raise ProviderError("FAL response missing request_id", ErrorKind.UNKNOWN, self.name)
        logger.debug("FAL job submitted", job_id=job_id, model=model)

        result = await self._poll(job_id)
        images = result.get("images")
        if result.get("status") != "COMPLETED" or not images:
            message = result.get("error") or "Image generation failed"
            raise ProviderError(message, classify_message(message), provider=self.name)

        execution_time = elapsed_since(start)
        logger.info(
            "FAL execution completed",
            model=model,
            execution_time=round(execution_time, 3),
            images_generated=len(images),
        )
        return ExecutionResult(
            output={"images": images, "prompt": prompt},
            status=ExecutionStatus.SUCCESS,
            provider_used=self.name,
            model=model,
            execution_time=execution_time,
            metrics=ExecutionMetrics(latency=execution_time),
            extra={"request_id": job_id},
        )

    async def _poll(self, job_id: str) -> dict[str, Any]:
        status_url = f"{self.config.base_url}/requests/{job_id}/status"
        attempts = self.config.max_polling_attempts

        for attempt in range(1, attempts + 1):
            try:
                result = await self._request_json("GET", status_url, self._headers())
            except ProviderError as e:
                if not e.retryable:
                    raise
                logger.warning("Error polling FAL job status", job_id=job_id, error=str(e))
            else:
                status = result.get("status")
                if status in TERMINAL_STATUSES:
                    return result
                logger.debug("Polling FAL job status", job_id=job_id, status=status, attempt=attempt)

            if attempt < attempts:
                await self._sleep(self.config.polling_interval)

        raise ProviderError(
            f"Job {job_id} did not complete within {attempts} attempts",
            ErrorKind.TIMEOUT,
            provider=self.name,
        )

    async def test_connection(self) -> bool:
        try:
            result = await self.execute("test prompt", NANO_BANANA, {"num_images": 1})
        except ProviderError as e:
            logger.warning("FAL connection test failed", error=str(e))
            return False
        return result.succeeded
