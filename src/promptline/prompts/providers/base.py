"""
Provider adapter contract and the shared httpx plumbing behind it.
"""

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import httpx

from ...errors import ErrorKind, ProviderError
from ...observability.logging import get_logger
from ...transport import default_http_client, request_json
from ..models import ExecutionResult

logger = get_logger(__name__)


class CapabilityFamily(str, Enum):
    """Which adapter shape serves a model."""

    TEXT = "text"
    IMAGE = "image"


CLAUDE_SONNET_4 = "anthropic/claude-sonnet-4"
QWEN3_VL = "qwen/qwen3-vl-235b-a22b-thinking"
NANO_BANANA = "fal-ai/nano-banana"
NANO_BANANA_EDIT = "fal-ai/nano-banana/edit"

MODEL_FAMILIES: dict[str, CapabilityFamily] = {
    CLAUDE_SONNET_4: CapabilityFamily.TEXT,
    QWEN3_VL: CapabilityFamily.TEXT,
    NANO_BANANA: CapabilityFamily.IMAGE,
    NANO_BANANA_EDIT: CapabilityFamily.IMAGE,
}

# Backend slot serving each family, used to key connection tests.
FAMILY_PROVIDERS: dict[CapabilityFamily, str] = {
    CapabilityFamily.TEXT: "openrouter",
    CapabilityFamily.IMAGE: "fal",
}


class ProviderAdapter(ABC):
    """
    A binding to one completion or generation backend.

    ``execute`` returns a normalized ``ExecutionResult`` on success and raises
    ``ProviderError`` (carrying an ``ErrorKind``) on failure, so that retry
    decisions stay with the engine.
    """

    name: str
    family: CapabilityFamily

    def __init__(self, supported_models: tuple[str, ...]):
        self.supported_models = supported_models

    def validate_config(self) -> bool:
        return True

    def supports(self, model: str) -> bool:
        return model in self.supported_models

    @abstractmethod
    async def execute(
        self, prompt: str, model: str, options: dict[str, Any] | None = None
    ) -> ExecutionResult:
        """Run ``prompt`` on ``model``."""
        ...

    @property
    def holds_resources(self) -> bool:
        """Whether ``aclose`` has anything to release."""
        return False

    async def test_connection(self) -> bool:
        return self.validate_config()

    async def aclose(self) -> None:
        return None


class HttpProviderAdapter(ProviderAdapter):
    """Adapter talking JSON over an ``httpx.AsyncClient``."""

    display_name = "Provider"

    def __init__(
        self,
        api_key: str | None,
        supported_models: tuple[str, ...],
        timeout: float,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(supported_models)
        self.api_key = api_key
        self.timeout = timeout
        self._http_client = http_client
        self._owned_client = http_client is None

    @property
    def holds_resources(self) -> bool:
        return self._owned_client and self._http_client is not None

    def validate_config(self) -> bool:
        if not self.api_key:
            logger.error("Provider API key is required", provider=self.name)
            return False
        return True

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = default_http_client(self.timeout)
        return self._http_client

    async def aclose(self) -> None:
        if self._owned_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _check_request(self, model: str) -> None:
        if not self.validate_config():
            raise ProviderError(
                f"Invalid {self.display_name} configuration",
                ErrorKind.API_KEY_INVALID,
                provider=self.name,
            )
        if not self.supports(model):
            raise ProviderError(
                f"Model {model} not supported by {self.display_name} provider",
                ErrorKind.INVALID_REQUEST,
                provider=self.name,
            )

    async def _request_json(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        return await request_json(
            self._client(),
            method,
            url,
            provider=self.name,
            display_name=self.display_name,
            timeout=self.timeout,
            headers=headers,
            json_body=json_body,
        )


def elapsed_since(start: float) -> float:
    return time.perf_counter() - start
