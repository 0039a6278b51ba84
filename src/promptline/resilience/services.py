"""
Chat-completion services behind the resilience manager.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..config.settings import ServiceEndpoint
from ..errors import ErrorKind, ProviderError
from ..observability.logging import get_logger
from ..transport import default_http_client, request_json

logger = get_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


@dataclass(frozen=True)
class ResponseChoice:
    """A next-step option offered to the user alongside a response."""

    id: str
    title: str
    description: str
    type: str  # recommended, alternative or manual

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResponseChoice":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            type=str(data.get("type", "alternative")),
        )


@dataclass
class AIResponse:
    content: str
    model: str
    service: str
    usage: dict[str, int] | None = None
    finish_reason: str | None = None
    choices: list[ResponseChoice] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_fallback(self) -> bool:
        return bool(self.metadata.get("is_fallback"))


class ChatService(ABC):
    """One prioritized chat-completion backend."""

    def __init__(self, endpoint: ServiceEndpoint):
        self.endpoint = endpoint

    @property
    def name(self) -> str:
        return self.endpoint.name

    @property
    def priority(self) -> int:
        return self.endpoint.priority

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, Any]],
        context: dict[str, Any],
        options: dict[str, Any],
    ) -> AIResponse:
        """Send ``messages`` and return the parsed response, raising ``ProviderError``."""
        ...

    async def aclose(self) -> None:
        return None


class OpenAICompatibleChatService(ChatService):
    """``POST <base_url>/chat/completions`` with Bearer auth."""

    def __init__(self, endpoint: ServiceEndpoint, http_client: httpx.AsyncClient | None = None):
        super().__init__(endpoint)
        self._http_client = http_client
        self._owned_client = http_client is None

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = default_http_client(self.endpoint.timeout)
        return self._http_client

    async def aclose(self) -> None:
        if self._owned_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.endpoint.api_key}",
        }

    def build_body(
        self,
        messages: list[dict[str, Any]],
        context: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.endpoint.model,
            "messages": messages,
            "max_tokens": options.get("max_tokens", 2000),
            "temperature": options.get("temperature", 0.7),
        }
        if context.get("functions"):
            body["functions"] = context["functions"]
        if context.get("function_call"):
            body["function_call"] = context["function_call"]
        return body

    async def complete(self, messages, context, options) -> AIResponse:
        data = await request_json(
            self._client(),
            "POST",
            f"{self.endpoint.base_url}/chat/completions",
            provider=self.name,
            display_name=self.name,
            timeout=options.get("timeout", self.endpoint.timeout),
            headers=self.headers(),
            json_body=self.build_body(messages, context, options),
        )
        return self.parse_response(data)

    def parse_response(self, data: dict[str, Any]) -> AIResponse:
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(
                "No response choices returned", ErrorKind.INVALID_REQUEST, provider=self.name
            )

        choice = choices[0]
        message = choice.get("message") or {}
        usage = data.get("usage")
        response = AIResponse(
            content=message.get("content") or choice.get("text") or "",
            model=data.get("model") or self.endpoint.model,
            service=self.name,
            usage=(
                {
                    "prompt_tokens": usage.get("prompt_tokens", 0),
                    "completion_tokens": usage.get("completion_tokens", 0),
                    "total_tokens": usage.get("total_tokens", 0),
                }
                if usage
                else None
            ),
            finish_reason=choice.get("finish_reason"),
        )

        function_call = message.get("function_call")
        if function_call and function_call.get("name") == "generate_choices":
            try:
                arguments = json.loads(function_call.get("arguments") or "{}")
                response.choices = [ResponseChoice.from_dict(c) for c in arguments.get("choices", [])]
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning("Failed to parse function call", service=self.name, error=str(e))

        return response


class AnthropicChatService(OpenAICompatibleChatService):
    """Anthropic flavour: version header and a top-level ``system`` field."""

    def headers(self) -> dict[str, str]:
        return {**super().headers(), "anthropic-version": ANTHROPIC_VERSION}

    def build_body(self, messages, context, options):
        body: dict[str, Any] = {
            "model": self.endpoint.model,
            "messages": messages,
            "max_tokens": options.get("max_tokens", 2000),
            "temperature": options.get("temperature", 0.7),
        }
        if context.get("system_prompt"):
            body["system"] = context["system_prompt"]
        return body


def create_chat_service(
    endpoint: ServiceEndpoint, http_client: httpx.AsyncClient | None = None
) -> ChatService:
    if endpoint.name == "anthropic":
        return AnthropicChatService(endpoint, http_client)
    return OpenAICompatibleChatService(endpoint, http_client)
