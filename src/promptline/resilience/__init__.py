"""Circuit-broken, prioritized chat services with a scripted fallback."""

from .circuit_breaker import BreakerState, CircuitBreaker
from .manager import FALLBACK_SERVICE, AIServiceManager
from .services import (
    AIResponse,
    AnthropicChatService,
    ChatService,
    OpenAICompatibleChatService,
    ResponseChoice,
    create_chat_service,
)

__all__ = [
    "BreakerState",
    "CircuitBreaker",
    "FALLBACK_SERVICE",
    "AIServiceManager",
    "AIResponse",
    "AnthropicChatService",
    "ChatService",
    "OpenAICompatibleChatService",
    "ResponseChoice",
    "create_chat_service",
]
