"""Deterministic, network-free adapter used in mock mode."""

from typing import Any

from ..models import ExecutionMetrics, ExecutionResult, ExecutionStatus
from .base import CapabilityFamily, ProviderAdapter

PLACEHOLDER_IMAGE = {
    "url": "https://via.placeholder.com/1024x1024.png?text=Mock+Generated+Image",
    "width": 1024,
    "height": 1024,
    "content_type": "image/png",
}


def mock_text(prompt: str, model: str) -> str:
    lowered = prompt.lower()
    if "character" in lowered:
        return (
            f"Character Analysis (Generated by {model}):\n\n"
            "Based on your prompt, here's a character profile with complex motivations "
            "and development arc."
        )
    if "story" in lowered:
        return (
            f"Story Analysis (Generated by {model}):\n\n"
            "The narrative shows strong structure with clear character development "
            "and engaging plot progression."
        )
    excerpt = prompt[:100] + ("..." if len(prompt) > 100 else "")
    return f'AI Response (Generated by {model}):\n\nThis is a mock response to your prompt: "{excerpt}"'


class MockAdapter(ProviderAdapter):
    """Fabricates a structurally valid result for its family."""

    name = "mock"

    def __init__(self, family: CapabilityFamily, supported_models: tuple[str, ...]):
        super().__init__(supported_models)
        self.family = family

    async def execute(
        self, prompt: str, model: str, options: dict[str, Any] | None = None
    ) -> ExecutionResult:
        if self.family is CapabilityFamily.IMAGE:
            count = int((options or {}).get("num_images", 1))
            output: Any = {"images": [dict(PLACEHOLDER_IMAGE) for _ in range(count)], "prompt": prompt}
            metrics = ExecutionMetrics()
        else:
            output = mock_text(prompt, model)
            prompt_tokens = len(prompt.split())
            completion_tokens = len(output.split())
            metrics = ExecutionMetrics(
                token_count=prompt_tokens + completion_tokens,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
            )

        return ExecutionResult(
            output=output,
            status=ExecutionStatus.SUCCESS,
            provider_used=self.name,
            model=model,
            metrics=metrics,
        )
