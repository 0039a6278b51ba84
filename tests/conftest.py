"""
Global pytest configuration and fixtures for test isolation.

Cached settings, the metrics collector and the trace id are process globals;
they are reset around every test so that environment tweaks in one test never
leak into another.
"""

import sys

import pytest

from promptline.prompts.models import PromptTemplate, VariableDefinition, VariableType

CREDENTIAL_ENV_VARS = (
    "OPENROUTER_API_KEY",
    "FAL_KEY",
    "FAL_API_KEY",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "NOVEL_LLM_API_KEY",
    "PROMPTLINE_OPENROUTER_API_KEY",
    "PROMPTLINE_FAL_API_KEY",
    "PROMPTLINE_OPENAI_API_KEY",
    "PROMPTLINE_ANTHROPIC_API_KEY",
    "PROMPTLINE_NOVEL_LLM_API_KEY",
    "PROMPTLINE_ENVIRONMENT",
    "PROMPTLINE_EXECUTION__MOCK_MODE",
)


def reset_all_global_state():
    """Reset cached settings, containers and observability globals."""
    from promptline.config.container import get_container
    from promptline.config.settings import get_settings
    from promptline.observability.logging import clear_trace_id

    get_settings.cache_clear()
    get_container.cache_clear()
    clear_trace_id()

    for module_name, var_name in (
        ("promptline.observability.metrics", "_metrics_collector"),
        ("promptline.observability.tracing", "_tracing_manager"),
    ):
        module = sys.modules.get(module_name)
        if module is not None and hasattr(module, var_name):
            setattr(module, var_name, None)


@pytest.fixture(autouse=True)
def test_isolation(monkeypatch):
    """Per-test isolation: no real credentials and fresh globals."""
    for name in CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_all_global_state()
    yield
    reset_all_global_state()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    """An injectable async sleep that records requested delays instead of waiting."""
    recorded: list[float] = []

    async def _sleep(delay: float) -> None:
        recorded.append(delay)

    _sleep.calls = recorded
    return _sleep


@pytest.fixture
def story_templates():
    """Three story steps (deliberately out of order) and one character step."""
    return [
        PromptTemplate(
            id="template-2",
            name="Story Development",
            template="Develop the story from {{premise}} with {{plot}}",
            model="anthropic/claude-sonnet-4",
            tags=["story-002"],
            variable_defs=[
                VariableDefinition("premise", VariableType.STRING, required=True),
                VariableDefinition("plot", VariableType.STRING, required=False, default_value="a twist"),
            ],
        ),
        PromptTemplate(
            id="template-1",
            name="Story Setup",
            template="Set up a story about {{premise}}",
            model="anthropic/claude-sonnet-4",
            tags=["story-001", "meta-tag"],
            variable_defs=[VariableDefinition("premise", VariableType.STRING, required=True)],
        ),
        PromptTemplate(
            id="template-3",
            name="Character Intro",
            template="Introduce {{character}}",
            model="anthropic/claude-sonnet-4",
            tags=["character-001"],
            variable_defs=[VariableDefinition("character", VariableType.STRING, required=True)],
        ),
        PromptTemplate(
            id="template-4",
            name="Story Conclusion",
            template="Conclude the story with {{ending}}",
            model="anthropic/claude-sonnet-4",
            tags=["story-003"],
            variable_defs=[VariableDefinition("ending", VariableType.STRING, required=True)],
        ),
    ]
