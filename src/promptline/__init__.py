"""
promptline - prompt execution and tag-group pipelines for AI movie production.

Templates with ``{{variable}}`` tokens are interpolated, routed to a text or
image provider by model id, and executed with bounded retries. Templates that
share a ``<prefix>-<NNN>`` tag form a pipeline that runs step by step, carries
values from one step's output into the next step's inputs, and can be saved
and resumed.

Quick Start:
    >>> from promptline import VariableContext, VariableDefinition, create_execution_engine
    >>>
    >>> engine = create_execution_engine(mock_mode=True)
    >>> result = await engine.execute(
    ...     "Describe {{character}} in one line",
    ...     VariableContext(
    ...         variables={"character": "Mara"},
    ...         variable_defs=[VariableDefinition("character", required=True)],
    ...     ),
    ...     "anthropic/claude-sonnet-4",
    ... )
    >>> print(result.status, result.provider_used)

Pipelines:
    >>> from promptline.config import setup_container
    >>>
    >>> container = setup_container(mock_mode=True)
    >>> orchestrator = container.get("orchestrator")
    >>> execution = await orchestrator.create("story", templates)
    >>> await orchestrator.run_current_step(execution, {"premise": "A heist on Mars"})

Configuration:
    - PROMPTLINE_EXECUTION__RETRY_ATTEMPTS=3
    - PROMPTLINE_STORAGE__BACKEND=local
    - OPENROUTER_API_KEY / FAL_KEY for the text and image providers
"""

__version__ = "1.0.0"

from .config.settings import Settings
from .pipeline import PipelineExecution, PipelineOrchestrator, PipelineStep
from .prompts import (
    ExecutionResult,
    PromptExecutionEngine,
    PromptTemplate,
    VariableContext,
    VariableDefinition,
    create_execution_engine,
)
from .resilience import AIServiceManager

__all__ = [
    "AIServiceManager",
    "ExecutionResult",
    "PipelineExecution",
    "PipelineOrchestrator",
    "PipelineStep",
    "PromptExecutionEngine",
    "PromptTemplate",
    "Settings",
    "VariableContext",
    "VariableDefinition",
    "create_execution_engine",
]
