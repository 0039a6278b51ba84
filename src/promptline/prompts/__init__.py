"""Template interpolation, provider routing and the execution engine."""

from .engine import PromptExecutionEngine, create_execution_engine
from .interpolation import VariableInterpolator
from .models import (
    ExecutionMetrics,
    ExecutionResult,
    ExecutionStatus,
    InterpolationResult,
    PromptTemplate,
    VariableContext,
    VariableDefinition,
    VariableType,
)

__all__ = [
    "PromptExecutionEngine",
    "create_execution_engine",
    "VariableInterpolator",
    "ExecutionMetrics",
    "ExecutionResult",
    "ExecutionStatus",
    "InterpolationResult",
    "PromptTemplate",
    "VariableContext",
    "VariableDefinition",
    "VariableType",
]
